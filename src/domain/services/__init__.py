"""Domain services."""

from src.domain.services.api_service import (
    NIST_CSF_ASSESSMENT_CONFIG,
    ApiService,
    api_service,
    create_backend,
    get_backend,
    reset_backend,
)

__all__ = [
    "NIST_CSF_ASSESSMENT_CONFIG",
    "ApiService",
    "api_service",
    "create_backend",
    "get_backend",
    "reset_backend",
]
