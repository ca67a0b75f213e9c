"""Startup validation of the storage configuration.

Never raises: problems are logged and returned so the process can start in a
degraded mode (remote operations then fail per call).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urlparse

import structlog
from src.core.config import DEFAULT_SESSION_SECRET, BackendMode, Settings

logger = structlog.get_logger()

# Hosted anon keys are long JWT-like strings
_MIN_REMOTE_KEY_LENGTH = 32


@dataclass(slots=True)
class EnvironmentReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_environment(settings: Settings) -> EnvironmentReport:
    report = EnvironmentReport()

    if settings.backend_mode is BackendMode.REMOTE:
        if not settings.remote_configured:
            report.errors.append(
                "Remote backend mode is enabled but connection parameters are missing. "
                "Set REMOTE_URL and REMOTE_ANON_KEY, or set BACKEND_MODE=local."
            )
        else:
            parsed = urlparse(settings.remote_url)
            if not parsed.scheme or not (parsed.netloc or parsed.path):
                report.errors.append(f"Invalid remote URL format: {settings.remote_url}")
            if len(settings.remote_key) < _MIN_REMOTE_KEY_LENGTH:
                report.warnings.append(
                    "Remote access key looks too short. Ensure the public (anon) key is configured."
                )

    if settings.is_production() and settings.session_secret == DEFAULT_SESSION_SECRET:
        report.warnings.append("SESSION_SECRET still uses the default value in production.")

    for error in report.errors:
        logger.warning("environment_validation_error", error=error)
    for warning in report.warnings:
        logger.warning("environment_validation_warning", warning=warning)

    return report
