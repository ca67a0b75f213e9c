"""Engine selector and the façade the rest of the application calls.

The backend mode is read from settings once, when the engine is first
needed; the engine is then reused for the process lifetime. This module is
the only place where records are reshaped for callers of the flat
``LegacyAssessment`` shape.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import structlog
from src.core.config import BackendMode, Settings, get_settings
from src.core.environment import validate_environment
from src.core.errors import StorageError
from src.domain.models import (
    AssessmentConfig,
    AssessmentRecord,
    AssessmentScope,
    AuthSession,
    LegacyAssessment,
    User,
)
from src.domain.ports import StoragePort
from src.domain.result import StorageResult
from src.domain.shapes import legacy_update_to_record_update, record_to_legacy

logger = structlog.get_logger()

T = TypeVar("T")
U = TypeVar("U")

NIST_CSF_ASSESSMENT_CONFIG = AssessmentConfig(
    domain="nist-csf",
    name="NIST CSF v2 Program Assessment",
    frameworks=("nist-csf-2",),
    regions=("global",),
    scope=AssessmentScope(systems=(), locations=()),
)

_backend: StoragePort | None = None


def create_backend(settings: Settings) -> StoragePort:
    """Build the engine selected by ``settings.backend_mode``."""
    validate_environment(settings)

    if settings.backend_mode is BackendMode.REMOTE:
        from src.infrastructure.remote import RemoteEngine

        engine: StoragePort = RemoteEngine(settings=settings)
    else:
        from src.infrastructure.local import LocalEngine

        engine = LocalEngine(settings=settings)

    logger.info("storage_backend_selected", engine=engine.engine_name)
    return engine


def get_backend() -> StoragePort:
    global _backend

    if _backend is None:
        _backend = create_backend(get_settings())
    return _backend


def reset_backend() -> None:
    """Forget the cached engine; the next call re-reads settings."""
    global _backend
    _backend = None


def _reshape(result: StorageResult[T], convert: Callable[[T], U]) -> StorageResult[U]:
    if not result.success or result.data is None:
        return result  # type: ignore[return-value]
    try:
        return StorageResult.ok(convert(result.data))
    except StorageError as exc:
        logger.warning("legacy_reshape_failed", code=exc.code, error=exc.message)
        return StorageResult.fail(exc)


class ApiService:
    """Stable entry point over whichever engine is active."""

    def __init__(self, backend: StoragePort | None = None) -> None:
        self._backend = backend

    @property
    def backend(self) -> StoragePort:
        return self._backend or get_backend()

    # auth
    async def login(self, session: AuthSession, email: str, password: str) -> StorageResult[User]:
        return await self.backend.login(session, email, password)

    async def signup(
        self,
        session: AuthSession,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        organization: str = "",
    ) -> StorageResult[User]:
        return await self.backend.signup(session, email, password, first_name, last_name, organization)

    async def logout(self, session: AuthSession) -> StorageResult[None]:
        return await self.backend.logout(session)

    async def get_current_user(self, session: AuthSession) -> StorageResult[User | None]:
        return await self.backend.get_current_user(session)

    # canonical records
    async def create_assessment(
        self, session: AuthSession, config: AssessmentConfig | Mapping[str, Any]
    ) -> StorageResult[AssessmentRecord]:
        return await self.backend.create_assessment(session, config)

    async def list_assessments(self, session: AuthSession) -> StorageResult[list[AssessmentRecord]]:
        return await self.backend.list_assessments(session)

    async def get_assessment_record(
        self, session: AuthSession, assessment_id: str
    ) -> StorageResult[AssessmentRecord]:
        return await self.backend.get_assessment(session, assessment_id)

    async def update_assessment_record(
        self, session: AuthSession, assessment_id: str, updates: Mapping[str, Any]
    ) -> StorageResult[AssessmentRecord]:
        return await self.backend.update_assessment(session, assessment_id, updates)

    async def delete_assessment(self, session: AuthSession, assessment_id: str) -> StorageResult[None]:
        return await self.backend.delete_assessment(session, assessment_id)

    async def get_used_assessments(self, session: AuthSession) -> StorageResult[dict[str, bool]]:
        return await self.backend.get_used_assessments(session)

    # legacy flat shape
    async def get_assessments(self, session: AuthSession) -> StorageResult[list[LegacyAssessment]]:
        """All of the user's assessments in the flat shape.

        The list is converted as a whole: a single record whose status has no
        flat-shape counterpart (``archived``) fails the entire call with
        ``status_mapping_error``. Use :meth:`list_assessments` to read such
        records.
        """
        result = await self.backend.list_assessments(session)
        return _reshape(result, lambda records: [record_to_legacy(r) for r in records])

    async def get_assessment(self, session: AuthSession, assessment_id: str) -> StorageResult[LegacyAssessment]:
        result = await self.backend.get_assessment(session, assessment_id)
        return _reshape(result, record_to_legacy)

    async def update_assessment(
        self, session: AuthSession, assessment_id: str, updates: Mapping[str, Any]
    ) -> StorageResult[AssessmentRecord]:
        """Apply a flat-shape partial update; returns the canonical record."""
        try:
            record_updates = legacy_update_to_record_update(updates)
        except StorageError as exc:
            logger.warning("legacy_update_rejected", code=exc.code, error=exc.message)
            return StorageResult.fail(exc)
        return await self.backend.update_assessment(session, assessment_id, record_updates)


api_service = ApiService()
