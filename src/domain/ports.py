"""Storage port: every operation the application may run against the active engine."""

from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, ClassVar, TypeVar

import structlog
from pydantic import ValidationError as PydanticValidationError
from src.core.errors import (
    AuthError,
    BackendUnavailableError,
    ConfigurationError,
    StorageError,
    ValidationError,
    describe_validation_error,
)
from src.core.logging import storage_log_context
from src.domain.models import AssessmentConfig, AssessmentRecord, AuthSession, User
from src.domain.result import StorageResult

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def storage_operation(
    operation: str,
    *,
    failure_message: str,
    auth_failure: bool = False,
) -> Callable[[F], F]:
    """Run an engine method behind the storage boundary.

    Taxonomy errors become failed results unchanged. Faults listed in the
    engine's ``unavailable_errors`` become :class:`BackendUnavailableError`
    carrying ``failure_message``. With ``auth_failure`` every configuration
    or availability problem is reported as :class:`AuthError` instead.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self: StoragePort, *args: Any, **kwargs: Any) -> StorageResult[Any]:
            with storage_log_context(engine=self.engine_name, operation=operation):
                try:
                    data = await func(self, *args, **kwargs)
                except StorageError as exc:
                    error: StorageError = exc
                except PydanticValidationError as exc:
                    error = ValidationError(describe_validation_error(exc))
                except self.unavailable_errors as exc:
                    logger.exception("storage_backend_fault", error_type=type(exc).__name__)
                    error = BackendUnavailableError(failure_message)
                else:
                    return StorageResult.ok(data)

                if auth_failure and isinstance(error, ConfigurationError):
                    error = AuthError(error.message)
                logger.warning("storage_operation_failed", code=error.code, error=error.message)
                return StorageResult.fail(error)

        return wrapper  # type: ignore[return-value]

    return decorator


class StoragePort(ABC):
    """Contract shared by the local and remote engines.

    Every method returns a :class:`StorageResult`; none raises for expected
    failures. The acting user is always derived from ``session``.
    """

    engine_name: ClassVar[str] = "abstract"
    unavailable_errors: ClassVar[tuple[type[BaseException], ...]] = (OSError,)

    # ------------------------------------------------------------------ auth
    @abstractmethod
    async def login(self, session: AuthSession, email: str, password: str) -> StorageResult[User]:
        """Authenticate and populate ``session``."""

    @abstractmethod
    async def signup(
        self,
        session: AuthSession,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        organization: str,
    ) -> StorageResult[User]:
        """Register a free-tier analyst account. Does not log the user in."""

    @abstractmethod
    async def logout(self, session: AuthSession) -> StorageResult[None]:
        """Clear the session; succeeds when nobody was logged in."""

    @abstractmethod
    async def get_current_user(self, session: AuthSession) -> StorageResult[User | None]:
        """Return the session's user, or ``None`` when not logged in."""

    # ------------------------------------------------------------------ assessments
    @abstractmethod
    async def create_assessment(
        self, session: AuthSession, config: AssessmentConfig | Mapping[str, Any]
    ) -> StorageResult[AssessmentRecord]: ...

    @abstractmethod
    async def list_assessments(self, session: AuthSession) -> StorageResult[list[AssessmentRecord]]:
        """Owned records, newest first."""

    @abstractmethod
    async def get_assessment(
        self, session: AuthSession, assessment_id: str
    ) -> StorageResult[AssessmentRecord]: ...

    @abstractmethod
    async def update_assessment(
        self, session: AuthSession, assessment_id: str, updates: Mapping[str, Any]
    ) -> StorageResult[AssessmentRecord]: ...

    @abstractmethod
    async def delete_assessment(self, session: AuthSession, assessment_id: str) -> StorageResult[None]: ...

    @abstractmethod
    async def get_used_assessments(self, session: AuthSession) -> StorageResult[dict[str, bool]]: ...
