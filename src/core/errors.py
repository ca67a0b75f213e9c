"""Failure taxonomy shared by every storage engine.

Engines raise these internally; the storage boundary turns them into failed
results so callers never see a raw exception.
"""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError


class StorageError(Exception):
    """Base class for every failure a storage operation can report."""

    code = "storage_error"
    default_message = "An unexpected storage error occurred"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(StorageError):
    """Not authenticated, or the supplied credentials do not match."""

    code = "auth_error"
    default_message = "Authentication required"


class ConfirmationPendingError(AuthError):
    """Signup accepted, but the identity must be confirmed by email first."""

    code = "confirmation_pending"
    default_message = "Please check your email to confirm your account before logging in."


class ProfileCreationError(AuthError):
    """Identity was created but its profile row could not be written."""

    code = "profile_creation_failed"
    default_message = "Failed to create profile"


class ConfigurationError(StorageError):
    """Selected engine has no valid connection parameters."""

    code = "configuration_error"
    default_message = "Remote backend not configured"


class BackendUnavailableError(ConfigurationError):
    """Underlying store could not be reached or returned unreadable data."""

    code = "backend_unavailable"
    default_message = "Storage backend is unavailable"


class DuplicateAccountError(StorageError):
    code = "duplicate_account"
    default_message = "User with this email already exists"


class QuotaError(StorageError):
    """Tier or free-entitlement rules forbid the request."""

    code = "quota_exceeded"
    default_message = "Your plan does not allow this assessment"


class NotFoundError(StorageError):
    """Missing, or owned by someone else; callers cannot tell which."""

    code = "not_found"
    default_message = "Assessment not found"


class ValidationError(StorageError):
    code = "validation_error"
    default_message = "Invalid input"


class StatusMappingError(ValidationError):
    """A status has no counterpart in the other vocabulary."""

    code = "status_mapping_error"
    default_message = "Unmapped assessment status"


def describe_validation_error(exc: PydanticValidationError) -> str:
    """First pydantic error as ``field: message``."""
    errors = exc.errors()
    if not errors:
        return ValidationError.default_message
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", ValidationError.default_message)
    return f"{field}: {message}" if field else message
