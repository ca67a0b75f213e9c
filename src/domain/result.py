from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from src.core.errors import StorageError

T = TypeVar("T")


@dataclass(slots=True)
class StorageResult(Generic[T]):
    """Uniform outcome of a storage operation; check ``success`` before using ``data``."""

    success: bool
    data: T | None = None
    error: StorageError | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> StorageResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: StorageError) -> StorageResult[T]:
        return cls(success=False, error=error)

    @property
    def message(self) -> str | None:
        return self.error.message if self.error else None

    @property
    def code(self) -> str | None:
        return self.error.code if self.error else None

    def unwrap(self) -> T | None:
        """Return the payload, re-raising the carried error on failure."""
        if not self.success:
            raise self.error or StorageError()
        return self.data
