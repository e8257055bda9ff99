"""Error taxonomy for the record store.

Every failure the store raises is a StoreError subclass carrying a stable
``code``.  The presentation layer only needs to_error_payload() to turn any
exception into {"error_code", "message", "detail"}.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldError:
    """A single field-level contract violation."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class StoreError(Exception):
    """Base class for all record store failures."""

    code = "E_INTERNAL"

    @property
    def detail(self) -> str:
        return ""


class IOFailure(StoreError):
    """Disk or path error. Retryable once the underlying cause is fixed."""

    code = "E_IO"


class NotFoundError(StoreError):
    code = "E_NOT_FOUND"


class ConflictError(StoreError):
    """Name collision, non-empty category, staging residue, read-only target."""

    code = "E_CONFLICT"


class SchemaInvalidError(ConflictError):
    """The record is readable but permanently read-only."""


class UnparsableError(StoreError):
    """The record bytes are not well-formed JSON."""

    code = "E_PARSE"


class PermissionDeniedError(StoreError):
    code = "E_PERMISSION"


class CredentialError(StoreError):
    code = "E_CRYPTO"


class ValidationFailed(StoreError):
    """One or more field-level violations."""

    code = "E_VALIDATION"

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        super().__init__(", ".join(str(e) for e in self.errors))

    @property
    def detail(self) -> str:
        return "\n".join(str(e) for e in self.errors)


class RollbackError(StoreError):
    """An operation failed and so did the attempt to undo it.

    ``cause`` is the original failure (may be None when a rollback was run on
    its own), ``failures`` lists what the undo could not restore.
    """

    code = "E_INTERNAL"

    def __init__(self, message: str, *, cause: BaseException | None = None, failures: list[str] | None = None) -> None:
        self.cause = cause
        self.failures = list(failures or [])
        parts = [message]
        if cause is not None:
            parts.append(f"cause: {cause}")
        if self.failures:
            parts.append("rollback: " + ", ".join(self.failures))
        super().__init__("; ".join(parts))

    @property
    def detail(self) -> str:
        return "\n".join(self.failures)


def to_error_payload(exc: BaseException) -> dict[str, Any]:
    """Map an exception to the user-facing error shape."""
    if isinstance(exc, ValidationFailed):
        return {"error_code": exc.code, "message": "Validation failed.", "detail": exc.detail}
    if isinstance(exc, StoreError):
        return {"error_code": exc.code, "message": str(exc), "detail": exc.detail}
    return {"error_code": StoreError.code, "message": str(exc), "detail": ""}
