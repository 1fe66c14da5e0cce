"""Custom exceptions for centralized error handling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class AppError(Exception):
    """Base application error."""

    code: str
    message: str
    status_code: int
    details: Any | None = None


class NotFoundError(AppError):
    """Resource not found."""

    def __init__(self, message: str = "Not found", details: Any | None = None) -> None:
        super().__init__(code="not_found", message=message, status_code=404, details=details)


class ValidationError(AppError):
    """Input validation error."""

    def __init__(self, message: str = "Validation error", details: Any | None = None) -> None:
        super().__init__(code="validation_error", message=message, status_code=400, details=details)


class ConflictError(AppError):
    """Conflict (e.g., unique constraint)."""

    def __init__(self, message: str = "Conflict", details: Any | None = None) -> None:
        super().__init__(code="conflict", message=message, status_code=409, details=details)


class PreconditionError(AppError):
    """Operation rejected because the entity is not in a state that allows it.

    Raised by direct single-shot calls (an operator action, a draw request).
    Sweeps never see it: they only issue guarded updates that silently no-op.
    """

    def __init__(self, message: str = "Precondition failed", details: Any | None = None) -> None:
        super().__init__(code="precondition_failed", message=message, status_code=409, details=details)


class ConfigurationError(AppError):
    """A required setting is missing or malformed."""

    def __init__(self, message: str = "Configuration error", details: Any | None = None) -> None:
        super().__init__(code="configuration_error", message=message, status_code=500, details=details)
