from __future__ import annotations


class TargetError(Exception):
    """Base error for target operations; ``message`` is safe to show to a user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TargetValidationError(TargetError):
    """Rejected locally before any request was sent."""

    def __init__(self, message: str, field: str = "lot") -> None:
        super().__init__(message)
        self.field = field


class TargetApiError(TargetError):
    """Persistence request failed in transport or was rejected by the server."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingTargetIdError(TargetError):
    """Server-side operation attempted on a target that has no server id yet."""
