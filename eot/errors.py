"""Request-level errors with stable codes and HTTP-style status classes."""

from typing import Any


class ErrorCode:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ReasoningError(Exception):
    """Raised when a request must be rejected as a whole.

    Per-participant failures never surface as this error; they are captured
    inside the Stage as placeholder responses.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(f"{code}: {message}")


class SessionNotFoundError(ReasoningError):
    """Raised when a streaming session is unknown, expired or already consumed."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            ErrorCode.SESSION_NOT_FOUND,
            f"Session not found: {session_id}",
            status_code=404,
            details={"session_id": session_id},
        )
