"""
Check errors
Caller-facing errors rendered by the app, plus internal analysis and storage errors
"""
from datetime import datetime
from typing import Any, Dict, Optional


BLOCKED_MESSAGE = "이 메시지는 분석할 수 없습니다. 도움이 필요하시면 전문 상담을 권장합니다."
RATE_LIMITED_MESSAGE = "하루 무료 사용량({limit}회)을 초과했습니다."
AUTH_REQUIRED_MESSAGE = "로그인이 필요합니다."
NOT_FOUND_MESSAGE = "결과를 찾을 수 없습니다."
SERVER_ERROR_MESSAGE = "서버 오류가 발생했습니다."
INVALID_INPUT_MESSAGE = "입력값이 올바르지 않습니다."


class CheckError(Exception):
    """Base exception for errors reported to the caller."""

    error_code = "server_error"
    status_code = 500
    default_message = SERVER_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        """Response body for this error."""
        return {"error": self.error_code, "message": self.message, **self.extra}


class InputValidationError(CheckError):
    """Raised when the submitted message fails shape or length checks."""

    error_code = "validation_error"
    status_code = 400
    default_message = INVALID_INPUT_MESSAGE


class BlockedContent(CheckError):
    """Raised when the message hits the safety policy. Never names the keyword."""

    error_code = "blocked"
    status_code = 400
    default_message = BLOCKED_MESSAGE

    def __init__(self):
        super().__init__(extra={"blocked": True})


class RateLimited(CheckError):
    """Raised when the caller has used up the daily quota."""

    error_code = "rate_limited"
    status_code = 429

    def __init__(self, reset: datetime, limit: int = 3):
        self.reset = reset
        super().__init__(
            RATE_LIMITED_MESSAGE.format(limit=limit),
            extra={"reset": reset.isoformat()},
        )


class AuthRequired(CheckError):
    """Raised when an operation needs a session and none exists."""

    error_code = "unauthorized"
    status_code = 401
    default_message = AUTH_REQUIRED_MESSAGE


class CheckNotFound(CheckError):
    """Raised when a check does not exist or belongs to someone else."""

    error_code = "not_found"
    status_code = 404
    default_message = NOT_FOUND_MESSAGE


class ServerError(CheckError):
    """Catch-all for failures the caller cannot act on."""


class AnalysisError(Exception):
    """Raised by an analyzer that could not produce a valid result."""


class StorageError(Exception):
    """Raised when the durable tier fails."""
