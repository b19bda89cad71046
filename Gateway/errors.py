from typing import Any, Optional

from fastapi import HTTPException


# HTTPException that also carries a machine-readable code for the response envelope
class GatewayError(HTTPException):
    status_code_default = 500
    code_default = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, headers: Optional[dict[str, str]] = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=message, headers=headers)
        self.code = code or self.code_default

    @property
    def message(self) -> str:
        return str(self.detail)


class NotFoundError(GatewayError):
    status_code_default = 404
    code_default = "NOT_FOUND"


class ValidationFailure(GatewayError):
    status_code_default = 400
    code_default = "VALIDATION_ERROR"


class UnauthorizedError(GatewayError):
    status_code_default = 401
    code_default = "UNAUTHORIZED"


class ForbiddenError(GatewayError):
    status_code_default = 403
    code_default = "FORBIDDEN"


class RateLimited(GatewayError):
    status_code_default = 429
    code_default = "RATE_LIMITED"


class UpstreamError(GatewayError):
    status_code_default = 502
    code_default = "UPSTREAM_ERROR"


class UpstreamTimeout(GatewayError):
    status_code_default = 504
    code_default = "UPSTREAM_TIMEOUT"


UPSTREAM_TIMEOUT_MESSAGE = (
    "The AI service is taking longer than expected. This might be because the service is waking up "
    "from sleep. Please try again in a moment."
)


def error_payload(message: str, code: str, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "message": message, "code": code}
    payload.update(extra)
    return payload
