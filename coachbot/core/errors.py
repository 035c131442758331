"""
Error taxonomy shared by the core services.

Every expected condition carries a stable machine-readable code so the web
layer can map it to a status code without inspecting messages.
"""
from enum import Enum


class ErrorCode(str, Enum):
    SESSION_REQUIRED = "SESSION_REQUIRED"
    UPGRADE_REQUIRED = "UPGRADE_REQUIRED"
    LIMIT_REACHED = "LIMIT_REACHED"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INVALID_TITLE = "INVALID_TITLE"
    INVALID_MODE = "INVALID_MODE"
    NO_UPDATES = "NO_UPDATES"
    BAD_REQUEST = "BAD_REQUEST"


# HTTP status per code; anything unlisted is a client error
STATUS_BY_CODE = {
    ErrorCode.SESSION_REQUIRED: 401,
    ErrorCode.UPGRADE_REQUIRED: 403,
    ErrorCode.LIMIT_REACHED: 403,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
}


class CoachError(Exception):
    """Base class for expected, user-facing conditions."""

    code: ErrorCode = ErrorCode.BAD_REQUEST

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = ErrorCode(code)

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE.get(self.code, 400)

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}


class SessionRequiredError(CoachError):
    code = ErrorCode.SESSION_REQUIRED

    def __init__(self, message: str = "Session is required."):
        super().__init__(message)


class EntitlementError(CoachError):
    """Raised when the plan does not allow an action or a quota is exhausted."""

    def __init__(self, code: ErrorCode, message: str):
        if ErrorCode(code) not in (ErrorCode.UPGRADE_REQUIRED, ErrorCode.LIMIT_REACHED):
            raise ValueError(f"Not an entitlement code: {code}")
        super().__init__(message, code)


class NotFoundError(CoachError):
    code = ErrorCode.NOT_FOUND


class ForbiddenError(CoachError):
    code = ErrorCode.FORBIDDEN


class InvalidRequestError(CoachError):
    code = ErrorCode.BAD_REQUEST
