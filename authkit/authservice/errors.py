from __future__ import annotations
from typing import Any, Dict, Optional

from .contracts import AuthErrorCodes, ErrorPayload


class AuthServiceException(Exception):
    type: str = "INTERNAL"
    code: str = AuthErrorCodes.INTERNAL
    message: str = "Internal server error"
    status_code: int = 500

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        if message:
            self.message = message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> ErrorPayload:
        return ErrorPayload(type=self.type, code=self.code, message=self.message, details=self.details)


class ValidationFailed(AuthServiceException):
    type = "VALIDATION"
    code = AuthErrorCodes.VALIDATION
    message = "Missing or empty required field"
    status_code = 400


class DuplicateEmail(AuthServiceException):
    type = "CONFLICT"
    code = AuthErrorCodes.DUPLICATE_EMAIL
    message = "Email already registered"
    status_code = 409


class DuplicateUsername(AuthServiceException):
    type = "CONFLICT"
    code = AuthErrorCodes.DUPLICATE_USERNAME
    message = "Username already taken"
    status_code = 409


class InvalidCredentials(AuthServiceException):
    """Wrong email and wrong password share this error and its message."""
    type = "AUTH_ERROR"
    code = AuthErrorCodes.BAD_CREDENTIALS
    message = "Invalid email or password"
    status_code = 401

    def __init__(self):
        super().__init__()


class Unauthorized(AuthServiceException):
    type = "AUTH_ERROR"
    code = AuthErrorCodes.UNAUTHORIZED
    message = "Missing, invalid or expired token"
    status_code = 401


class NotFound(AuthServiceException):
    type = "NOT_FOUND"
    code = AuthErrorCodes.NOT_FOUND
    message = "User not found"
    status_code = 404


class InternalError(AuthServiceException):
    def __init__(self):
        super().__init__()


# ---------- Token layer ----------
class TokenError(Exception):
    """Base for token verification failures."""


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    pass


class ConfigError(RuntimeError):
    """Startup configuration is missing or invalid."""


