from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Protocol
from pydantic import BaseModel, Field, constr

# ---------- Unified Wire Format (UWF) ----------
class ErrorPayload(BaseModel):
    type: Literal["AUTH_ERROR","VALIDATION","NOT_FOUND","CONFLICT","INTERNAL"]
    code: constr(strip_whitespace=True, min_length=1)
    message: constr(strip_whitespace=True, min_length=1)
    details: Optional[Dict[str, Any]] = None

class MetaPayload(BaseModel):
    trace_id: Optional[str] = None
    request_id: Optional[str] = None
    duration_ms: Optional[int] = None

class UWFResponse(BaseModel):
    ok: bool
    result: Optional[Any] = None
    error: Optional[ErrorPayload] = None
    meta: MetaPayload = Field(default_factory=MetaPayload)

# ---------- Domain Models ----------
class UserRecord(BaseModel):
    """Stored credential record. Never serialized to clients."""
    id: str
    username: str
    email: str
    password_hash: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    def public(self) -> "PublicUser":
        return PublicUser(id=self.id, username=self.username, email=self.email)

class PublicUser(BaseModel):
    id: str
    username: str
    email: str

class TokenClaims(BaseModel):
    sub: str
    username: Optional[str] = None
    email: Optional[str] = None
    iat: int
    exp: int
    iss: Optional[str] = None
    jti: Optional[str] = None

class AuthResult(BaseModel):
    user: PublicUser
    token: str
    token_type: Literal["Bearer"] = "Bearer"
    expires_in: int

class ProfileResult(BaseModel):
    user: PublicUser

class MessageResult(BaseModel):
    message: str

# ---------- Ports (Contracts) ----------
class TokenSignerPort(Protocol):
    """
    Contract for compact signed tokens.
    verify() raises TokenExpired / TokenInvalid, never a bare exception.
    """
    def issue(self, claims: Dict[str, Any], ttl_seconds: int) -> str: ...
    def sign(self, claims: Dict[str, Any], *, headers: Optional[Dict[str, Any]] = None) -> str: ...
    def verify(self, token: str) -> Dict[str, Any]: ...

class PasswordHasherPort(Protocol):
    def hash(self, password: str) -> str: ...
    def verify(self, password: str, encoded: str) -> bool: ...
    def needs_rehash(self, encoded: str) -> bool: ...

class ClockPort(Protocol):
    def now_utc_ts(self) -> int: ...

# ---------- Service I/O ----------
# Fields stay optional on the wire; the service owns presence checks.
class RegisterRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None

class UpdateProfileRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None

class ChangePasswordRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None

class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None

# ---------- Errors ----------
class AuthErrorCodes:
    VALIDATION = "VALIDATION_ERROR"
    DUPLICATE_EMAIL = "DUPLICATE_EMAIL"
    DUPLICATE_USERNAME = "DUPLICATE_USERNAME"
    BAD_CREDENTIALS = "INVALID_CREDENTIALS"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL = "INTERNAL_ERROR"

def normalize_email(email: str) -> str:
    return email.strip().lower()

def normalize_username(username: str) -> str:
    return username.strip()
