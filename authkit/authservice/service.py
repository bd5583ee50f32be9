from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, List, Optional

from pydantic import ValidationError

from authkit.credentialstore.errors import RecordNotFound, UniqueViolation
from .config import AuthSettings
from .contracts import (
    PasswordHasherPort, TokenSignerPort,
    RegisterRequest, LoginRequest, UpdateProfileRequest, ChangePasswordRequest, ForgotPasswordRequest,
    AuthResult, MessageResult, PublicUser, TokenClaims, UserRecord,
    normalize_email, normalize_username,
)
from .errors import (
    AuthServiceException, ValidationFailed, DuplicateEmail, DuplicateUsername,
    InvalidCredentials, Unauthorized, NotFound, InternalError,
    TokenExpired, TokenInvalid,
)

if TYPE_CHECKING:
    from authkit.credentialstore.ports import CredentialStorePort

logger = logging.getLogger("authservice")

FORGOT_PASSWORD_MESSAGE = "If the email is registered, a password reset link will be sent."
PASSWORD_CHANGED_MESSAGE = "Password updated"


def _duplicate_for(ex: UniqueViolation) -> AuthServiceException:
    return DuplicateUsername() if ex.field == "username" else DuplicateEmail()


def _is_utf8(value: str) -> bool:
    # lone surrogates decode from JSON but cannot be hashed, stored or serialized
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


class AuthService:
    """
    Registration, login and profile operations over an injected credential
    store, password hasher and token signer. Holds no per-request state, so
    one instance serves concurrent requests.
    """
    def __init__(
        self,
        *,
        store: "CredentialStorePort",
        signer: TokenSignerPort,
        hasher: PasswordHasherPort,
        cfg: AuthSettings,
    ):
        self.store = store
        self.signer = signer
        self.hasher = hasher
        self.cfg = cfg
        # verified against on unknown-email logins so both paths cost one hash
        self._dummy_hash = hasher.hash("dummy-password-for-timing")

    # --------- Core operations ----------
    def register(self, req: RegisterRequest) -> AuthResult:
        self._require(username=req.username, email=req.email, password=req.password)
        self._check_password_policy(req.password)
        username = normalize_username(req.username)
        email = normalize_email(req.email)

        with self._internal("register"):
            if self.store.find_by_email(email) is not None:
                logger.info("auth.register.duplicate field=email")
                raise DuplicateEmail()
            if self.store.find_by_username(username) is not None:
                logger.info("auth.register.duplicate field=username")
                raise DuplicateUsername()
            password_hash = self.hasher.hash(req.password)
            try:
                user = self.store.create(username=username, email=email, password_hash=password_hash)
            except UniqueViolation as ex:
                # lost a race with a concurrent registration
                logger.info("auth.register.duplicate field=%s source=store", ex.field)
                raise _duplicate_for(ex)

        logger.info("auth.register.ok user_id=%s", user.id)
        return self._issue_for_user(user)

    def login(self, req: LoginRequest) -> AuthResult:
        self._require(email=req.email, password=req.password)
        email = normalize_email(req.email)

        with self._internal("login"):
            user = self.store.find_by_email(email)
            if user is None:
                # burn the same hashing cost as a real comparison
                self.hasher.verify(req.password, self._dummy_hash)
                logger.info("auth.login.failed reason=unknown_email")
                raise InvalidCredentials()
            if not self.hasher.verify(req.password, user.password_hash):
                logger.info("auth.login.failed reason=bad_password user_id=%s", user.id)
                raise InvalidCredentials()

        if self.hasher.needs_rehash(user.password_hash):
            self._rehash(user, req.password)

        logger.info("auth.login.ok user_id=%s", user.id)
        return self._issue_for_user(user)

    def verify_token(self, token: Optional[str]) -> TokenClaims:
        if not token:
            raise Unauthorized()
        try:
            payload = self.signer.verify(token)
        except TokenExpired:
            logger.info("auth.token.rejected reason=expired")
            raise Unauthorized("Token expired")
        except TokenInvalid as ex:
            logger.info("auth.token.rejected reason=invalid detail=%s", ex)
            raise Unauthorized("Invalid token")
        try:
            return TokenClaims.model_validate(payload)
        except ValidationError:
            logger.info("auth.token.rejected reason=bad_claims")
            raise Unauthorized("Invalid token")

    def get_profile(self, token: Optional[str]) -> PublicUser:
        return self._current_user(token).public()

    def update_profile(self, token: Optional[str], req: UpdateProfileRequest) -> PublicUser:
        user = self._current_user(token)
        if req.username is None and req.email is None:
            raise ValidationFailed("Provide username or email to update", details={"missing": ["username", "email"]})
        supplied = {k: v for k, v in (("username", req.username), ("email", req.email)) if v is not None}
        self._require(**supplied)

        username = normalize_username(req.username) if req.username is not None else None
        email = normalize_email(req.email) if req.email is not None else None
        changes = {}

        with self._internal("update_profile"):
            if email is not None and email != user.email:
                other = self.store.find_by_email(email)
                if other is not None and other.id != user.id:
                    raise DuplicateEmail()
                changes["email"] = email
            if username is not None and username != user.username:
                other = self.store.find_by_username(username)
                if other is not None and other.id != user.id:
                    raise DuplicateUsername()
                changes["username"] = username
            if not changes:
                return user.public()
            try:
                updated = self.store.update(user.id, **changes)
            except UniqueViolation as ex:
                raise _duplicate_for(ex)
            except RecordNotFound:
                raise NotFound()

        logger.info("auth.profile.updated user_id=%s fields=%s", user.id, ",".join(sorted(changes)))
        return updated.public()

    def change_password(self, token: Optional[str], req: ChangePasswordRequest) -> MessageResult:
        user = self._current_user(token)
        self._require(current_password=req.current_password, new_password=req.new_password)
        self._check_password_policy(req.new_password)

        with self._internal("change_password"):
            if not self.hasher.verify(req.current_password, user.password_hash):
                logger.info("auth.password.change_failed user_id=%s", user.id)
                raise InvalidCredentials()
            try:
                self.store.update(user.id, password_hash=self.hasher.hash(req.new_password))
            except RecordNotFound:
                raise NotFound()

        logger.info("auth.password.changed user_id=%s", user.id)
        return MessageResult(message=PASSWORD_CHANGED_MESSAGE)

    def forgot_password(self, req: ForgotPasswordRequest) -> MessageResult:
        self._require(email=req.email)
        with self._internal("forgot_password"):
            user = self.store.find_by_email(normalize_email(req.email))
        if user is not None:
            # delivery is out of scope; record that a reset would be sent
            logger.info("auth.password.reset_requested user_id=%s", user.id)
        else:
            logger.info("auth.password.reset_requested user_id=-")
        return MessageResult(message=FORGOT_PASSWORD_MESSAGE)

    def lookup_username(self, token: Optional[str], username: str) -> PublicUser:
        """Public projection of another user; callers must hold a valid token."""
        self.verify_token(token)
        self._require(username=username)
        with self._internal("lookup_username"):
            user = self.store.find_by_username(normalize_username(username))
        if user is None:
            raise NotFound()
        return user.public()

    # --------- Helpers ----------
    def _current_user(self, token: Optional[str]) -> UserRecord:
        claims = self.verify_token(token)
        with self._internal("current_user"):
            user = self.store.find_by_id(claims.sub)
        if user is None:
            logger.info("auth.token.orphaned user_id=%s", claims.sub)
            raise NotFound()
        return user

    def _issue_for_user(self, user: UserRecord) -> AuthResult:
        claims = {"sub": user.id, "username": user.username, "email": user.email}
        with self._internal("issue_token"):
            token = self.signer.issue(claims, self.cfg.token_ttl_seconds)
        return AuthResult(
            user=user.public(),
            token=token,
            token_type="Bearer",
            expires_in=self.cfg.token_ttl_seconds,
        )

    def _rehash(self, user: UserRecord, password: str) -> None:
        try:
            self.store.update(user.id, password_hash=self.hasher.hash(password))
            logger.info("auth.password.rehashed user_id=%s", user.id)
        except Exception:
            logger.exception("auth.password.rehash_failed user_id=%s", user.id)

    def _check_password_policy(self, password: str) -> None:
        if len(password) < self.cfg.min_password_length:
            raise ValidationFailed(
                f"Password must be at least {self.cfg.min_password_length} characters",
                details={"field": "password"},
            )

    @staticmethod
    def _require(**fields: Optional[str]) -> None:
        missing: List[str] = [
            name for name, value in fields.items()
            if value is None or not isinstance(value, str) or not value.strip()
        ]
        if missing:
            raise ValidationFailed(
                f"Missing required field(s): {', '.join(missing)}",
                details={"missing": missing},
            )
        invalid = [name for name, value in fields.items() if not _is_utf8(value)]
        if invalid:
            raise ValidationFailed(
                f"Invalid characters in field(s): {', '.join(invalid)}",
                details={"invalid": invalid},
            )

    @contextmanager
    def _internal(self, op: str) -> Iterator[None]:
        """Let domain errors through; anything else becomes a generic InternalError."""
        try:
            yield
        except AuthServiceException:
            raise
        except Exception as ex:
            logger.exception("auth.%s.internal_error", op)
            raise InternalError() from ex


