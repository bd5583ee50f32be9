import pytest

from authkit.apigateway.app import build_auth_service
from authkit.authservice.contracts import (
    RegisterRequest, LoginRequest, UpdateProfileRequest, ChangePasswordRequest, ForgotPasswordRequest,
)
from authkit.authservice.errors import (
    ValidationFailed, DuplicateEmail, DuplicateUsername, InvalidCredentials,
    Unauthorized, NotFound, InternalError,
)
from authkit.authservice.service import FORGOT_PASSWORD_MESSAGE
from authkit.credentialstore import InMemoryCredentialStore, StoreError, UniqueViolation


@pytest.fixture
def store():
    return InMemoryCredentialStore()


@pytest.fixture
def svc(settings, store, clock):
    return build_auth_service(settings, store, clock)


def _register(svc, username="alice", email="a@x.com", password="secret123"):
    return svc.register(RegisterRequest(username=username, email=email, password=password))


def test_register_returns_public_user_and_token(svc, store):
    res = _register(svc)
    assert res.user.username == "alice"
    assert res.user.email == "a@x.com"
    assert res.token_type == "Bearer"
    assert res.expires_in == 3600
    assert "password_hash" not in res.model_dump()["user"]
    stored = store.find_by_id(res.user.id)
    assert stored.password_hash != "secret123"
    assert svc.verify_token(res.token).sub == res.user.id


def test_register_returns_stored_username_not_email(svc):
    res = _register(svc, username="  bob  ", email="B@X.com")
    assert res.user.username == "bob"
    assert res.user.email == "b@x.com"


@pytest.mark.parametrize("fields", [
    {"username": None, "email": "a@x.com", "password": "pw"},
    {"username": "alice", "email": "", "password": "pw"},
    {"username": "alice", "email": "a@x.com", "password": ""},
    {"username": "   ", "email": "a@x.com", "password": "pw"},
])
def test_register_requires_all_fields(svc, store, fields):
    with pytest.raises(ValidationFailed):
        svc.register(RegisterRequest(**fields))
    assert store.find_by_email("a@x.com") is None


def test_register_duplicate_email_regardless_of_username(svc):
    _register(svc)
    with pytest.raises(DuplicateEmail):
        _register(svc, username="someone-else", email="A@x.com")


def test_register_duplicate_username(svc):
    _register(svc)
    with pytest.raises(DuplicateUsername):
        _register(svc, email="other@x.com")


def test_register_store_race_maps_to_duplicate(svc, store, monkeypatch):
    def racing_create(**kwargs):
        raise UniqueViolation("username", kwargs["username"])

    monkeypatch.setattr(store, "create", racing_create)
    with pytest.raises(DuplicateUsername):
        _register(svc)


def test_register_store_failure_is_internal_error(svc, store, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreError("connection reset by peer")

    monkeypatch.setattr(store, "find_by_email", broken)
    with pytest.raises(InternalError) as ex:
        _register(svc)
    assert "connection reset" not in ex.value.message


def test_hasher_failure_is_internal_error_not_bad_password(svc, monkeypatch):
    _register(svc)

    def boom(*args, **kwargs):
        raise MemoryError()

    monkeypatch.setattr(svc.hasher, "verify", boom)
    with pytest.raises(InternalError):
        svc.login(LoginRequest(email="a@x.com", password="secret123"))


def test_login_success_and_failures_share_message(svc):
    _register(svc)
    ok = svc.login(LoginRequest(email="A@X.COM", password="secret123"))
    assert ok.user.username == "alice"

    with pytest.raises(InvalidCredentials) as wrong_pw:
        svc.login(LoginRequest(email="a@x.com", password="wrong"))
    with pytest.raises(InvalidCredentials) as no_user:
        svc.login(LoginRequest(email="nobody@x.com", password="secret123"))
    assert wrong_pw.value.message == no_user.value.message
    assert wrong_pw.value.code == no_user.value.code


def test_login_requires_fields(svc):
    with pytest.raises(ValidationFailed):
        svc.login(LoginRequest(email="a@x.com"))


def test_login_rehashes_outdated_hash(svc, store):
    from authkit.authservice.hashing import PasswordHasher

    rec = store.create(username="old", email="old@x.com", password_hash=PasswordHasher(iterations=10).hash("pw"))
    svc.login(LoginRequest(email="old@x.com", password="pw"))
    assert store.find_by_id(rec.id).password_hash.startswith("pbkdf2_sha256$1000$")


def test_profile_with_valid_token(svc):
    res = _register(svc)
    user = svc.get_profile(res.token)
    assert user.model_dump() == {"id": res.user.id, "username": "alice", "email": "a@x.com"}


def test_profile_rejects_expired_token(svc, clock):
    res = _register(svc)
    clock.advance(3601)
    with pytest.raises(Unauthorized):
        svc.get_profile(res.token)


@pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
def test_profile_rejects_bad_tokens(svc, token):
    with pytest.raises(Unauthorized):
        svc.get_profile(token)


def test_profile_not_found_after_delete(svc, store):
    res = _register(svc)
    store.delete(res.user.id)
    with pytest.raises(NotFound):
        svc.get_profile(res.token)


def test_update_profile_changes_fields(svc, store):
    res = _register(svc)
    user = svc.update_profile(res.token, UpdateProfileRequest(username="alicia", email="Alicia@x.com"))
    assert user.username == "alicia"
    assert user.email == "alicia@x.com"
    assert store.find_by_email("a@x.com") is None
    # token still identifies the same record by id
    assert svc.get_profile(res.token).username == "alicia"


def test_update_profile_uniqueness(svc):
    a = _register(svc)
    _register(svc, username="bob", email="b@x.com")
    with pytest.raises(DuplicateEmail):
        svc.update_profile(a.token, UpdateProfileRequest(email="b@x.com"))
    with pytest.raises(DuplicateUsername):
        svc.update_profile(a.token, UpdateProfileRequest(username="bob"))


def test_update_profile_own_values_are_not_duplicates(svc):
    a = _register(svc)
    user = svc.update_profile(a.token, UpdateProfileRequest(username="alice", email="a@x.com"))
    assert user.username == "alice"


def test_update_profile_validation(svc):
    a = _register(svc)
    with pytest.raises(ValidationFailed):
        svc.update_profile(a.token, UpdateProfileRequest())
    with pytest.raises(ValidationFailed):
        svc.update_profile(a.token, UpdateProfileRequest(username=" "))


def test_update_profile_requires_valid_token(svc):
    with pytest.raises(Unauthorized):
        svc.update_profile("bad", UpdateProfileRequest(username="x"))


def test_change_password(svc):
    a = _register(svc)
    msg = svc.change_password(a.token, ChangePasswordRequest(current_password="secret123", new_password="n3w-pass"))
    assert msg.message
    with pytest.raises(InvalidCredentials):
        svc.login(LoginRequest(email="a@x.com", password="secret123"))
    assert svc.login(LoginRequest(email="a@x.com", password="n3w-pass")).user.id == a.user.id


def test_change_password_wrong_current(svc):
    a = _register(svc)
    with pytest.raises(InvalidCredentials):
        svc.change_password(a.token, ChangePasswordRequest(current_password="nope", new_password="x"))


def test_forgot_password_is_uniform(svc):
    _register(svc)
    known = svc.forgot_password(ForgotPasswordRequest(email="a@x.com"))
    unknown = svc.forgot_password(ForgotPasswordRequest(email="ghost@x.com"))
    assert known == unknown
    assert known.message == FORGOT_PASSWORD_MESSAGE
    with pytest.raises(ValidationFailed):
        svc.forgot_password(ForgotPasswordRequest(email=""))


def test_lookup_username(svc):
    a = _register(svc)
    assert svc.lookup_username(a.token, "alice").id == a.user.id
    with pytest.raises(NotFound):
        svc.lookup_username(a.token, "ghost")
    with pytest.raises(Unauthorized):
        svc.lookup_username(None, "alice")
    with pytest.raises(Unauthorized):
        svc.lookup_username("garbage", "alice")


LONE_SURROGATE = "\ud800"


@pytest.mark.parametrize("backend", ["memory", "kv"])
@pytest.mark.parametrize("field", ["username", "email", "password"])
def test_register_rejects_unencodable_text(settings, clock, backend, field):
    from authkit.credentialstore import build_store

    store = build_store(backend)
    svc = build_auth_service(settings, store, clock)
    fields = {"username": "bob", "email": "b@x.com", "password": "secret123"}
    fields[field] = f"x{LONE_SURROGATE}"
    with pytest.raises(ValidationFailed) as ex:
        svc.register(RegisterRequest(**fields))
    assert ex.value.details == {"invalid": [field]}
    assert store.find_by_email("b@x.com") is None
    assert store.find_by_username("bob") is None


def test_other_operations_reject_unencodable_text(svc):
    a = _register(svc)
    bad = f"x{LONE_SURROGATE}"
    with pytest.raises(ValidationFailed):
        svc.login(LoginRequest(email="a@x.com", password=bad))
    with pytest.raises(ValidationFailed):
        svc.update_profile(a.token, UpdateProfileRequest(username=bad))
    with pytest.raises(ValidationFailed):
        svc.update_profile(a.token, UpdateProfileRequest(email=bad))
    with pytest.raises(ValidationFailed):
        svc.change_password(a.token, ChangePasswordRequest(current_password="secret123", new_password=bad))
    with pytest.raises(ValidationFailed):
        svc.lookup_username(a.token, bad)
    with pytest.raises(ValidationFailed):
        svc.forgot_password(ForgotPasswordRequest(email=bad))
    assert svc.get_profile(a.token).username == "alice"


def test_dummy_hash_is_fixed_at_construction(svc, monkeypatch):
    before = svc._dummy_hash
    assert svc.hasher.verify("dummy-password-for-timing", before)

    def no_hashing(*args, **kwargs):
        raise AssertionError("login must not hash on the request path")

    monkeypatch.setattr(svc.hasher, "hash", no_hashing)
    with pytest.raises(InvalidCredentials):
        svc.login(LoginRequest(email="ghost@x.com", password="pw"))
    assert svc._dummy_hash == before
