from typing import Optional

from fastapi import Header, Request

from .errors import Unauthorized
from .service import AuthService


def get_auth_service(request: Request) -> AuthService:
    """
    The AuthService built once by the app factory and kept on app.state.
    Tests can swap it with app.dependency_overrides[get_auth_service].
    """
    svc = getattr(request.app.state, "auth_service", None)
    if svc is None:
        raise RuntimeError("AuthService not configured on app.state")
    return svc


def get_bearer_token(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> str:
    """
    Extract the token from 'Authorization: Bearer <token>'.
    A missing header or another scheme is rejected before the service is reached.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("Missing or invalid Authorization header")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthorized("Missing or invalid Authorization header")
    return token


