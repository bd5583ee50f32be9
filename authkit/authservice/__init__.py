from .service import AuthService
from .crypto import HS256TokenSigner, SystemClock
from .hashing import PasswordHasher
from .config import AuthSettings, load_settings
from .deps import get_auth_service, get_bearer_token
from .routes import router as auth_router, install_exception_handlers

__all__ = [
    "AuthService",
    "HS256TokenSigner",
    "SystemClock",
    "PasswordHasher",
    "AuthSettings",
    "load_settings",
    "get_auth_service",
    "get_bearer_token",
    "auth_router",
    "install_exception_handlers",
]
