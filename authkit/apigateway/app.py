from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from authkit.authservice import (
    AuthService, AuthSettings, HS256TokenSigner, PasswordHasher,
    auth_router, install_exception_handlers, load_settings,
)
from authkit.authservice.contracts import ClockPort, UWFResponse
from authkit.credentialstore import CredentialStorePort, build_store
from .observability import RequestContextMiddleware, configure_logging
from .settings import APP_NAME, APP_VERSION

logger = logging.getLogger("apigateway")


def build_auth_service(
    settings: AuthSettings,
    store: CredentialStorePort,
    clock: Optional[ClockPort] = None,
) -> AuthService:
    signer = HS256TokenSigner(settings.secret, kid=settings.signing_kid, issuer=settings.issuer, clock=clock)
    hasher = PasswordHasher(iterations=settings.hash_iterations)
    return AuthService(store=store, signer=signer, hasher=hasher, cfg=settings)


def create_app(
    settings: Optional[AuthSettings] = None,
    store: Optional[CredentialStorePort] = None,
    clock: Optional[ClockPort] = None,
) -> FastAPI:
    """
    Build the HTTP app. Settings are resolved here, so a missing AUTH_SECRET
    stops the process at startup with ConfigError. The store is created once,
    shared by every request and closed when the app shuts down.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    store = store or build_store(settings.store_backend)
    service = build_auth_service(settings, store, clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("app.startup store=%s", type(store).__name__)
        try:
            yield
        finally:
            store.close()
            logger.info("app.shutdown store closed")

    app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)
    app.state.auth_service = service
    app.state.store = store
    app.add_middleware(RequestContextMiddleware)
    install_exception_handlers(app)

    @app.get("/", response_model=UWFResponse)
    def root():
        return UWFResponse(ok=True, result={"message": "Auth API is running"})

    @app.get("/health", response_model=UWFResponse)
    def health():
        return UWFResponse(ok=True, result={"status": "ok", "version": APP_VERSION})

    app.include_router(auth_router)
    return app
