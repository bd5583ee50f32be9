from .app import create_app, build_auth_service
from .observability import RequestContextMiddleware, configure_logging

__all__ = ["create_app", "build_auth_service", "RequestContextMiddleware", "configure_logging"]
