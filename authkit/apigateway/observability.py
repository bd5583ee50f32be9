from __future__ import annotations
import time, uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import logging

from .settings import LOG_FORMAT

logger = logging.getLogger("apigateway")


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(level.upper())


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        start = time.perf_counter()
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())

        request.state.request_id = request_id
        request.state.trace_id = trace_id

        logger.info(
            "request.start method=%s path=%s request_id=%s", request.method, request.url.path, request_id,
            extra={"request_id": request_id, "trace_id": trace_id, "path": request.url.path, "method": request.method}
        )
        try:
            response: Response = await call_next(request)
        except Exception:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.exception(
                "request.exception request_id=%s duration_ms=%s", request_id, duration_ms,
                extra={"request_id": request_id, "trace_id": trace_id, "duration_ms": duration_ms}
            )
            raise
        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["x-request-id"] = request_id
        response.headers["x-trace-id"] = trace_id
        logger.info(
            "request.end status=%s duration_ms=%s request_id=%s", response.status_code, duration_ms, request_id,
            extra={"request_id": request_id, "trace_id": trace_id, "status": response.status_code, "duration_ms": duration_ms}
        )
        return response
