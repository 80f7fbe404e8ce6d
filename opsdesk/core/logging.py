import logging
import sys
import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from opsdesk.core.config import LOG_LEVEL

access_logger = logging.getLogger("opsdesk.access")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path != "/health":
            duration_ms = (time.perf_counter() - start) * 1000
            access_logger.info(
                "%s %s -> %s (%.1f ms)",
                request.method, request.url.path, response.status_code, duration_ms,
            )
        return response


class NoCacheMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        return response
