"""
Request logging middleware
"""
import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Polled by orchestrators, logged at DEBUG only
PROBE_PATHS = frozenset({"/health", "/health/liveness", "/health/readiness"})


class LoggingContextMiddleware(BaseHTTPMiddleware):
    """
    Tags every log record of a request with its id, method, path and client,
    logs the outcome with its duration and echoes the id in X-Request-ID
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        path = request.url.path
        LoggingConfig.set_context(
            request_id=request_id,
            method=request.method,
            path=path,
            client_host=request.client.host if request.client else None,
        )
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                exc_info=True,
                extra={"error_type": type(e).__name__, "duration_ms": self._elapsed_ms(started)}
            )
            raise
        else:
            logger.log(
                self._outcome_level(path, response.status_code),
                "Request completed",
                extra={"status_code": response.status_code, "duration_ms": self._elapsed_ms(started)}
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            LoggingConfig.clear_context()

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    @staticmethod
    def _outcome_level(path: str, status_code: int) -> int:
        if status_code >= 500:
            return logging.ERROR
        if status_code in (401, 403):
            # Rejected nonces
            return logging.WARNING
        if path in PROBE_PATHS:
            return logging.DEBUG
        return logging.INFO
