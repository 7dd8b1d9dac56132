"""
Request Context Middleware.

Correlation and timing for the HTTP API. Producers that submit dispatches
over HTTP may pass their own X-Request-ID; it is stored on the
notification's metadata and bound to every log line of the request, so a
delivery can be traced back to the request that created it.
"""

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from modules.notifier.core.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
CALLER_HEADER = "X-Caller-ID"

# Inbound ids are echoed into logs and stored on notifications
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")
_VALID_CALLER = re.compile(r"^[a-z0-9._-]{1,64}$")


def resolve_request_id(header_value: str | None) -> str:
    """The caller's id when well formed, otherwise a fresh UUID."""
    if header_value and _VALID_REQUEST_ID.match(header_value):
        return header_value
    return str(uuid.uuid4())


def resolve_caller(header_value: str | None) -> str:
    caller = (header_value or "").strip().lower()
    return caller if _VALID_CALLER.match(caller) else "unknown"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Sets request.state.request_id and request.state.caller, binds them with
    method and path to structlog, and adds X-Request-ID and X-Response-Time
    to the response.
    """

    def __init__(self, app, request_logging: bool = True) -> None:
        super().__init__(app)
        self.request_logging = request_logging

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        caller = resolve_caller(request.headers.get(CALLER_HEADER))
        request.state.request_id = request_id
        request.state.caller = caller

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            source="api",
            request_id=request_id,
            caller=caller,
            method=request.method,
            path=request.url.path,
        )
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request failed with exception",
                extra={"duration_ms": self._elapsed_ms(started), "error_type": type(exc).__name__},
            )
            raise
        else:
            duration_ms = self._elapsed_ms(started)
            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms}ms"
            if self.request_logging:
                logger.info(
                    "Request completed",
                    extra={"status_code": response.status_code, "duration_ms": duration_ms},
                )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
