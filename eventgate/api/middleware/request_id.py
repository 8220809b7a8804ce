"""
Request correlation and access logging.

The identity proxy forwards an X-Request-ID; it is trusted only when it
looks like an id. Anything else is replaced, so log lines and audit
metadata never carry caller-controlled text of arbitrary size.
"""

import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from eventgate.logging_config import get_logger, principal_id_var, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
USER_ID_HEADER = "X-User-Id"
MAX_REQUEST_ID_LENGTH = 128
SLOW_REQUEST_MS = 500

_REQUEST_ID_RE = re.compile(r"[A-Za-z0-9._:\-]{1,%d}" % MAX_REQUEST_ID_LENGTH)


def accept_request_id(value: Optional[str]) -> Optional[str]:
    """The incoming id if it is safe to log and store, else None."""
    if value and _REQUEST_ID_RE.fullmatch(value):
        return value
    return None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id to the logging context for the life of a request.

    The id is echoed on every response. Each request is logged once on
    completion with method, path, status and duration; requests slower
    than SLOW_REQUEST_MS are logged at WARNING.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = accept_request_id(incoming)
        if request_id is None:
            request_id = str(uuid.uuid4())
            if incoming:
                logger.debug(
                    "Replaced malformed request id",
                    extra={"received_length": len(incoming)},
                )

        request.state.request_id = request_id
        request_token = request_id_var.set(request_id)
        principal_token = principal_id_var.set(None)
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            self._log_request(request, status_code, (time.perf_counter() - start) * 1000)
            principal_id_var.reset(principal_token)
            request_id_var.reset(request_token)

    @staticmethod
    def _log_request(request: Request, status_code: int, duration_ms: float) -> None:
        fields = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 1),
            "user_id": request.headers.get(USER_ID_HEADER, "-")[:64],
        }
        if duration_ms > SLOW_REQUEST_MS:
            logger.warning("Slow request", extra=fields)
        else:
            logger.info("%s %s %d", request.method, request.url.path, status_code, extra=fields)
