"""Request logging middleware.

Tags every request with a request_id (the caller's X-Request-ID when it is
well-formed, otherwise a fresh one), stores it on request.state for the
ApiResponse envelope, echoes it in the response header and logs one line
per request:

    INFO [POST] /api/v1/orders → 200 (23ms) req_a1b2c3d4e5f6

Server errors are logged at ERROR so they surface without debug logging.
"""

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.mk_common.response import new_request_id

logger = logging.getLogger("mk.request")

_REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9_\-]{8,64}$")


def _request_id(request: Request) -> str:
    supplied = request.headers.get(_REQUEST_ID_HEADER)
    if supplied and _VALID_REQUEST_ID.match(supplied):
        return supplied
    return new_request_id()


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        level = logging.ERROR if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "[%s] %s → %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        response.headers[_REQUEST_ID_HEADER] = request_id
        return response
