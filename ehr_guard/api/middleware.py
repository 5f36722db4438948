"""API middleware: request logging and request correlation ids."""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ehr_guard.observability import get_observability_logger

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 64


def request_id_for(request: Request) -> str:
    """The caller's ``X-Request-Id`` if it is usable, else a fresh one."""
    supplied = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if supplied and len(supplied) <= MAX_REQUEST_ID_LENGTH:
        return supplied
    return get_observability_logger().generate_request_id()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with a correlation id and logs it with its outcome.

    The id is kept on ``request.state`` so access-decision telemetry written
    while serving the request carries the same id as these log lines, and it
    is echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        request_id = request_id_for(request)
        request.state.request_id = request_id

        client = request.client.host if request.client else "unknown"
        logger.info(f"[{request_id}] {request.method} {request.url.path} client={client}")

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(
            f"[{request_id}] {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s"
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response
