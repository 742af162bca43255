"""Middleware for HTTP error logging."""

import logging
import re
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from docvault.core.logging import upload_id_context

logger = logging.getLogger(__name__)

_UPLOAD_PATH = re.compile(r"/upload/files/(?P<upload_id>[A-Za-z0-9_-]+)/?$")


class HTTPErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to ensure all HTTP errors are logged.

    - 4xx responses: logged at WARN level
    - 5xx responses: logged at ERROR level

    Requests addressed to a single upload tag every log line written while
    they are handled with that upload's id.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()

        match = _UPLOAD_PATH.search(request.url.path)
        upload_id = match.group("upload_id") if match else None
        if upload_id:
            upload_id_context.set(upload_id)

        response = await call_next(request)

        if response.status_code < 400:
            return response

        is_server_error = response.status_code >= 500
        logger.log(
            logging.ERROR if is_server_error else logging.WARNING,
            "Server error response" if is_server_error else "Client error response",
            extra={
                "http_status": response.status_code,
                "method": request.method,
                "path": request.url.path,
                "upload_id": upload_id,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return response
