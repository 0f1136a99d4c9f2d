"""
Correlation ID middleware for the Fulfillment Service.

Every request gets ``request.state.correlation_id``, taken from the
``X-Correlation-ID`` header when the caller sends one. The id is echoed back
on the response and flows into error envelopes and published events.
"""

import time
import uuid
from typing import Awaitable, Callable, List, Optional

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ...utils.logging import setup_fulfillment_logging as setup_logging

logger = setup_logging("fulfillment_service.request_context")

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: FastAPI, exclude_paths: Optional[List[str]] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or ["/health"]

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id

        if request.url.path not in self.exclude_paths:
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                extra={
                    "correlation_id": correlation_id,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
        return response
