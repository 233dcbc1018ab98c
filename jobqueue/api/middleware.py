"""
Request metrics and logging context middleware.
"""

import time
import uuid
from collections.abc import Callable

from fastapi import Request

from jobqueue.observability.logging import bind_request_context, clear_request_context
from jobqueue.observability.metrics import get_metrics

# Paths excluded from request metrics
UNTRACKED_PATHS = ("/metrics", "/live")


def _endpoint_label(request: Request) -> str:
    """Route template for the request, falling back to the raw path."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def create_request_metrics_middleware() -> Callable:
    """
    Create middleware recording request count and latency.

    Returns:
        The middleware function.
    """

    async def request_metrics_middleware(request: Request, call_next: Callable):
        """Middleware to record metrics and bind log context per request."""
        if request.url.path in UNTRACKED_PATHS:
            return await call_next(request)

        bind_request_context(
            request_id=uuid.uuid4().hex,
            method=request.method,
            path=request.url.path,
        )
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        get_metrics().record_api_request(
            method=request.method,
            endpoint=_endpoint_label(request),
            status=response.status_code,
            duration_seconds=time.perf_counter() - started,
        )
        return response

    return request_metrics_middleware
