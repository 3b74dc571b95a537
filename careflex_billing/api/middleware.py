"""FastAPI middleware for request tracing and metrics"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from careflex_billing.infrastructure.observability.metrics import request_duration_histogram

# Billing endpoints overwrite this with "request" or "upstream"
NO_RECONCILIATION = "none"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Request-ID, or mint one, and echo it back"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Time each request, labelled with the snapshot source it reconciled"""

    async def dispatch(self, request: Request, call_next):
        request.state.reconciliation_source = NO_RECONCILIATION
        start_time = time.time()

        response = await call_next(request)

        request_duration_histogram.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
            source=request.state.reconciliation_source,
        ).observe(time.time() - start_time)

        return response
