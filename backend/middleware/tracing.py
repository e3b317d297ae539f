import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

TRACE_ID_CTX_VAR: ContextVar[str] = ContextVar("trace_id", default="")

logger = logging.getLogger("petlab")


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with a trace_id (context var + x-trace-id header) and
    emit one access log line per request.
    """
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
        TRACE_ID_CTX_VAR.set(trace_id)
        request.state.trace_id = trace_id
        started = time.perf_counter()

        response = await call_next(request)

        logger.info({
            "function": "access",
            "method": request.method,
            "path": str(request.url.path),
            "status": response.status_code,
            "elapsed_ms": round((time.perf_counter() - started) * 1000, 1),
            "trace_id": trace_id,
        })
        response.headers["x-trace-id"] = trace_id
        return response
