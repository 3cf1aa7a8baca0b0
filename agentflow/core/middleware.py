"""HTTP middleware: request correlation, engine error mapping, timing."""

import time
import uuid
from datetime import datetime
from typing import Callable, Dict, Type

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import (
    WorkflowEngineError, StructuralError, ExecutionStateError, TransientError,
    create_error_response
)
from .logging import get_logger, set_logging_context, clear_logging_context


logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Checked in order; the first matching class wins.
ERROR_STATUS_CODES: Dict[Type[WorkflowEngineError], int] = {
    StructuralError: 422,
    TransientError: 503,
}


def status_code_for_error(error: WorkflowEngineError) -> int:
    """HTTP status code for a workflow engine error.

    Structural graph problems are the caller's fault (422), a missing
    execution is 404, and everything else is a server-side failure.
    """
    if isinstance(error, ExecutionStateError) and "not found" in error.message.lower():
        return 404
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500


def _agent_id_from_path(path: str) -> str:
    parts = path.strip("/").split("/")
    if "agents" in parts:
        index = parts.index("agents")
        if index + 1 < len(parts):
            return parts[index + 1]
    return ""


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Correlates log lines with a request ID and renders engine errors as JSON.

    An incoming ``X-Request-ID`` header is reused so callers can trace a
    run across services; otherwise a new one is generated.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        started = time.perf_counter()

        context = {"request_id": request_id, "path": request.url.path}
        agent_id = _agent_id_from_path(request.url.path)
        if agent_id:
            context["agent_id"] = agent_id
        set_logging_context(**context)

        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        except WorkflowEngineError as e:
            status_code = status_code_for_error(e)
            logger.warning(
                f"{request.method} {request.url.path} -> {status_code}: {e.error_code}",
                extra={"extra_fields": {"error_details": e.to_dict()}}
            )
            return JSONResponse(
                status_code=status_code,
                content=create_error_response(e),
                headers={REQUEST_ID_HEADER: request_id}
            )

        except Exception as e:
            logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "details": {"error_type": type(e).__name__, "timestamp": datetime.utcnow().isoformat()},
                    "request_id": request_id
                },
                headers={REQUEST_ID_HEADER: request_id}
            )

        finally:
            clear_logging_context()


class PerformanceMonitoringMiddleware(BaseHTTPMiddleware):
    """Reports response time in milliseconds and warns about slow workflow runs."""

    def __init__(self, app, slow_request_ms: float = 5000.0):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        if elapsed_ms > self.slow_request_ms:
            logger.warning(f"Slow request: {request.method} {request.url.path} took {elapsed_ms:.0f}ms")

        response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.1f}"
        return response
