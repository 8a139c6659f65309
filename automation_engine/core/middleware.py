"""Middleware for error handling and request logging."""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import (
    ActionConfigurationError, ActionRegistryError, ConfigurationError, StorageError, TemplateNotFoundError,
    TransientError, WorkflowBusyError, WorkflowDisabledError, WorkflowEngineError,
    WorkflowNotFoundError, WorkflowValidationError, WorkflowVersionConflictError,
    create_error_response,
)
from .logging import clear_logging_context, get_logger, set_logging_context


logger = get_logger(__name__)


def http_status_for_error(error: WorkflowEngineError) -> int:
    """Map an engine error to an HTTP status code."""
    if isinstance(error, (WorkflowValidationError, ActionConfigurationError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, (WorkflowNotFoundError, TemplateNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, (WorkflowDisabledError, WorkflowBusyError, WorkflowVersionConflictError)):
        return status.HTTP_409_CONFLICT
    if isinstance(error, ActionRegistryError):
        return status.HTTP_404_NOT_FOUND if error.context.get("operation") == "describe" else status.HTTP_400_BAD_REQUEST
    if isinstance(error, (StorageError, TransientError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(error, ConfigurationError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catches errors that escape the endpoints and renders them as JSON."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())

        set_logging_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown"
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        except WorkflowEngineError as e:
            logger.warning(
                f"Workflow engine error: {request.method} {request.url.path} - Error: {e.error_code}",
                extra={"extra_fields": {"error_details": e.to_dict()}}
            )
            return JSONResponse(
                status_code=http_status_for_error(e),
                content=create_error_response(e),
                headers={"X-Request-ID": request_id}
            )

        except Exception as e:
            logger.error(
                f"Unexpected error: {request.method} {request.url.path} - Error: {e}",
                exc_info=True
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "details": {
                        "error_type": type(e).__name__,
                        "timestamp": datetime.now(timezone.utc).isoformat()
                    },
                    "request_id": request_id
                },
                headers={"X-Request-ID": request_id}
            )

        finally:
            clear_logging_context()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its status and duration, and flags slow ones."""

    def __init__(self, app, slow_request_threshold: float = 5.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(
            f"Request completed: {request.method} {request.url.path} - "
            f"Status: {response.status_code} - Duration: {duration:.3f}s"
        )
        if duration > self.slow_request_threshold:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path} - "
                f"Duration: {duration:.3f}s (threshold: {self.slow_request_threshold}s)"
            )

        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response
