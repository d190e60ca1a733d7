"""
Error Boundary Stage

The single point where exceptions raised by downstream stages and route
handlers become HTTP responses. Clients always get a JSON body with an
``error`` field; internal details are attached only outside production.
"""

import structlog
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import JSONResponse, Response

from ..core.exceptions import RequestValidationError, TaskflowError
from ..monitoring.performance_monitor import PerformanceMonitor
from .context import NextHandler, RequestContext
from .pipeline import PipelineStage

logger = structlog.get_logger(__name__)


class ErrorBoundaryStage(PipelineStage):
    """Convert raised errors into structured responses and record them."""

    order = 2
    name = "error_boundary"

    def __init__(self, performance_monitor: PerformanceMonitor, expose_details: bool):
        self.performance_monitor = performance_monitor
        self.expose_details = expose_details

    async def __call__(
        self, context: RequestContext, call_next: NextHandler
    ) -> Response:
        try:
            return await call_next()
        except Exception as e:
            return self._handle(context, e)

    def _handle(self, context: RequestContext, error: Exception) -> JSONResponse:
        self.performance_monitor.add_metric(
            "api.error",
            0,
            {
                "error": str(error) or type(error).__name__,
                "error_type": type(error).__name__,
                "path": context.path,
                "method": context.method,
                "user_id": context.user_id,
            },
        )

        if isinstance(error, PydanticValidationError):
            error = RequestValidationError(
                message=f"{error.error_count()} validation error(s)",
                details={
                    "errors": error.errors(
                        include_url=False, include_context=False, include_input=False
                    )
                },
            )

        if isinstance(error, TaskflowError):
            logger.warning(
                "Request failed",
                path=context.path,
                method=context.method,
                status=error.status_code,
                error=error.message,
            )
            return JSONResponse(
                status_code=error.status_code, content=self._known_body(error)
            )

        logger.error(
            "Unhandled request error",
            path=context.path,
            method=context.method,
            error=str(error),
            exc_info=error,
        )

        content = {"error": "Internal server error"}
        if self.expose_details:
            content["details"] = str(error) or type(error).__name__
        return JSONResponse(status_code=500, content=content)

    def _known_body(self, error: TaskflowError) -> dict:
        if isinstance(error, RequestValidationError):
            body = {"error": error.error, "details": error.message}
            if self.expose_details and error.details:
                body["context"] = error.details
            return body

        body = {"error": error.error}
        if self.expose_details and error.message != error.error:
            body["details"] = error.message
        return body
