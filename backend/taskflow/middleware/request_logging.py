"""
Request Logging Stage

Times the whole downstream request, logs one line per request and records
the duration as a metric tagged with status, caller ip and user agent.
"""

import structlog
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import Response

from ..constants import USER_AGENT_LOG_LIMIT
from ..core.exceptions import RequestValidationError, TaskflowError
from ..monitoring.performance_monitor import PerformanceMonitor
from ..services.rate_limiting.identifiers import network_identifier
from .context import NextHandler, RequestContext
from .pipeline import PipelineStage

logger = structlog.get_logger(__name__)


class RequestLoggingStage(PipelineStage):
    """Log and time every request."""

    order = 3
    name = "logging"

    def __init__(self, performance_monitor: PerformanceMonitor):
        self.performance_monitor = performance_monitor

    async def __call__(
        self, context: RequestContext, call_next: NextHandler
    ) -> Response:
        user_agent = (context.header("user-agent") or "")[:USER_AGENT_LOG_LIMIT]
        stop = self.performance_monitor.start_timing(
            f"{context.method} {context.path}",
            {
                "method": context.method,
                "path": context.path,
                "ip": network_identifier(context),
                "user_agent": user_agent or None,
                "user_id": context.user_id,
            },
        )

        status_code = 500
        try:
            response = await call_next()
            status_code = response.status_code
            return response
        except TaskflowError as e:
            status_code = e.status_code
            raise
        except PydanticValidationError:
            status_code = RequestValidationError.status_code
            raise
        finally:
            duration_ms = stop(status=status_code)
            self._log(context, status_code, duration_ms)

    def _log(self, context: RequestContext, status_code: int, duration_ms: float):
        if status_code >= 500:
            log = logger.error
        elif status_code >= 400:
            log = logger.warning
        else:
            log = logger.info

        log(
            "Request completed",
            method=context.method,
            path=context.path,
            status=status_code,
            duration_ms=round(duration_ms, 2),
            user_id=context.identity,
        )
