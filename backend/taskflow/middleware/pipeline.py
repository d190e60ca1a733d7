"""
Middleware Pipeline

Ordered onion of request-processing stages. Each stage runs its pre-logic,
awaits ``call_next()`` for the rest of the chain (or returns early to
short-circuit), then runs its post-logic on the way out.
"""

from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .context import NextHandler, RequestContext, UserIdExtractor

logger = structlog.get_logger(__name__)

Endpoint = Callable[[RequestContext], Awaitable[Response]]


class PipelineStage:
    """
    Base class for pipeline stages.

    ``order`` fixes the stage's position in the canonical sequence:
    security, error boundary, logging, rate limiting, validation,
    compression, response caching.
    """

    order: int = 0
    name: str = "stage"

    async def __call__(
        self, context: RequestContext, call_next: NextHandler
    ) -> Response:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class MiddlewarePipeline:
    """
    A fixed, ordered chain of stages.

    Stages are sorted by their canonical order (stable, so repeated stages
    of one kind keep the order they were given in). Omitting a stage never
    changes the relative order of the others.
    """

    def __init__(self, stages: Iterable[PipelineStage]):
        self.stages: Tuple[PipelineStage, ...] = tuple(
            sorted(stages, key=lambda stage: stage.order)
        )

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    async def handle(self, context: RequestContext, endpoint: Endpoint) -> Response:
        """
        Run the request through every stage and then the endpoint.

        Headers collected on ``context.response_headers`` are applied to the
        outgoing response last, so they survive short-circuits and errors.
        """

        async def dispatch(index: int) -> Response:
            if index == len(self.stages):
                return await endpoint(context)
            stage = self.stages[index]
            return await stage(context, lambda: dispatch(index + 1))

        response = await dispatch(0)

        for header_name, value in context.response_headers.items():
            response.headers[header_name] = value

        return response

    def __repr__(self) -> str:
        return f"MiddlewarePipeline({', '.join(self.stage_names)})"


class PipelineMiddleware(BaseHTTPMiddleware):
    """
    Starlette middleware that routes each request through a pipeline.

    The pipeline is chosen by the longest matching path prefix in
    ``routes``; requests matching no prefix use ``default``. The mapping is
    configuration supplied by the application.
    """

    def __init__(
        self,
        app: ASGIApp,
        default: MiddlewarePipeline,
        routes: Optional[Sequence[Tuple[str, MiddlewarePipeline]]] = None,
        user_id_extractor: Optional[UserIdExtractor] = None,
    ):
        super().__init__(app)
        self.default = default
        # Longest prefix first
        self.routes = sorted(routes or [], key=lambda route: len(route[0]), reverse=True)
        self.user_id_extractor = user_id_extractor

    def select_pipeline(self, path: str) -> MiddlewarePipeline:
        for prefix, pipeline in self.routes:
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return pipeline
        return self.default

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        context = RequestContext.from_request(request, self.user_id_extractor)
        pipeline = self.select_pipeline(context.path)

        async def endpoint(ctx: RequestContext) -> Response:
            return await call_next(request)

        return await pipeline.handle(context, endpoint)
