"""Tests for pipeline composition and stage ordering."""

import pytest
from starlette.responses import JSONResponse, PlainTextResponse

from taskflow.middleware.context import RequestContext
from taskflow.middleware.pipeline import MiddlewarePipeline, PipelineStage
from taskflow.middleware.stacks import (
    api_pipeline,
    auth_pipeline,
    build_middleware_stack,
    public_pipeline,
    search_pipeline,
    upload_pipeline,
)


class RecordingStage(PipelineStage):
    def __init__(self, order, name, events, short_circuit=False):
        self.order = order
        self.name = name
        self.events = events
        self.short_circuit = short_circuit

    async def __call__(self, context, call_next):
        self.events.append(f"{self.name}:before")
        if self.short_circuit:
            context.set_header("X-Stopped-By", self.name)
            return PlainTextResponse("stopped", status_code=418)
        response = await call_next()
        self.events.append(f"{self.name}:after")
        return response


def make_context(method="GET", path="/api/v1/tasks", **kwargs):
    return RequestContext.build(method, path, **kwargs)


class TestMiddlewarePipeline:
    @pytest.mark.asyncio
    async def test_stages_run_as_onion_in_canonical_order(self):
        events = []
        pipeline = MiddlewarePipeline(
            [
                RecordingStage(3, "logging", events),
                RecordingStage(1, "security", events),
                RecordingStage(2, "errors", events),
            ]
        )

        async def endpoint(context):
            events.append("endpoint")
            return JSONResponse({"ok": True})

        await pipeline.handle(make_context(), endpoint)

        assert events == [
            "security:before",
            "errors:before",
            "logging:before",
            "endpoint",
            "logging:after",
            "errors:after",
            "security:after",
        ]

    @pytest.mark.asyncio
    async def test_short_circuit_skips_downstream_and_keeps_headers(self):
        events = []
        pipeline = MiddlewarePipeline(
            [
                RecordingStage(1, "outer", events),
                RecordingStage(4, "limiter", events, short_circuit=True),
                RecordingStage(7, "inner", events),
            ]
        )

        async def endpoint(context):
            events.append("endpoint")
            return JSONResponse({})

        response = await pipeline.handle(make_context(), endpoint)

        assert response.status_code == 418
        assert response.headers["X-Stopped-By"] == "limiter"
        assert events == ["outer:before", "limiter:before", "outer:after"]


class TestStacks:
    def test_full_stack_order(self, services):
        pipeline = build_middleware_stack(services)

        assert pipeline.stage_names == [
            "security",
            "error_boundary",
            "logging",
            "rate_limit",
            "validation",
            "compression",
            "cache",
        ]

    def test_omitting_stages_keeps_relative_order(self, services):
        pipeline = build_middleware_stack(
            services,
            enable_rate_limit=False,
            enable_caching=False,
            enable_performance_tracking=False,
        )

        assert pipeline.stage_names == [
            "security",
            "error_boundary",
            "validation",
            "compression",
        ]

    def test_presets(self, services):
        assert "cache" in api_pipeline(services).stage_names
        assert "cache" not in auth_pipeline(services).stage_names
        assert "rate_limit" not in public_pipeline(services).stage_names
        assert "cache" not in public_pipeline(services, enable_caching=False).stage_names

        upload_limits = [
            stage.limiter.name
            for stage in upload_pipeline(services).stages
            if stage.name == "rate_limit"
        ]
        assert upload_limits == ["api", "upload"]

        search_limits = [
            stage.limiter.name
            for stage in search_pipeline(services).stages
            if stage.name == "rate_limit"
        ]
        assert search_limits == ["api", "search"]

    def test_auth_preset_uses_auth_policy(self, services):
        stage = next(
            stage for stage in auth_pipeline(services).stages if stage.name == "rate_limit"
        )

        assert stage.limiter.name == "auth"
        assert stage.limiter.policy.max_requests == 5

    def test_unknown_policy_raises(self, services):
        with pytest.raises(KeyError, match="Unknown rate limit policy"):
            build_middleware_stack(services, rate_limit_policy="nope")
