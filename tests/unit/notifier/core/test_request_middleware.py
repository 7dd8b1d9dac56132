"""
Unit Tests for Request Context Middleware.

Request id and caller resolution, response headers and structlog binding.
"""

from unittest.mock import MagicMock, patch

import pytest
from starlette.requests import Request
from starlette.responses import Response

from modules.notifier.core.middleware import (
    RequestContextMiddleware,
    resolve_caller,
    resolve_request_id,
)


class TestResolveRequestId:
    def test_keeps_well_formed_id(self):
        assert resolve_request_id("req-42") == "req-42"

    @pytest.mark.parametrize("value", [None, "", "has space", "x" * 129, "line\nbreak"])
    def test_replaces_malformed_id(self, value):
        request_id = resolve_request_id(value)
        assert request_id != value
        assert len(request_id) == 36


class TestResolveCaller:
    def test_lowercases(self):
        assert resolve_caller("OAuth2-Server") == "oauth2-server"

    @pytest.mark.parametrize("value", [None, "", "bad caller!"])
    def test_unknown_when_missing_or_malformed(self, value):
        assert resolve_caller(value) == "unknown"


class TestRequestContextMiddleware:
    @pytest.fixture
    def middleware(self):
        return RequestContextMiddleware(MagicMock())

    @pytest.fixture
    def mock_request(self):
        request = MagicMock(spec=Request)
        request.headers = {}
        request.method = "POST"
        request.url = MagicMock()
        request.url.path = "/api/v1/notifications/dispatch"
        request.state = MagicMock()
        return request

    async def test_propagates_request_id(self, middleware, mock_request):
        mock_request.headers = {"X-Request-ID": "req-42", "X-Caller-ID": "backend"}

        async def call_next(request):
            assert request.state.request_id == "req-42"
            assert request.state.caller == "backend"
            return Response(content="OK", status_code=202)

        with patch("modules.notifier.core.middleware.structlog.contextvars"):
            response = await middleware.dispatch(mock_request, call_next)

        assert response.headers["X-Request-ID"] == "req-42"
        assert response.headers["X-Response-Time"].endswith("ms")

    async def test_generates_request_id(self, middleware, mock_request):
        async def call_next(request):
            return Response(content="OK")

        with patch("modules.notifier.core.middleware.structlog.contextvars"):
            response = await middleware.dispatch(mock_request, call_next)

        assert len(response.headers["X-Request-ID"]) == 36

    async def test_binds_log_context(self, middleware, mock_request):
        mock_request.headers = {"X-Request-ID": "req-7"}

        async def call_next(request):
            return Response(content="OK")

        with patch("modules.notifier.core.middleware.structlog.contextvars") as contextvars:
            await middleware.dispatch(mock_request, call_next)

        contextvars.bind_contextvars.assert_called_once_with(
            source="api",
            request_id="req-7",
            caller="unknown",
            method="POST",
            path="/api/v1/notifications/dispatch",
        )
        assert contextvars.clear_contextvars.call_count == 2

    async def test_reraises_and_clears_context(self, middleware, mock_request):
        async def call_next(request):
            raise RuntimeError("boom")

        with patch("modules.notifier.core.middleware.structlog.contextvars") as contextvars, \
             patch("modules.notifier.core.middleware.logger") as mock_logger:
            with pytest.raises(RuntimeError):
                await middleware.dispatch(mock_request, call_next)

        mock_logger.error.assert_called_once()
        assert contextvars.clear_contextvars.call_count == 2
