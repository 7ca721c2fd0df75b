"""Unit tests for error handler middleware."""

import json
from unittest.mock import Mock, patch

import pytest
from fastapi import Request, Response

from fedauth.middleware.error_handler import ErrorHandlerMiddleware


@pytest.mark.unit
class TestErrorHandlerMiddleware:
    """Test error handler middleware."""

    @pytest.fixture
    def middleware(self):
        """Create middleware instance."""
        return ErrorHandlerMiddleware(Mock())

    @pytest.fixture
    def mock_request(self):
        """Create mock request."""
        request = Mock(spec=Request)
        request.method = "GET"
        request.url = Mock()
        request.url.path = "/auth/developer/callback"
        request.scope = {"session": {"account_id": 9}}
        request.session = request.scope["session"]
        return request

    @pytest.fixture
    def mock_call_next_error(self):
        """Create mock call_next that raises error."""
        async def call_next(request):
            raise ValueError("Test error")

        return call_next

    @pytest.mark.asyncio
    async def test_passes_through_successful_requests(self, middleware, mock_request):
        """Should pass through successful requests unchanged."""
        async def call_next(request):
            return Response(status_code=200)

        response = await middleware.dispatch(mock_request, call_next)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_catches_exceptions(self, middleware, mock_request, mock_call_next_error):
        """Should catch exceptions and return 500 error."""
        response = await middleware.dispatch(mock_request, mock_call_next_error)
        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_logs_account_and_path(self, middleware, mock_request, mock_call_next_error):
        with patch("fedauth.middleware.error_handler.logger") as mock_logger:
            await middleware.dispatch(mock_request, mock_call_next_error)

        args = mock_logger.error.call_args.args
        assert "/auth/developer/callback" in args
        assert 9 in args

    @pytest.mark.asyncio
    async def test_hides_details_in_production(self, middleware, mock_request, mock_call_next_error):
        with patch("fedauth.middleware.error_handler.settings") as mock_settings:
            mock_settings.DEBUG = False
            response = await middleware.dispatch(mock_request, mock_call_next_error)

        body = json.loads(response.body)
        assert body["error"] == "Internal server error"
        assert "Test error" not in response.body.decode()

    @pytest.mark.asyncio
    async def test_shows_details_in_debug(self, middleware, mock_request, mock_call_next_error):
        with patch("fedauth.middleware.error_handler.settings") as mock_settings:
            mock_settings.DEBUG = True
            response = await middleware.dispatch(mock_request, mock_call_next_error)

        body = json.loads(response.body)
        assert body["error"] == "Test error"
        assert body["type"] == "ValueError"
