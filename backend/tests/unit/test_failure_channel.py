"""Unit tests for the failure channel."""

import json
from unittest.mock import Mock

import pytest
from starlette.responses import PlainTextResponse

from fedauth.services.omniauth.errors import (
    HandshakeFailure,
    ResolutionRejection,
    SessionBridgeError,
    ValidationFailure,
)
from fedauth.services.omniauth.failure import (
    FAILURE_MESSAGE,
    NO_MATCHING_ACCOUNT_MESSAGE,
    FailureChannel,
)
from fedauth.services.omniauth.session import COOKIE_MODE, FLASH_KEY, SessionHandle


@pytest.mark.unit
class TestFailureChannel:
    """Test default failure rendering and overrides."""

    @pytest.fixture
    def ctx(self, omniauth_config):
        ctx = Mock()
        ctx.provider = "developer"
        ctx.phase = "callback"
        ctx.config = omniauth_config
        ctx.settings = omniauth_config.settings
        ctx.session_handle = SessionHandle(mode=COOKIE_MODE, data={})
        ctx.session = ctx.session_handle.data
        ctx.json_mode = False
        return ctx

    @pytest.mark.asyncio
    async def test_interactive_failure_flashes_and_redirects(self, ctx):
        error = HandshakeFailure("access_denied")

        response = await FailureChannel().on_failure(ctx, "access_denied", error)

        assert response.status_code == 302
        assert response.headers["location"] == "/login"
        assert ctx.session[FLASH_KEY] == {"error": FAILURE_MESSAGE}
        assert ctx.error_type == "access_denied"

    @pytest.mark.asyncio
    async def test_json_failure(self, ctx):
        ctx.json_mode = True

        response = await FailureChannel().on_failure(
            ctx, "csrf_detected", ValidationFailure("csrf_detected")
        )

        assert response.status_code == 500
        assert json.loads(response.body) == {"error": FAILURE_MESSAGE, "error_type": "csrf_detected"}
        assert FLASH_KEY not in ctx.session

    @pytest.mark.asyncio
    async def test_failure_status_is_configurable(self, ctx, test_settings):
        ctx.json_mode = True
        ctx.settings = test_settings.model_copy(update={"OMNIAUTH_FAILURE_ERROR_STATUS": 400})

        response = await FailureChannel().on_failure(ctx, "access_denied", HandshakeFailure("access_denied"))

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_rejection_redirects_to_login_failure(self, ctx, test_settings):
        ctx.settings = test_settings.model_copy(update={"OMNIAUTH_LOGIN_FAILURE_REDIRECT": "/sign-in"})
        rejection = ResolutionRejection("no_matching_account", NO_MATCHING_ACCOUNT_MESSAGE, 401)

        response = await FailureChannel().on_failure(ctx, rejection.error_type, rejection)

        assert response.headers["location"] == "/sign-in"
        assert ctx.session[FLASH_KEY] == {"error": NO_MATCHING_ACCOUNT_MESSAGE}

    @pytest.mark.asyncio
    async def test_rejection_status_in_json_mode(self, ctx):
        ctx.json_mode = True
        rejection = ResolutionRejection("no_matching_account", NO_MATCHING_ACCOUNT_MESSAGE, 401)

        response = await FailureChannel().on_failure(ctx, rejection.error_type, rejection)

        assert response.status_code == 401
        assert json.loads(response.body)["error"] == NO_MATCHING_ACCOUNT_MESSAGE

    @pytest.mark.asyncio
    async def test_without_session_answers_json(self, ctx):
        ctx.session_handle = None

        error = SessionBridgeError("Invalid or expired session token", status=401)
        response = await FailureChannel().on_failure(ctx, error.error_type, error)

        assert response.status_code == 401
        assert json.loads(response.body)["error_type"] == "invalid_session"

    @pytest.mark.asyncio
    async def test_hook_response_wins(self, ctx):
        ctx.config.hooks.register("on_failure", lambda ctx, error_type, error: None)
        ctx.config.hooks.register(
            "on_failure", lambda ctx, error_type, error: PlainTextResponse(error_type, status_code=418)
        )

        response = await FailureChannel().on_failure(ctx, "access_denied", HandshakeFailure("access_denied"))

        assert response.status_code == 418
        assert FLASH_KEY not in ctx.session

    @pytest.mark.asyncio
    async def test_subclass_overrides_default(self, ctx):
        class QuietFailureChannel(FailureChannel):
            def default_response(self, ctx, error_type, error):
                return PlainTextResponse("nope", status_code=403)

        response = await QuietFailureChannel().on_failure(ctx, "access_denied", HandshakeFailure("access_denied"))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_hooks_skipped_without_session(self, ctx):
        def reads_session(ctx, error_type, error):
            ctx.session["seen"] = True
            return PlainTextResponse("hooked", status_code=418)

        ctx.config.hooks.register("on_failure", reads_session)
        ctx.session_handle = None

        error = SessionBridgeError("Session middleware is not installed")
        response = await FailureChannel().on_failure(ctx, error.error_type, error)

        assert response.status_code == 500
        assert json.loads(response.body)["error_type"] == "invalid_session"
        assert "seen" not in ctx.session
