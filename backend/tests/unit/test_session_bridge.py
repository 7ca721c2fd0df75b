"""Unit tests for the session bridge."""

from unittest.mock import Mock

import pytest
from starlette.responses import Response

from fedauth.core.security import create_session_token, decode_session_token
from fedauth.services.omniauth.errors import SessionBridgeError
from fedauth.services.omniauth.session import (
    COOKIE_MODE,
    TOKEN_MODE,
    SessionBridge,
    current_session,
    pop_flash,
    set_flash,
)


def _request(headers=None, session=None):
    request = Mock()
    request.headers = headers or {}
    request.scope = {"type": "http"}
    if session is not None:
        request.scope["session"] = session
        request.session = session
    return request


@pytest.mark.unit
class TestSessionBridge:
    """Test materializing and writing back sessions."""

    def test_rejects_unknown_mode(self):
        with pytest.raises(ValueError):
            SessionBridge("memcached")

    def test_auto_mode_picks_transport(self):
        bridge = SessionBridge("auto")

        assert bridge.mode_for(_request({"Authorization": "Bearer abc"})) == TOKEN_MODE
        assert bridge.mode_for(_request({"Authorization": "Basic abc"})) == COOKIE_MODE
        assert bridge.mode_for(_request()) == COOKIE_MODE

    def test_cookie_mode_shares_the_middleware_dict(self):
        session = {"account_id": 1}
        handle = SessionBridge("cookie").materialize(_request(session=session))

        handle.data["flag"] = True

        assert session["flag"] is True
        assert handle.mutated

    def test_cookie_mode_requires_session_middleware(self):
        with pytest.raises(SessionBridgeError) as exc_info:
            SessionBridge("cookie").materialize(_request())
        assert exc_info.value.status == 500

    def test_token_mode_without_token_starts_empty(self):
        handle = SessionBridge("token").materialize(_request())

        assert handle.mode == TOKEN_MODE
        assert handle.data == {}
        assert not handle.mutated

    def test_token_mode_decodes_claims(self):
        token = create_session_token({"account_id": 7, "authenticated_by": ["password"]})

        handle = SessionBridge("token").materialize(_request({"Authorization": f"Bearer {token}"}))

        assert handle.data == {"account_id": 7, "authenticated_by": ["password"]}

    def test_invalid_token_is_rejected(self):
        with pytest.raises(SessionBridgeError) as exc_info:
            SessionBridge("token").materialize(_request({"Authorization": "Bearer not-a-jwt"}))
        assert exc_info.value.status == 401

    def test_apply_reissues_changed_token_session(self):
        bridge = SessionBridge("token")
        handle = bridge.materialize(_request())
        handle.data["account_id"] = 3

        response = bridge.apply(handle, Response())

        scheme, _, token = response.headers["Authorization"].partition(" ")
        assert scheme == "Bearer"
        assert decode_session_token(token) == {"account_id": 3}
        assert not handle.mutated

    def test_apply_leaves_unchanged_session_alone(self):
        bridge = SessionBridge("token")
        handle = bridge.materialize(_request())

        response = bridge.apply(handle, Response())

        assert "Authorization" not in response.headers

    def test_apply_ignores_cookie_sessions(self):
        bridge = SessionBridge("cookie")
        handle = bridge.materialize(_request(session={}))
        handle.data["account_id"] = 3

        response = bridge.apply(handle, Response())

        assert "Authorization" not in response.headers


@pytest.mark.unit
class TestBridgedScope:
    """Test the scoped current_session() slot."""

    @pytest.mark.asyncio
    async def test_exposes_session_inside_block(self):
        bridge = SessionBridge("cookie")
        session = {"account_id": 1}

        async with bridge.bridged(_request(session=session)) as handle:
            assert current_session() is session
            assert handle.data is session

        with pytest.raises(SessionBridgeError):
            current_session()

    @pytest.mark.asyncio
    async def test_restores_previous_session_after_error(self):
        bridge = SessionBridge("cookie")
        outer = {"name": "outer"}
        inner = {"name": "inner"}

        async with bridge.bridged(_request(session=outer)):
            with pytest.raises(RuntimeError):
                async with bridge.bridged(_request(session=inner)):
                    assert current_session() is inner
                    raise RuntimeError("strategy blew up")
            assert current_session() is outer

    @pytest.mark.asyncio
    async def test_materialize_failure_happens_before_block(self):
        bridge = SessionBridge("cookie")
        body = Mock()

        with pytest.raises(SessionBridgeError):
            async with bridge.bridged(_request()):
                body()

        body.assert_not_called()


@pytest.mark.unit
def test_flash_round_trip():
    session = {}
    set_flash(session, "error", "Nope")

    assert pop_flash(session) == {"error": "Nope"}
    assert pop_flash(session) == {}
