"""Unit tests for the developer strategy."""

from unittest.mock import Mock

import pytest

from fedauth.services.omniauth.developer import DeveloperStrategy
from fedauth.services.omniauth.errors import StrategyFailure


@pytest.fixture
def ctx():
    ctx = Mock()
    ctx.registration.callback_path = "/auth/developer/callback"
    ctx.params = {}
    return ctx


@pytest.mark.unit
class TestDeveloperStrategy:
    """Test the local form strategy."""

    @pytest.mark.asyncio
    async def test_request_phase_renders_form(self, ctx):
        response = await DeveloperStrategy("developer").request_phase(ctx)

        body = response.body.decode()
        assert response.status_code == 200
        assert 'action="/auth/developer/callback"' in body
        assert 'name="email"' in body
        assert 'name="name"' in body

    @pytest.mark.asyncio
    async def test_callback_uses_email_as_uid(self, ctx):
        ctx.params = {"name": " Jane ", "email": "jane@test", "ignored": "x"}

        payload = await DeveloperStrategy("developer").callback_phase(ctx)

        assert payload.provider == "developer"
        assert payload.uid == "jane@test"
        assert payload.info == {"name": "Jane", "email": "jane@test"}
        assert payload.email == "jane@test"
        assert payload.name == "Jane"

    @pytest.mark.asyncio
    async def test_custom_uid_field(self, ctx):
        ctx.params = {"name": "jane", "email": "jane@test"}

        payload = await DeveloperStrategy("developer", uid_field="name").callback_phase(ctx)

        assert payload.uid == "jane"

    @pytest.mark.asyncio
    async def test_missing_uid_fails(self, ctx):
        ctx.params = {"name": "Jane"}
        strategy = DeveloperStrategy("developer")

        with pytest.raises(StrategyFailure) as exc_info:
            await strategy.callback_phase(ctx)

        assert exc_info.value.error_type == "invalid_credentials"
        assert exc_info.value.strategy is strategy

    def test_allowed_methods_follow_options(self):
        assert DeveloperStrategy("developer").allowed_request_methods is None
        strategy = DeveloperStrategy("developer", allowed_request_methods=["post"])
        assert strategy.allowed_request_methods == ["POST"]

    def test_method_not_allowed_passes_through(self, ctx):
        assert DeveloperStrategy("developer").method_not_allowed(ctx) is None
