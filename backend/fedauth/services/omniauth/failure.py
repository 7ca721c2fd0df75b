"""Failure channel: one place that turns login failures into responses."""

import logging

from starlette.responses import JSONResponse, RedirectResponse, Response

from fedauth.services.omniauth.errors import ResolutionRejection, SessionBridgeError
from fedauth.services.omniauth.session import set_flash

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "There was an error logging in with the external provider"
UNVERIFIED_ACCOUNT_MESSAGE = (
    "The account matching the external identity is currently awaiting verification"
)
NO_MATCHING_ACCOUNT_MESSAGE = "There is no existing account matching the external identity"


class FailureChannel:
    """
    Renders validation failures, handshake failures and resolution rejections.

    ``on_failure`` hooks run first; the first one returning a Response
    replaces the default. Hooks are skipped when the session could not be
    materialized, since ``ctx.session`` is unavailable then. Subclass and
    override ``default_response`` to change the default for every provider.
    """

    async def on_failure(self, ctx, error_type: str, error: BaseException) -> Response:
        logger.warning(
            "External login failed | provider=%s | phase=%s | error_type=%s | error=%s",
            ctx.provider,
            ctx.phase,
            error_type,
            error,
        )
        ctx.error_type = error_type
        if ctx.session_handle is not None:
            custom = await ctx.config.hooks.first("on_failure", ctx, error_type, error)
            if isinstance(custom, Response):
                return custom
        return self.default_response(ctx, error_type, error)

    def default_response(self, ctx, error_type: str, error: BaseException) -> Response:
        settings = ctx.settings
        if isinstance(error, ResolutionRejection):
            message = error.message
            status_code = error.status
            redirect = settings.OMNIAUTH_LOGIN_FAILURE_REDIRECT
        elif isinstance(error, SessionBridgeError):
            message = FAILURE_MESSAGE
            status_code = error.status
            redirect = settings.OMNIAUTH_FAILURE_REDIRECT
        else:
            message = FAILURE_MESSAGE
            status_code = settings.OMNIAUTH_FAILURE_ERROR_STATUS
            redirect = settings.OMNIAUTH_FAILURE_REDIRECT

        # Without a session there is nowhere to keep a flash message
        if ctx.json_mode or ctx.session_handle is None:
            return JSONResponse({"error": message, "error_type": error_type}, status_code=status_code)

        set_flash(ctx.session, "error", message)
        return RedirectResponse(redirect, status_code=302)
