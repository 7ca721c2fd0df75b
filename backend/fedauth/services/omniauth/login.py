"""Turns a resolution result into a logged-in (or connected) session."""

import logging
from typing import Any, Optional

from starlette.responses import JSONResponse, RedirectResponse, Response

from fedauth.services.omniauth.resolver import ResolutionOutcome, ResolutionResult
from fedauth.services.omniauth.session import (
    ACCOUNT_ID_KEY,
    AUTHENTICATED_BY_KEY,
    TWO_FACTOR_METHOD_KEY,
    set_flash,
)

logger = logging.getLogger(__name__)

AUTH_METHOD = "omniauth"

LOGIN_NOTICE = "You have been logged in"
ACCOUNT_CREATED_NOTICE = "Your account has been created"
CONNECTED_NOTICE = "The external identity has been connected to your account"
REMOVED_NOTICE = "The external identity has been disconnected from your account"


def safe_redirect(target: Optional[str], default: str) -> str:
    """Only follow same-site relative paths."""
    if target and target.startswith("/") and not target.startswith("//") and "\\" not in target:
        return target
    return default


def login_session(session: dict[str, Any], account_id: int, provider: str) -> None:
    """Replace the session contents with a fresh login."""
    session.clear()
    session[ACCOUNT_ID_KEY] = account_id
    session[AUTHENTICATED_BY_KEY] = [AUTH_METHOD]
    session["omniauth_provider"] = provider


def record_second_factor(session: dict[str, Any]) -> bool:
    """Record the external login as the second factor of a partly authenticated session."""
    authenticated_by = list(session.get(AUTHENTICATED_BY_KEY) or [])
    if not authenticated_by or AUTH_METHOD in authenticated_by:
        return False
    authenticated_by.append(AUTH_METHOD)
    session[AUTHENTICATED_BY_KEY] = authenticated_by
    session[TWO_FACTOR_METHOD_KEY] = AUTH_METHOD
    return True


class LoginHandler:
    """Applies a successful resolution to the session and builds the response."""

    def complete(self, ctx, result: ResolutionResult) -> Response:
        settings = ctx.settings
        session = ctx.session

        if result.outcome is ResolutionOutcome.CONNECTED:
            if (
                settings.OMNIAUTH_TWO_FACTORS
                and session.get(ACCOUNT_ID_KEY) == result.account.id
                and record_second_factor(session)
            ):
                logger.info("External login recorded as second factor for account %s", result.account.id)
            message = CONNECTED_NOTICE
            redirect = settings.OMNIAUTH_CONNECTED_REDIRECT
        else:
            login_session(session, result.account.id, ctx.provider)
            message = ACCOUNT_CREATED_NOTICE if result.account_created else LOGIN_NOTICE
            redirect = safe_redirect(ctx.payload.origin, settings.LOGIN_REDIRECT)

        if ctx.json_mode:
            return JSONResponse(
                {
                    "success": message,
                    "outcome": result.outcome.value,
                    "account_id": result.account.id,
                    "provider": ctx.provider,
                    "account_created": result.account_created,
                }
            )

        set_flash(session, "notice", message)
        return RedirectResponse(redirect, status_code=302)
