"""Session bridge.

Host routes and strategies see one session dict whatever the transport:

- cookie: the dict Starlette's SessionMiddleware attaches to the request
- token: the claims of a signed JWT sent as ``Authorization: Bearer <jwt>``;
  when the session changes, a re-signed token goes back in the response
  ``Authorization`` header
"""

import copy
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Union

from jose import JWTError
from starlette.requests import Request
from starlette.responses import Response

from fedauth.core.security import create_session_token, decode_session_token
from fedauth.services.omniauth.errors import SessionBridgeError

logger = logging.getLogger(__name__)

COOKIE_MODE = "cookie"
TOKEN_MODE = "token"
AUTO_MODE = "auto"

# Session keys
ACCOUNT_ID_KEY = "account_id"
AUTHENTICATED_BY_KEY = "authenticated_by"
TWO_FACTOR_METHOD_KEY = "two_factor_auth_method"
ORIGIN_KEY = "omniauth.origin"
PARAMS_KEY = "omniauth.params"
CSRF_SESSION_KEY = "_csrf_token"
FLASH_KEY = "_flash"

_current_session: ContextVar[Optional[dict[str, Any]]] = ContextVar(
    "fedauth_bridged_session", default=None
)


def current_session() -> dict[str, Any]:
    """
    Session of the request being dispatched, for code that is not handed
    the dispatch context.

    Raises:
        SessionBridgeError: Outside a bridged block
    """
    session = _current_session.get()
    if session is None:
        raise SessionBridgeError("No session is bridged in the current context")
    return session


def set_flash(session: dict[str, Any], kind: str, message: str) -> None:
    session[FLASH_KEY] = {kind: message}


def pop_flash(session: dict[str, Any]) -> dict[str, str]:
    return session.pop(FLASH_KEY, None) or {}


def bearer_token(request: Request) -> Optional[str]:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@dataclass
class SessionHandle:
    """A materialized session plus what is needed to write it back."""

    mode: str
    data: dict[str, Any]
    snapshot: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def mutated(self) -> bool:
        return self.data != self.snapshot


class SessionBridge:
    """Materializes the host session for cookie or token transports."""

    def __init__(self, mode: str = AUTO_MODE):
        mode = mode.lower()
        if mode not in (COOKIE_MODE, TOKEN_MODE, AUTO_MODE):
            raise ValueError(f"Unsupported session mode: {mode!r}")
        self.mode = mode

    def mode_for(self, request: Request) -> str:
        if self.mode != AUTO_MODE:
            return self.mode
        return TOKEN_MODE if bearer_token(request) else COOKIE_MODE

    def materialize(self, request: Request) -> SessionHandle:
        """
        Load the session for a request.

        Raises:
            SessionBridgeError: Cookie mode without SessionMiddleware, or an
                invalid or expired bearer token
        """
        mode = self.mode_for(request)
        if mode == COOKIE_MODE:
            if "session" not in request.scope:
                raise SessionBridgeError("Cookie sessions require SessionMiddleware to be installed")
            data = request.session
        else:
            token = bearer_token(request)
            if token is None:
                data = {}
            else:
                try:
                    data = decode_session_token(token)
                except JWTError as exc:
                    logger.info("Rejected session token: %s", exc)
                    raise SessionBridgeError("Invalid or expired session token", status=401) from exc

        return SessionHandle(mode=mode, data=data, snapshot=copy.deepcopy(dict(data)))

    @asynccontextmanager
    async def bridged(self, source: Union[Request, SessionHandle]) -> AsyncIterator[SessionHandle]:
        """Expose the session through current_session() for the duration of the block.

        The previous value is restored on every exit path.
        """
        handle = source if isinstance(source, SessionHandle) else self.materialize(source)
        token = _current_session.set(handle.data)
        try:
            yield handle
        finally:
            _current_session.reset(token)

    def apply(self, handle: SessionHandle, response: Response) -> Response:
        """Write a changed token session back to the response."""
        if handle.mode == TOKEN_MODE and handle.mutated:
            response.headers["Authorization"] = f"Bearer {create_session_token(handle.data)}"
            handle.snapshot = copy.deepcopy(handle.data)
        return response
