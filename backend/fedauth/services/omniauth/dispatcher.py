"""Request dispatcher.

For every request:

1. match the path against each provider's request and callback route;
   unmatched requests are left to the host
2. request phase: check the method, then run request_validation_phase hooks
3. run before_request_phase or before_callback_phase hooks
4. run setup hooks, which may change the strategy's options
5. run the strategy phase with the session bridged
6. in JSON mode, turn a redirect into ``{"authorize_url": ...}``
7. after a callback, resolve the identity and log in or connect

Errors from steps 2 to 7 go through the failure channel.
"""

import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from fedauth.core.database import AsyncSessionLocal
from fedauth.services.omniauth.base import CALLBACK_PHASE, REQUEST_PHASE, AuthPayload, Strategy
from fedauth.services.omniauth.config import OmniauthConfig
from fedauth.services.omniauth.errors import (
    HandshakeFailure,
    OmniauthError,
    ResolutionRejection,
    SessionBridgeError,
    StrategyFailure,
    ValidationFailure,
)
from fedauth.services.omniauth.hooks import CSRF_FIELD
from fedauth.services.omniauth.login import LoginHandler
from fedauth.services.omniauth.registry import ProviderRegistration
from fedauth.services.omniauth.resolver import IdentityResolver
from fedauth.services.omniauth.session import ORIGIN_KEY, PARAMS_KEY, SessionHandle

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


@dataclass
class DispatchContext:
    """State of one dispatched request, handed to strategies and hooks."""

    registration: ProviderRegistration
    phase: str
    request: Request
    config: OmniauthConfig
    session_handle: Optional[SessionHandle] = None
    strategy: Optional[Strategy] = None
    db: Optional[AsyncSession] = None
    params: dict[str, Any] = field(default_factory=dict)
    payload: Optional[AuthPayload] = None
    json_mode: bool = False
    error_type: Optional[str] = None
    hooks_run: list[str] = field(default_factory=list)

    @property
    def provider(self) -> str:
        return self.registration.name

    @property
    def settings(self):
        return self.config.settings

    @property
    def session(self) -> dict[str, Any]:
        if self.session_handle is None:
            raise SessionBridgeError("Session has not been materialized for this request")
        return self.session_handle.data


_current_dispatch: ContextVar[Optional[DispatchContext]] = ContextVar(
    "fedauth_current_dispatch", default=None
)


def current_dispatch() -> Optional[DispatchContext]:
    """Context of the request being dispatched, or None outside a dispatch."""
    return _current_dispatch.get()


async def read_params(request: Request) -> dict[str, Any]:
    """Query string merged with a form or JSON object body."""
    params: dict[str, Any] = dict(request.query_params)
    if request.method in ("GET", "HEAD"):
        return params

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_MEDIA_TYPES):
        form = await request.form()
        params.update({key: value for key, value in form.items() if isinstance(value, str)})
    elif content_type.startswith(JSON_MEDIA_TYPE):
        body = await request.body()
        if body:
            try:
                data = await request.json()
            except ValueError as exc:
                raise ValidationFailure("invalid_request", "Malformed JSON body") from exc
            if isinstance(data, dict):
                params.update(data)
    return params


class OmniauthDispatcher:
    """Routes provider requests through the hook pipeline and identity resolution."""

    def __init__(
        self,
        config: OmniauthConfig,
        session_factory: Optional[async_sessionmaker] = None,
        resolver: Optional[IdentityResolver] = None,
        login_handler: Optional[LoginHandler] = None,
    ):
        self.config = config.finalize()
        self.session_factory = session_factory or AsyncSessionLocal
        self.resolver = resolver or IdentityResolver()
        self.login_handler = login_handler or LoginHandler()

    def use_json(self, request: Request, handle: Optional[SessionHandle]) -> bool:
        if self.config.settings.OMNIAUTH_JSON:
            return True
        if handle is not None and handle.mode == "token":
            return True
        accept = request.headers.get("accept", "")
        content_type = request.headers.get("content-type", "")
        return JSON_MEDIA_TYPE in accept or content_type.startswith(JSON_MEDIA_TYPE)

    async def handle(self, request: Request) -> Optional[Response]:
        """
        Dispatch a request if it targets a provider route.

        Returns:
            The response, or None when the host should handle the request
        """
        match = self.config.registry.match(request.url.path)
        if match is None:
            return None

        registration, phase = match
        ctx = DispatchContext(
            registration=registration,
            phase=phase,
            request=request,
            config=self.config,
        )
        token = _current_dispatch.set(ctx)
        try:
            return await self._dispatch(ctx)
        finally:
            _current_dispatch.reset(token)

    async def _dispatch(self, ctx: DispatchContext) -> Optional[Response]:
        bridge = self.config.session_bridge
        logger.info("Dispatching %s phase for provider %s", ctx.phase, ctx.provider)

        try:
            ctx.session_handle = bridge.materialize(ctx.request)
        except SessionBridgeError as exc:
            ctx.json_mode = True
            return await self.config.failure.on_failure(ctx, exc.error_type, exc)

        ctx.json_mode = self.use_json(ctx.request, ctx.session_handle)
        try:
            response = await self._run(ctx)
        except (ValidationFailure, HandshakeFailure, ResolutionRejection, SessionBridgeError) as exc:
            response = await self.config.failure.on_failure(ctx, exc.error_type, exc)
        except OmniauthError as exc:
            response = await self.config.failure.on_failure(
                ctx, "internal_error", HandshakeFailure("internal_error", ctx.strategy, exc)
            )
        except Exception as exc:
            logger.exception("Unexpected error dispatching provider %s", ctx.provider)
            response = await self.config.failure.on_failure(
                ctx, "internal_error", HandshakeFailure("internal_error", ctx.strategy, exc)
            )

        if response is None:
            return None
        return bridge.apply(ctx.session_handle, response)

    async def _run_hooks(self, ctx: DispatchContext, name: str) -> None:
        await self.config.hooks.run(name, ctx)
        ctx.hooks_run.append(name)

    async def _run(self, ctx: DispatchContext) -> Optional[Response]:
        ctx.strategy = ctx.registration.build()

        if ctx.phase == REQUEST_PHASE:
            allowed = (
                ctx.strategy.allowed_request_methods
                or self.config.settings.OMNIAUTH_ALLOWED_REQUEST_METHODS
            )
            if ctx.request.method not in allowed:
                logger.info(
                    "Method %s not allowed for provider %s", ctx.request.method, ctx.provider
                )
                return ctx.strategy.method_not_allowed(ctx)

            ctx.params = await read_params(ctx.request)
            await self._run_hooks(ctx, "request_validation_phase")
            await self._run_hooks(ctx, "before_request_phase")
        else:
            ctx.params = await read_params(ctx.request)
            await self._run_hooks(ctx, "before_callback_phase")

        await self._run_hooks(ctx, "setup")

        async with self.config.session_bridge.bridged(ctx.session_handle):
            try:
                if ctx.phase == REQUEST_PHASE:
                    return self._normalize(ctx, await self._request_phase(ctx))
                payload = await self._callback_phase(ctx)
            except StrategyFailure as exc:
                raise HandshakeFailure(exc.error_type, ctx.strategy, exc.cause or exc) from exc
            except OmniauthError:
                raise
            except Exception as exc:
                logger.exception("Strategy %r raised during %s phase", ctx.strategy, ctx.phase)
                raise HandshakeFailure("strategy_error", ctx.strategy, exc) from exc

        ctx.payload = payload
        await self._run_hooks(ctx, "before_callback_route")

        async with self.session_factory() as db:
            ctx.db = db
            try:
                result = await self.resolver.resolve(ctx, db)
            finally:
                ctx.db = None
        return self.login_handler.complete(ctx, result)

    async def _request_phase(self, ctx: DispatchContext) -> Response:
        session = ctx.session
        origin = ctx.params.get("origin")
        if origin:
            session[ORIGIN_KEY] = str(origin)
        else:
            session.pop(ORIGIN_KEY, None)
        session[PARAMS_KEY] = {
            key: value for key, value in ctx.params.items() if key != CSRF_FIELD
        }
        return await ctx.strategy.request_phase(ctx)

    async def _callback_phase(self, ctx: DispatchContext) -> AuthPayload:
        payload = await ctx.strategy.callback_phase(ctx)
        if payload is None or not payload.uid:
            raise StrategyFailure("invalid_credentials", ctx.strategy)

        session = ctx.session
        payload.provider = ctx.provider
        payload.uid = str(payload.uid)
        payload.params = session.pop(PARAMS_KEY, None) or {}
        payload.origin = session.pop(ORIGIN_KEY, None)
        payload.strategy = ctx.strategy
        return payload

    def _normalize(self, ctx: DispatchContext, response: Response) -> Response:
        location = response.headers.get("location")
        if ctx.json_mode and 300 <= response.status_code < 400 and location:
            return JSONResponse({"authorize_url": location})
        return response
