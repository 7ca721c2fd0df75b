"""Middleware that hands provider routes to the omniauth dispatcher."""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from fedauth.services.omniauth.dispatcher import OmniauthDispatcher


class OmniauthMiddleware(BaseHTTPMiddleware):
    """
    Answers ``{prefix}/{provider}`` and ``{prefix}/{provider}/callback``.

    Every other request, and request-phase calls with a disallowed method,
    continue to host routing untouched. Needs SessionMiddleware outside it
    for cookie sessions.
    """

    def __init__(self, app: ASGIApp, dispatcher: OmniauthDispatcher):
        super().__init__(app)
        self.dispatcher = dispatcher

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await self.dispatcher.handle(request)
        if response is None:
            return await call_next(request)
        return response
