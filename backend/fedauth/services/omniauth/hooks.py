"""Named extension points, each an ordered list of callbacks.

Callbacks may be plain functions or coroutines and run in registration
order. Dispatch hooks receive the DispatchContext; account hooks receive the
context and the account; removal hooks receive the account and provider.
"""

import inspect
import logging
from typing import Any, Callable, Optional

from fedauth.core.security import generate_random_token, tokens_match
from fedauth.services.omniauth.errors import ConfigurationError, ValidationFailure
from fedauth.services.omniauth.session import CSRF_SESSION_KEY

logger = logging.getLogger(__name__)

HOOK_NAMES = (
    "request_validation_phase",
    "before_request_phase",
    "before_callback_phase",
    "setup",
    "before_callback_route",
    "before_create_account",
    "after_create_account",
    "on_failure",
    "before_remove",
    "after_remove",
)

STATE_CHANGING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
CSRF_HEADER = "X-CSRF-Token"
CSRF_FIELD = "_csrf"

Hook = Callable[..., Any]


class HookRegistry:
    """Ordered callbacks per hook name."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[Hook]] = {name: [] for name in HOOK_NAMES}

    def _list(self, name: str) -> list[Hook]:
        try:
            return self._hooks[name]
        except KeyError:
            raise ConfigurationError(f"Unknown hook: {name!r}") from None

    def register(self, name: str, callback: Optional[Hook] = None):
        """
        Append a callback to a hook. Usable as a decorator::

            @hooks.register("setup")
            def widen_scope(ctx):
                ctx.strategy.options["scope"] = "email profile"
        """
        callbacks = self._list(name)
        if callback is None:
            def decorator(func: Hook) -> Hook:
                callbacks.append(func)
                return func
            return decorator
        callbacks.append(callback)
        return callback

    def remove(self, name: str, callback: Hook) -> None:
        self._list(name).remove(callback)

    def clear(self, name: str) -> None:
        self._list(name).clear()

    def callbacks(self, name: str) -> tuple[Hook, ...]:
        return tuple(self._list(name))

    async def run(self, name: str, *args: Any) -> list[Any]:
        """Run every callback of a hook in order and collect the results."""
        results = []
        for callback in self._list(name):
            result = callback(*args)
            if inspect.isawaitable(result):
                result = await result
            results.append(result)
        return results

    async def first(self, name: str, *args: Any) -> Any:
        """Run callbacks in order until one returns something other than None."""
        for callback in self._list(name):
            result = callback(*args)
            if inspect.isawaitable(result):
                result = await result
            if result is not None:
                return result
        return None

    def derive(self) -> "HookRegistry":
        child = HookRegistry()
        child._hooks = {name: list(callbacks) for name, callbacks in self._hooks.items()}
        return child


def csrf_token(session: dict[str, Any]) -> str:
    """Return the session's CSRF token, creating it on first use."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = generate_random_token()
        session[CSRF_SESSION_KEY] = token
    return token


async def check_csrf(ctx) -> None:
    """Default request validation: CSRF check for state-changing methods.

    The token stored in the session must match the X-CSRF-Token header or
    the ``_csrf`` form field.
    """
    if not ctx.settings.CHECK_CSRF or ctx.request.method not in STATE_CHANGING_METHODS:
        return

    provided = ctx.request.headers.get(CSRF_HEADER) or ctx.params.get(CSRF_FIELD)
    if not tokens_match(ctx.session.get(CSRF_SESSION_KEY), provided):
        logger.warning(
            "CSRF validation failed | provider=%s | has_token=%s",
            ctx.provider,
            provided is not None,
        )
        raise ValidationFailure("csrf_detected")
