"""Error taxonomy for external identity login.

Configuration errors are raised while the app is being built and abort
startup. Everything else is raised per request and is converted into a
failure response at the dispatcher boundary.
"""

from typing import Any, Optional


class OmniauthError(Exception):
    """Base class for every external identity login error."""


class ConfigurationError(OmniauthError):
    """A provider registration is invalid or cannot be resolved."""


class StrategyLoadError(ConfigurationError):
    """A strategy reference does not resolve to an installed implementation."""


class UnknownProviderError(ConfigurationError, LookupError):
    """No provider is registered under the requested name."""


class ValidationFailure(OmniauthError):
    """Request phase validation (CSRF, request method) failed."""

    def __init__(self, error_type: str, message: Optional[str] = None):
        super().__init__(message or error_type)
        self.error_type = error_type


class StrategyFailure(OmniauthError):
    """Raised by a strategy when its handshake fails.

    The dispatcher wraps it in a HandshakeFailure before it reaches the
    failure channel.
    """

    def __init__(
        self,
        error_type: str,
        strategy: Any = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(error_type if cause is None else f"{error_type}: {cause}")
        self.error_type = error_type
        self.strategy = strategy
        self.cause = cause


class HandshakeFailure(OmniauthError):
    """The handshake with the external provider did not complete."""

    def __init__(
        self,
        error_type: str,
        strategy: Any = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(error_type if cause is None else f"{error_type}: {cause}")
        self.error_type = error_type
        self.strategy = strategy
        self.cause = cause


class ResolutionRejection(OmniauthError):
    """Identity resolution ended in a rejected state. Nothing was committed."""

    def __init__(self, reason: str, message: str, status: int):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.status = status
        self.trail: list = []

    @property
    def error_type(self) -> str:
        return self.reason


class PersistenceConflict(OmniauthError):
    """A concurrent callback inserted the same login or (provider, uid) first."""


class SessionBridgeError(OmniauthError):
    """The host session could not be materialized for this request."""

    error_type = "invalid_session"

    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.status = status
