"""External identity login: provider registry, dispatcher and identity resolution."""

from fedauth.services.omniauth.base import AuthPayload, Strategy
from fedauth.services.omniauth.config import OmniauthConfig, build_omniauth
from fedauth.services.omniauth.developer import DeveloperStrategy
from fedauth.services.omniauth.dispatcher import (
    DispatchContext,
    OmniauthDispatcher,
    current_dispatch,
)
from fedauth.services.omniauth.errors import (
    ConfigurationError,
    HandshakeFailure,
    OmniauthError,
    PersistenceConflict,
    ResolutionRejection,
    SessionBridgeError,
    StrategyFailure,
    StrategyLoadError,
    UnknownProviderError,
    ValidationFailure,
)
from fedauth.services.omniauth.failure import FailureChannel
from fedauth.services.omniauth.hooks import HookRegistry
from fedauth.services.omniauth.registry import (
    ProviderRegistration,
    ProviderRegistry,
    build_registry,
    register_strategy,
)
from fedauth.services.omniauth.resolver import (
    IdentityResolver,
    ResolutionOutcome,
    ResolutionResult,
    ResolutionState,
)
from fedauth.services.omniauth.session import SessionBridge, current_session

__all__ = [
    "AuthPayload",
    "ConfigurationError",
    "DeveloperStrategy",
    "DispatchContext",
    "FailureChannel",
    "HandshakeFailure",
    "HookRegistry",
    "IdentityResolver",
    "OmniauthConfig",
    "OmniauthDispatcher",
    "OmniauthError",
    "PersistenceConflict",
    "ProviderRegistration",
    "ProviderRegistry",
    "ResolutionOutcome",
    "ResolutionRejection",
    "ResolutionResult",
    "ResolutionState",
    "SessionBridge",
    "SessionBridgeError",
    "Strategy",
    "StrategyFailure",
    "StrategyLoadError",
    "UnknownProviderError",
    "ValidationFailure",
    "build_omniauth",
    "build_registry",
    "current_dispatch",
    "current_session",
    "register_strategy",
]
