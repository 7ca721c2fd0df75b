"""Provider registry.

Maps provider names to strategy references and the routes they answer on.
Strategy references resolve in this order:

1. a Strategy subclass or any other callable, used as is
2. a dotted or colon path (``pkg.module.Class`` / ``pkg.module:Class``),
   imported
3. a short name registered with ``register_strategy`` (``developer`` is
   built in)
4. a short name published by an installed package under the
   ``fedauth.strategies`` entry point group

Registries are finalized (every reference resolved, registry frozen) when
the app is built, so a missing strategy fails at startup rather than on the
first login attempt.
"""

import importlib
import logging
from dataclasses import dataclass, field, replace
from importlib.metadata import entry_points
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Optional
from urllib.parse import urlencode

from fedauth.services.omniauth.base import CALLBACK_PHASE, REQUEST_PHASE, Strategy
from fedauth.services.omniauth.developer import DeveloperStrategy
from fedauth.services.omniauth.errors import (
    ConfigurationError,
    StrategyLoadError,
    UnknownProviderError,
)

logger = logging.getLogger(__name__)

STRATEGY_ENTRY_POINT_GROUP = "fedauth.strategies"

StrategyFactory = Callable[..., Strategy]

# Explicit short-name -> factory table, consulted before entry points
_strategy_factories: dict[str, StrategyFactory] = {}


def register_strategy(name: str, factory: StrategyFactory) -> StrategyFactory:
    """
    Make a strategy available under a short name.

    Raises:
        ConfigurationError: If a different factory already owns the name
    """
    existing = _strategy_factories.get(name)
    if existing is not None and existing is not factory:
        raise ConfigurationError(f"Strategy {name!r} is already registered to {existing!r}")
    _strategy_factories[name] = factory
    return factory


register_strategy("developer", DeveloperStrategy)


def _import_strategy(reference: str) -> StrategyFactory:
    if ":" in reference:
        module_name, _, attribute = reference.partition(":")
    else:
        module_name, _, attribute = reference.rpartition(".")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise StrategyLoadError(f"Cannot import strategy {reference!r}: {exc}") from exc

    factory = module
    for part in attribute.split("."):
        try:
            factory = getattr(factory, part)
        except AttributeError as exc:
            raise StrategyLoadError(f"Strategy {reference!r} not found in {module_name}") from exc
    if not callable(factory):
        raise StrategyLoadError(f"Strategy {reference!r} is not callable")
    return factory


def _entry_point_strategy(name: str) -> Optional[StrategyFactory]:
    for entry_point in entry_points(group=STRATEGY_ENTRY_POINT_GROUP):
        if entry_point.name == name:
            try:
                return entry_point.load()
            except ImportError as exc:
                raise StrategyLoadError(
                    f"Strategy {name!r} from {entry_point.value} failed to load: {exc}"
                ) from exc
    return None


def load_strategy(reference: Any) -> StrategyFactory:
    """
    Turn a strategy reference into a factory.

    Raises:
        StrategyLoadError: If the reference resolves to nothing installed
    """
    if callable(reference):
        return reference
    if not isinstance(reference, str) or not reference:
        raise StrategyLoadError(f"Invalid strategy reference: {reference!r}")

    if ":" in reference or "." in reference:
        return _import_strategy(reference)

    factory = _strategy_factories.get(reference)
    if factory is None:
        factory = _entry_point_strategy(reference)
    if factory is None:
        raise StrategyLoadError(
            f"No strategy named {reference!r}; register one with register_strategy() "
            f"or install a package exposing it under {STRATEGY_ENTRY_POINT_GROUP!r}"
        )
    return factory


@dataclass(frozen=True)
class ProviderRegistration:
    """One registered provider. Immutable; finalize() fills in ``factory``."""

    name: str
    strategy: Any
    args: tuple = ()
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    request_path: str = ""
    callback_path: str = ""
    factory: Optional[StrategyFactory] = None

    def build(self) -> Strategy:
        """Create a fresh strategy instance for one request."""
        factory = self.factory or load_strategy(self.strategy)
        return factory(self.name, *self.args, **dict(self.options))


class ProviderRegistry:
    """Ordered set of provider registrations sharing one route prefix."""

    def __init__(self, prefix: str = "/auth"):
        self.prefix = prefix.rstrip("/")
        self._registrations: dict[str, ProviderRegistration] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, name: str, strategy: Any = None, *args: Any, **options: Any) -> ProviderRegistration:
        """
        Register a provider.

        Args:
            name: Provider name, also the last path segment of its routes
            strategy: Strategy reference, defaults to ``name``
            *args: Positional arguments for the strategy (client id, secret...)
            **options: Strategy options. ``request_path`` and ``callback_path``
                override the computed routes and are not passed on.

        Raises:
            ConfigurationError: On a duplicate name or a frozen registry
        """
        if self._frozen:
            raise ConfigurationError(f"Cannot register {name!r}: provider registry is frozen")
        name = str(name)
        if not name or "/" in name:
            raise ConfigurationError(f"Invalid provider name: {name!r}")
        if name in self._registrations:
            raise ConfigurationError(f"Provider {name!r} is already registered")

        options = dict(options)
        request_path = options.pop("request_path", None) or f"{self.prefix}/{name}"
        callback_path = options.pop("callback_path", None) or f"{request_path}/callback"

        registration = ProviderRegistration(
            name=name,
            strategy=name if strategy is None else strategy,
            args=tuple(args),
            options=MappingProxyType(options),
            request_path=request_path,
            callback_path=callback_path,
        )
        self._registrations[name] = registration
        logger.debug("Registered provider %s (%s)", name, request_path)
        return registration

    def get(self, name: str) -> ProviderRegistration:
        try:
            return self._registrations[name]
        except KeyError:
            raise UnknownProviderError(f"Unknown provider: {name!r}") from None

    def resolve(self, name: str) -> StrategyFactory:
        """Resolve the strategy factory of a registered provider."""
        registration = self.get(name)
        return registration.factory or load_strategy(registration.strategy)

    def finalize(self) -> "ProviderRegistry":
        """Resolve every registration and freeze the registry. Idempotent."""
        if self._frozen:
            return self
        for name, registration in self._registrations.items():
            self._registrations[name] = replace(registration, factory=self.resolve(name))
        self._frozen = True
        logger.info("Provider registry finalized with %d provider(s)", len(self._registrations))
        return self

    def derive(self) -> "ProviderRegistry":
        """Return an unfrozen copy that can be extended without touching this one."""
        child = ProviderRegistry(self.prefix)
        child._registrations = dict(self._registrations)
        return child

    def providers(self) -> list[str]:
        return list(self._registrations)

    def match(self, path: str) -> Optional[tuple[ProviderRegistration, str]]:
        """Find the provider route a path belongs to. First match wins."""
        if len(path) > 1:
            path = path.rstrip("/")
        for registration in self._registrations.values():
            if path == registration.request_path:
                return registration, REQUEST_PHASE
            if path == registration.callback_path:
                return registration, CALLBACK_PHASE
        return None

    def request_path(self, name: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return _with_query(self.get(name).request_path, params)

    def callback_path(self, name: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return _with_query(self.get(name).callback_path, params)

    def request_url(self, base_url: str, name: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return base_url.rstrip("/") + self.request_path(name, params)

    def callback_url(self, base_url: str, name: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return base_url.rstrip("/") + self.callback_path(name, params)

    def __contains__(self, name: object) -> bool:
        return name in self._registrations

    def __iter__(self) -> Iterator[ProviderRegistration]:
        return iter(self._registrations.values())

    def __len__(self) -> int:
        return len(self._registrations)


def _with_query(path: str, params: Optional[Mapping[str, Any]]) -> str:
    if not params:
        return path
    return f"{path}?{urlencode(params)}"


def build_registry(settings) -> ProviderRegistry:
    """
    Build a registry from the OMNIAUTH_PROVIDERS setting.

    Each entry is a mapping with ``name`` and optional ``strategy``, ``args``
    and ``options`` keys.

    Raises:
        ConfigurationError: If an entry is malformed
    """
    registry = ProviderRegistry(settings.OMNIAUTH_PREFIX)
    for entry in settings.OMNIAUTH_PROVIDERS:
        if not isinstance(entry, Mapping) or not entry.get("name"):
            raise ConfigurationError(f"Provider entry needs a name: {entry!r}")
        unknown = set(entry) - {"name", "strategy", "args", "options"}
        if unknown:
            raise ConfigurationError(
                f"Unknown keys for provider {entry['name']!r}: {', '.join(sorted(unknown))}"
            )
        registry.register(
            entry["name"],
            entry.get("strategy"),
            *entry.get("args", ()),
            **entry.get("options", {}),
        )
    return registry
