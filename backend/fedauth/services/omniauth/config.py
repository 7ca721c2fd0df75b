"""Per-app external login configuration."""

from dataclasses import dataclass, field, replace
from typing import Optional

from fedauth.config import Settings, settings as default_settings
from fedauth.services.omniauth.failure import FailureChannel
from fedauth.services.omniauth.hooks import HookRegistry, check_csrf
from fedauth.services.omniauth.registry import ProviderRegistry, build_registry
from fedauth.services.omniauth.session import SessionBridge


@dataclass
class OmniauthConfig:
    """Everything the dispatcher needs: providers, hooks, failure handling, settings."""

    registry: ProviderRegistry
    hooks: HookRegistry = field(default_factory=HookRegistry)
    failure: FailureChannel = field(default_factory=FailureChannel)
    settings: Settings = field(default_factory=lambda: default_settings)
    session_bridge: Optional[SessionBridge] = None

    def __post_init__(self) -> None:
        if self.session_bridge is None:
            self.session_bridge = SessionBridge(self.settings.SESSION_MODE)

    def finalize(self) -> "OmniauthConfig":
        self.registry.finalize()
        return self

    def derive(self, **overrides) -> "OmniauthConfig":
        """Copy with an unfrozen registry and independent hook lists."""
        if "settings" in overrides and "session_bridge" not in overrides:
            overrides["session_bridge"] = SessionBridge(overrides["settings"].SESSION_MODE)
        return replace(
            self,
            registry=self.registry.derive(),
            hooks=self.hooks.derive(),
            **overrides,
        )


def build_omniauth(app_settings: Optional[Settings] = None) -> OmniauthConfig:
    """Build the configuration from settings, with the default CSRF check installed."""
    app_settings = app_settings or default_settings
    hooks = HookRegistry()
    hooks.register("request_validation_phase", check_csrf)
    return OmniauthConfig(
        registry=build_registry(app_settings),
        hooks=hooks,
        settings=app_settings,
    )
