"""Strategy contract and the payload a completed handshake produces."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Optional, Sequence

from starlette.responses import Response

from fedauth.services.omniauth.errors import StrategyFailure

if TYPE_CHECKING:
    from fedauth.services.omniauth.dispatcher import DispatchContext

REQUEST_PHASE = "request"
CALLBACK_PHASE = "callback"


@dataclass
class AuthPayload:
    """Normalized result of a completed external handshake.

    ``info`` holds profile fields (``email``, ``name``...), ``credentials``
    holds tokens and secrets, ``extra`` holds whatever raw data the strategy
    wants to keep. ``params`` and ``origin`` are restored from the request
    phase by the dispatcher.
    """

    provider: str
    uid: str
    info: dict[str, Any] = field(default_factory=dict)
    credentials: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    origin: Optional[str] = None
    strategy: Optional["Strategy"] = field(default=None, repr=False, compare=False)
    error: Optional[BaseException] = field(default=None, repr=False, compare=False)
    error_type: Optional[str] = None

    @property
    def email(self) -> Optional[str]:
        return self.info.get("email") or None

    @property
    def name(self) -> Optional[str]:
        return self.info.get("name") or None


class Strategy(ABC):
    """Base class for per-provider handshake implementations.

    A strategy is built once per dispatched request with
    ``(name, *args, **options)``. ``setup`` hooks may change ``options``
    before either phase runs.
    """

    # Strategy defaults, overridden by registration options
    default_options: ClassVar[dict[str, Any]] = {}

    # None means the OMNIAUTH_ALLOWED_REQUEST_METHODS setting applies
    request_methods: ClassVar[Optional[Sequence[str]]] = None

    def __init__(self, name: str, *args: Any, **options: Any):
        self.name = name
        self.args = args
        self.options: dict[str, Any] = {**self.default_options, **options}

    @property
    def allowed_request_methods(self) -> Optional[list[str]]:
        methods = self.options.get("allowed_request_methods", self.request_methods)
        if methods is None:
            return None
        return [method.upper() for method in methods]

    @abstractmethod
    async def request_phase(self, ctx: "DispatchContext") -> Response:
        """Start the handshake, usually by redirecting to the provider."""

    @abstractmethod
    async def callback_phase(self, ctx: "DispatchContext") -> AuthPayload:
        """Finish the handshake and return the asserted identity.

        Raises:
            StrategyFailure: If the provider rejected or could not complete
                the handshake
        """

    def method_not_allowed(self, ctx: "DispatchContext") -> Optional[Response]:
        """Handle a request phase call with a disallowed method.

        Returning None passes the request through to host routing. A strategy
        may return its own response or raise ValidationFailure instead.
        """
        return None

    def fail(self, error_type: str, cause: Optional[BaseException] = None) -> None:
        raise StrategyFailure(error_type, self, cause)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
