"""Common probe plumbing."""

from typing import Any, Dict, Tuple

from ..config import coerce_field
from ..engine import DEFAULT_TIMEOUT
from ..errors import ConfigurationError


class BaseCheck:
    """Base class for probes.

    Subclasses list their mandatory config keys in ``required`` and
    implement ``check()``. ``check()`` may raise; the engine treats any
    exception as a failed check. Every blocking call a probe makes must be
    bounded by ``self.timeout``. Constructors raise ConfigurationError for
    any missing or malformed field, never another exception type.
    """

    required: Tuple[str, ...] = ()

    def __init__(self, config: Dict[str, Any]):
        missing = [key for key in self.required if config.get(key) in (None, "")]
        if missing:
            raise ConfigurationError(
                f"{type(self).__name__} for service {config.get('name')!r}"
                f" is missing required field(s): {', '.join(missing)}"
            )
        self.name = str(config.get("name") or "undefined")
        self.timeout = coerce_field(config, "timeout", float, DEFAULT_TIMEOUT)
        if self.timeout <= 0:
            raise ConfigurationError(f"service {self.name!r}: timeout must be positive, got {self.timeout}")

    @staticmethod
    def _port(config: Dict[str, Any]) -> int:
        port = coerce_field(config, "port", int, None)
        if not 0 < port < 65536:
            raise ConfigurationError(f"service {config.get('name')!r}: port {port} is out of range")
        return port

    def init(self) -> None:
        pass

    def check(self) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, timeout={self.timeout})"
