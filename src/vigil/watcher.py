"""One health-checked service and its reporting cycle."""

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .checks import make_check
from .engine import HealthCheckEngine

if TYPE_CHECKING:
    from .reporter import Reporter

logger = logging.getLogger(__name__)


def watcher_key(name: str, port: Any) -> str:
    """Identity of a service within the daemon: ``<name>_<port>``."""
    return f"{name}_{'' if port is None else port}"


class ServiceWatcher:
    """Owns the engine for one service and reports its status every tick.

    Static watchers come from the daemon configuration and never expire.
    Ephemeral watchers come from registration messages; they carry the
    content hash of the message that created them and an expiry the
    coordinator pushes forward on every identical re-registration.
    """

    def __init__(self, name: str, config: Dict[str, Any], reporter: "Reporter",
                 ephemeral: bool = False, content_hash: Optional[str] = None):
        self.name = name
        self.config = config
        self.key = watcher_key(name, config.get("port"))
        self.reporter = reporter
        self.is_ephemeral = ephemeral
        self.expires_at: Optional[float] = None
        self.content_hash = content_hash
        self.engine = HealthCheckEngine.from_config(make_check(config), config)
        self._closed = False

    @property
    def instance_id(self) -> Optional[str]:
        return self.config.get("instance_id")

    @property
    def status(self) -> Optional[bool]:
        """Last decided status, or None before the first tick."""
        return self.engine.last_result

    def init(self) -> None:
        self.engine.probe.init()

    def tick(self) -> bool:
        status = self.engine.evaluate()
        self.reporter.report(self, status)
        return status

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.engine.probe.close()
        finally:
            self.reporter.withdraw(self)

    def is_expired(self, now: float) -> bool:
        return self.is_ephemeral and self.expires_at is not None and now > self.expires_at

    def __repr__(self) -> str:
        kind = "ephemeral" if self.is_ephemeral else "static"
        return f"ServiceWatcher(key={self.key!r}, {kind}, status={self.status})"
