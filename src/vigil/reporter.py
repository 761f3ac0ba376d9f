"""Status reporters fed by every watcher tick."""

import logging
from typing import TYPE_CHECKING, Dict, Optional, Protocol

from .errors import ConfigurationError
from .registry import InMemoryRegistry, ServiceRecord, ServiceStatus, start_registry_server

if TYPE_CHECKING:
    from http.server import ThreadingHTTPServer

    from .config import VigilConfig
    from .watcher import ServiceWatcher

logger = logging.getLogger(__name__)


class Reporter(Protocol):
    """Where watcher statuses go.

    ``report`` is called on every tick whether or not the status changed;
    deduplication, if wanted, is the reporter's business. ``withdraw`` is
    called once when a watcher is closed.
    """

    def report(self, watcher: "ServiceWatcher", status: bool) -> None: ...

    def withdraw(self, watcher: "ServiceWatcher") -> None: ...


def _describe(status: Optional[bool]) -> str:
    if status is None:
        return "init"
    return ServiceStatus.from_bool(status).value


class LogReporter:
    """Logs statuses, at info level only when they change."""

    def __init__(self):
        self._last: Dict[str, bool] = {}

    def report(self, watcher: "ServiceWatcher", status: bool) -> None:
        previous = self._last.get(watcher.key)
        if previous != status:
            logger.info("%s: %s -> %s", watcher.key, _describe(previous), _describe(status))
            self._last[watcher.key] = status
        else:
            logger.debug("%s: %s", watcher.key, _describe(status))

    def withdraw(self, watcher: "ServiceWatcher") -> None:
        if self._last.pop(watcher.key, None) is not None:
            logger.info("%s: withdrawn", watcher.key)


class RegistryReporter(LogReporter):
    """Keeps an InMemoryRegistry current and optionally serves it over HTTP."""

    def __init__(self, registry: Optional[InMemoryRegistry] = None):
        super().__init__()
        self.registry = registry if registry is not None else InMemoryRegistry()
        self._server: Optional["ThreadingHTTPServer"] = None

    def serve(self, host: str, port: int) -> None:
        self._server = start_registry_server(self.registry, host=host, port=port)
        logger.info("status registry listening on %s:%d", host, self._server.server_address[1])

    def shutdown(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None

    def report(self, watcher: "ServiceWatcher", status: bool) -> None:
        super().report(watcher, status)
        self.registry.upsert(ServiceRecord(
            key=watcher.key,
            name=watcher.name,
            host=watcher.config.get("host"),
            port=watcher.config.get("port"),
            instance_id=watcher.instance_id,
            ephemeral=watcher.is_ephemeral,
            status=ServiceStatus.from_bool(status).value,
        ))

    def withdraw(self, watcher: "ServiceWatcher") -> None:
        super().withdraw(watcher)
        self.registry.remove(watcher.key)


REPORTER_TYPES = {
    "log": LogReporter,
    "registry": RegistryReporter,
}


def make_reporter(config: "VigilConfig") -> Reporter:
    """Build the reporter named by ``config.reporter``.

    A registry reporter also starts its HTTP query server.
    """
    reporter_cls = REPORTER_TYPES.get(config.reporter)
    if reporter_cls is None:
        raise ConfigurationError(
            f"unknown reporter '{config.reporter}'; expected one of {', '.join(sorted(REPORTER_TYPES))}"
        )
    reporter = reporter_cls()
    if isinstance(reporter, RegistryReporter):
        reporter.serve(config.registry_host, config.registry_port)
    return reporter
