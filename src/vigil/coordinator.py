"""Owns every watcher, ticks them, and applies registration messages."""

import hashlib
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Set

from .config import VigilConfig
from .errors import ConfigurationError
from .reporter import Reporter
from .server import RegistrationServer
from .watcher import ServiceWatcher, watcher_key

logger = logging.getLogger(__name__)


def content_hash(params: Dict[str, Any]) -> str:
    """Digest of a registration's parameters, stable under key order."""
    serialized = json.dumps(params, sort_keys=True, default=str)
    return hashlib.sha1(serialized.encode()).hexdigest()


class Coordinator:
    """Lifecycle manager for static and ephemeral watchers.

    The watcher map is shared between the tick loop and the registration
    server's connection threads, so every access goes through ``_lock``.
    A whole tick and a whole registration message each hold the lock,
    which also serializes every engine's history updates.
    """

    def __init__(self, reporter: Reporter, clock: Callable[[], float] = time.time):
        self.reporter = reporter
        self.clock = clock
        self.watchers: Dict[str, ServiceWatcher] = {}
        self.instance_id: Optional[str] = None
        self.ephemeral_expiry: int = 60
        self.config: Optional[VigilConfig] = None
        self.server: Optional[RegistrationServer] = None
        self.started = threading.Event()
        self._stopping = threading.Event()
        self._lock = threading.RLock()

    def start(self, config: VigilConfig) -> None:
        """Validate *config* and build one watcher per static service."""
        logger.info("vigil: starting up")
        config.validate()
        self.config = config
        self.instance_id = config.instance_id
        self.ephemeral_expiry = config.ephemeral_service_expiry

        logger.debug("vigil: creating service watchers")
        with self._lock:
            for name, service in config.services.items():
                params = dict(service, instance_id=self.instance_id, name=name)
                watcher = ServiceWatcher(name, params, self.reporter)
                if watcher.key in self.watchers:
                    raise ConfigurationError(f"duplicate service key {watcher.key!r}")
                self.watchers[watcher.key] = watcher
        logger.debug("vigil: completed init with %d static watchers", len(self.watchers))

    def run(self) -> None:
        """Tick every watcher and accept registrations until ``stop()``.

        Raises OSError if the registration socket cannot be bound; every
        watcher is closed before it propagates.
        """
        if self.config is None:
            raise RuntimeError("Coordinator.start() must be called before run()")
        logger.info("vigil: starting run")
        try:
            self.server = RegistrationServer(self, self.config.listen_host, self.config.listen_port)
        except OSError:
            self._shutdown()
            raise
        try:
            with self._lock:
                for watcher in self.watchers.values():
                    watcher.init()

            self.server.start()
            logger.info("vigil: listening on %s:%d for services", *self.server.server_address[:2])
            self.started.set()

            while not self._stopping.wait(self.config.tick_interval):
                self.tick()
        except Exception:
            logger.exception("vigil: main loop failed")
        finally:
            self._shutdown()
        logger.info("vigil: exiting")

    def stop(self) -> None:
        self._stopping.set()

    def tick(self) -> None:
        with self._lock:
            now = self.clock()
            for watcher in list(self.watchers.values()):
                if watcher.is_expired(now):
                    continue
                watcher.tick()

    def remove_watcher(self, key: str) -> bool:
        with self._lock:
            watcher = self.watchers.pop(key, None)
            if watcher is None:
                logger.warning("can't remove service watcher for %s because it's not present", key)
                return False
            logger.info("removing service watcher for %s", key)
            watcher.close()
            return True

    def receive_registration(self, message: Any) -> Set[str]:
        """Apply one registration message; return every key it touched.

        An identical re-registration only pushes the watcher's expiry
        forward, keeping its check history. Changed parameters replace the
        watcher, which restarts its hysteresis from scratch.
        """
        touched: Set[str] = set()
        if not isinstance(message, dict) or not isinstance(message.get("services"), dict):
            return touched

        with self._lock:
            now = self.clock()
            for name, params in message["services"].items():
                if not isinstance(params, dict):
                    logger.info("ignoring registration for %s: parameters must be an object", name)
                    continue
                digest = content_hash(params)
                key = watcher_key(name, params.get("port"))

                existing = self.watchers.get(key)
                if existing is not None:
                    if existing.content_hash != digest:
                        self.remove_watcher(key)
                    else:
                        existing.expires_at = now + self.ephemeral_expiry

                if key not in self.watchers:
                    self._add_ephemeral(name, key, params, digest, now)
                touched.add(key)
        return touched

    def _add_ephemeral(self, name: str, key: str, params: Dict[str, Any],
                       digest: str, now: float) -> None:
        logger.info("adding new ephemeral service watcher for %s", key)
        config = dict(params, instance_id=self.instance_id, name=name)
        try:
            watcher = ServiceWatcher(name, config, self.reporter, ephemeral=True, content_hash=digest)
            watcher.init()
        except ConfigurationError as exc:
            logger.info("not watching %s: %s", key, exc)
            return
        except Exception:
            logger.exception("not watching %s: failed to set up its check", key)
            return
        watcher.expires_at = now + self.ephemeral_expiry
        self.watchers[key] = watcher

    def _shutdown(self) -> None:
        if self.server is not None:
            self.server.stop()
            self.server = None
        with self._lock:
            for key, watcher in list(self.watchers.items()):
                try:
                    watcher.close()
                except Exception:
                    logger.exception("vigil: failed to close watcher %s", key)
            self.watchers.clear()
