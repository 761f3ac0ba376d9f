"""Rise/fall hysteresis over a pluggable health probe."""

import logging
from typing import Any, Dict, Optional, Protocol

from .config import coerce_field
from .errors import ConfigurationError
from .ring_buffer import RingBuffer

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 0.1
DEFAULT_RISE = 1
DEFAULT_FALL = 1


class Probe(Protocol):
    """Capability the engine drives: a bounded, boolean health check."""

    timeout: float

    def init(self) -> None: ...

    def check(self) -> bool: ...

    def close(self) -> None: ...


class HealthCheckEngine:
    """Flap-damping filter around a probe.

    The reported status only goes down after ``fall`` consecutive failed
    checks and only comes back up after ``rise`` consecutive successes.
    The very first check seeds the whole history, so a service starts in
    whatever state its first probe reports.
    """

    def __init__(self, probe: Probe, timeout: float = DEFAULT_TIMEOUT,
                 rise: int = DEFAULT_RISE, fall: int = DEFAULT_FALL,
                 name: str = "undefined"):
        if rise < 1 or fall < 1:
            raise ConfigurationError(f"rise and fall must be at least 1 (rise={rise}, fall={fall})")
        self.probe = probe
        self.timeout = timeout
        self.rise = rise
        self.fall = fall
        self.name = name
        self.history: RingBuffer[bool] = RingBuffer(max(rise, fall))
        self.last_result: Optional[bool] = None

    @classmethod
    def from_config(cls, probe: Probe, config: Dict[str, Any]) -> "HealthCheckEngine":
        return cls(
            probe,
            timeout=coerce_field(config, "timeout", float, DEFAULT_TIMEOUT),
            rise=coerce_field(config, "rise", int, DEFAULT_RISE),
            fall=coerce_field(config, "fall", int, DEFAULT_FALL),
            name=str(config.get("name") or "undefined"),
        )

    def _run_probe(self) -> bool:
        try:
            return bool(self.probe.check())
        except Exception as exc:
            logger.debug("service check %s raised %r", self.name, exc)
            return False

    def evaluate(self) -> bool:
        result = self._run_probe()

        if self.last_result is None:
            self.last_result = result
            for _ in range(self.history.capacity):
                self.history.push(result)
            logger.info("service check %s initial check returned %s", self.name, result)

        logger.debug("service check %s returned %s", self.name, result)
        self.history.push(result)

        if not any(self.history.last_n(self.fall)):
            if self.last_result:
                logger.info("service check %s transitions to down after %d failures",
                            self.name, self.fall)
            self.last_result = False

        if all(self.history.last_n(self.rise)):
            if not self.last_result:
                logger.info("service check %s transitions to up after %d successes",
                            self.name, self.rise)
            self.last_result = True

        return self.last_result
