"""
Health probes

One probe class per check kind, selected by the ``type`` field of a
service's configuration:

- ``tcp``    — TcpCheck, succeeds if a TCP connection can be opened
- ``http``   — HttpCheck, succeeds on the expected HTTP status
- ``script`` — ScriptCheck, succeeds if a command exits 0
"""

from typing import Any, Dict, Type

from ..errors import ConfigurationError
from .base import BaseCheck
from .http import HttpCheck
from .script import ScriptCheck
from .tcp import TcpCheck

CHECK_TYPES: Dict[str, Type[BaseCheck]] = {
    "tcp": TcpCheck,
    "http": HttpCheck,
    "script": ScriptCheck,
}

DEFAULT_CHECK_TYPE = "tcp"


def make_check(config: Dict[str, Any]) -> BaseCheck:
    """Build the probe named by ``config['type']``."""
    check_type = config.get("type") or DEFAULT_CHECK_TYPE
    check_cls = CHECK_TYPES.get(check_type)
    if check_cls is None:
        raise ConfigurationError(
            f"unknown check type '{check_type}' for service {config.get('name')!r};"
            f" expected one of {', '.join(sorted(CHECK_TYPES))}"
        )
    return check_cls(config)


__all__ = [
    'BaseCheck',
    'CHECK_TYPES',
    'HttpCheck',
    'ScriptCheck',
    'TcpCheck',
    'make_check',
]
