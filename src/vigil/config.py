"""Configuration loading and validation for vigil."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from .errors import ConfigurationError


@dataclass
class VigilConfig:
    # Required: identifies this host to the reporter
    instance_id: Optional[str] = None

    # Static services, name -> probe config (type, host, port, rise, fall, ...)
    services: Optional[Dict[str, Dict[str, Any]]] = None

    # Registration socket for ephemeral services
    listen_host: str = "127.0.0.1"
    listen_port: int = 1025

    # Seconds an ephemeral registration lives without a heartbeat
    ephemeral_service_expiry: int = 60

    # Seconds between watcher ticks
    tick_interval: float = 1.0

    # Reporter backend: "log" or "registry"
    reporter: str = "log"

    # HTTP query API of the registry reporter
    registry_host: str = "127.0.0.1"
    registry_port: int = 8471

    def validate(self) -> "VigilConfig":
        """Check required fields and coerce numeric ones. Returns self."""
        for required in ("instance_id", "services"):
            if getattr(self, required) is None:
                raise ConfigurationError(f"you need to specify required argument {required}")
        if not isinstance(self.services, dict):
            raise ConfigurationError("services must be a mapping of name -> check config")
        for name, service in self.services.items():
            if not isinstance(service, dict):
                raise ConfigurationError(f"service {name!r} must be a mapping, got {type(service).__name__}")
        try:
            self.listen_port = int(self.listen_port)
            self.ephemeral_service_expiry = int(self.ephemeral_service_expiry)
            self.tick_interval = float(self.tick_interval)
            self.registry_port = int(self.registry_port)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid numeric setting: {exc}") from exc
        if self.tick_interval <= 0:
            raise ConfigurationError(f"tick_interval must be positive, got {self.tick_interval}")
        return self


def config_from_dict(data: Dict[str, Any]) -> VigilConfig:
    """Build a VigilConfig from a parsed mapping, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(VigilConfig)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return VigilConfig(**filtered)


def load_config(path: str | Path) -> VigilConfig:
    """Load a VigilConfig from a YAML file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigurationError(f"cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"cannot parse config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a mapping")
    return config_from_dict(data)


def merge_cli_args(config: VigilConfig, args) -> VigilConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(VigilConfig):
        if f.name == "services":
            continue
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)
    return config


_KIND_NAMES = {int: "an integer", float: "a number"}


def coerce_field(config: Dict[str, Any], key: str, kind: Callable[[Any], Any], default: Any) -> Any:
    """Read ``config[key]`` as *kind*, falling back to *default* when unset.

    Values that cannot be converted raise ConfigurationError naming the
    service and field.
    """
    value = config.get(key)
    if value in (None, ""):
        return default
    expected = _KIND_NAMES.get(kind, kind.__name__)
    message = f"service {config.get('name')!r}: {key} must be {expected}, got {value!r}"
    if isinstance(value, (bool, dict, list)):
        raise ConfigurationError(message)
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(message) from exc
