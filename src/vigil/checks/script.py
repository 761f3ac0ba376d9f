"""Command exit-status probe."""

import shlex
import subprocess
from typing import Any, Dict

from ..errors import CheckError, ConfigurationError
from .base import BaseCheck


class ScriptCheck(BaseCheck):
    required = ("command",)

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        command = config["command"]
        if isinstance(command, str):
            try:
                self.command = shlex.split(command)
            except ValueError as exc:
                raise ConfigurationError(f"service {self.name!r}: cannot parse command: {exc}") from exc
        elif isinstance(command, list) and command:
            self.command = [str(c) for c in command]
        else:
            raise ConfigurationError(
                f"service {self.name!r}: command must be a string or a non-empty list, got {command!r}"
            )
        if not self.command:
            raise ConfigurationError(f"service {self.name!r}: command is empty")

    def check(self) -> bool:
        result = subprocess.run(
            self.command,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )
        if result.returncode != 0:
            raise CheckError(
                f"{self.command[0]} exited {result.returncode}: {result.stderr.strip()[:200]}"
            )
        return True
