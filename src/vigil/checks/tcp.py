"""TCP connect probe."""

import socket
from typing import Any, Dict

from .base import BaseCheck


class TcpCheck(BaseCheck):
    required = ("host", "port")

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.host = str(config["host"])
        self.port = self._port(config)

    def check(self) -> bool:
        with socket.create_connection((self.host, self.port), timeout=self.timeout):
            return True
