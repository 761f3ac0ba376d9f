"""HTTP status probe."""

import urllib.error
import urllib.request
from typing import Any, Dict

from ..config import coerce_field
from ..errors import CheckError, ConfigurationError
from .base import BaseCheck


class HttpCheck(BaseCheck):
    """GET ``http://host:port/uri`` and compare the response status."""

    required = ("host", "port")

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.host = str(config["host"])
        self.port = self._port(config)
        uri = config.get("uri") or "/health"
        if not isinstance(uri, str):
            raise ConfigurationError(f"service {self.name!r}: uri must be a string, got {uri!r}")
        self.uri = uri if uri.startswith("/") else f"/{uri}"
        self.expect_status = coerce_field(config, "expect_status", int, 200)
        self._opener = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}{self.uri}"

    def init(self) -> None:
        # Local services must never be reached through an HTTP proxy
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def check(self) -> bool:
        if self._opener is None:
            self.init()
        try:
            with self._opener.open(self.url, timeout=self.timeout) as resp:
                status = resp.status
        except urllib.error.HTTPError as exc:
            status = exc.code
        if status != self.expect_status:
            raise CheckError(f"{self.url} returned {status}, expected {self.expect_status}")
        return True

    def close(self) -> None:
        self._opener = None
