#!/usr/bin/env python3
"""
Local service status table

This module provides:
- ServiceRecord: the last reported status of one watcher
- InMemoryRegistry: a lock-guarded table of ServiceRecords keyed by watcher key
- start_registry_server: serves the table read-only over HTTP from a daemon thread
- ServiceRegistryClient: thin HTTP client matching the query API shape
"""

import json
import threading
import time
import urllib.parse
import urllib.request
import urllib.error
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, asdict, field
from enum import Enum


class ServiceStatus(Enum):
    """Reported health of a watched service"""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

    @classmethod
    def from_bool(cls, up: bool) -> 'ServiceStatus':
        return cls.HEALTHY if up else cls.UNHEALTHY


@dataclass
class ServiceRecord:
    """Status row for one watcher"""
    key: str
    name: str
    host: Optional[str]
    port: Optional[Any]
    instance_id: Optional[str]
    ephemeral: bool = False
    status: str = ServiceStatus.UNHEALTHY.value
    last_seen: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServiceRecord':
        data = dict(data)
        data["last_seen"] = float(data["last_seen"])
        return cls(**data)


# ---------------------------------------------------------------------------
# In-memory table (lives inside the daemon process)
# ---------------------------------------------------------------------------

class InMemoryRegistry:
    """Thread-safe, dict-backed status table."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, ServiceRecord] = {}

    def upsert(self, record: ServiceRecord) -> Optional[str]:
        """Store *record*, returning the status it replaced (None if new)."""
        with self._lock:
            previous = self._records.get(record.key)
            self._records[record.key] = record
        return previous.status if previous else None

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def get(self, key: str) -> Optional[ServiceRecord]:
        with self._lock:
            return self._records.get(key)

    def list(self, name: Optional[str] = None,
             status_filter: Optional[ServiceStatus] = None) -> List[ServiceRecord]:
        with self._lock:
            records = list(self._records.values())
        if name:
            records = [r for r in records if r.name == name]
        if status_filter is not None:
            records = [r for r in records if r.status == status_filter.value]
        return sorted(records, key=lambda r: r.key)

    def healthy(self, name: Optional[str] = None,
                max_age_seconds: float = 30) -> List[ServiceRecord]:
        """Healthy records that were reported within *max_age_seconds*."""
        now = time.time()
        return [
            r for r in self.list(name=name, status_filter=ServiceStatus.HEALTHY)
            if (now - r.last_seen) < max_age_seconds
        ]

    def count(self, name: Optional[str] = None) -> int:
        return len(self.list(name=name))


# ---------------------------------------------------------------------------
# HTTP handler (read-only query API served from the daemon)
# ---------------------------------------------------------------------------

def _make_handler(registry: InMemoryRegistry):
    """Create a handler class bound to the given registry instance."""

    class RegistryHTTPHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            # Silence default stderr logging
            pass

        def _json_response(self, data: Any, status: int = 200):
            body = json.dumps(data).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self):
            parsed = urllib.parse.urlparse(self.path)
            path = parsed.path.rstrip("/")
            qs = urllib.parse.parse_qs(parsed.query)
            name = qs.get("name", [None])[0]

            if path == "/services":
                status_str = qs.get("status", [None])[0]
                try:
                    status_filter = ServiceStatus(status_str) if status_str else None
                except ValueError:
                    self._json_response({"error": f"unknown status '{status_str}'"}, status=400)
                    return
                records = registry.list(name=name, status_filter=status_filter)
                self._json_response([r.to_dict() for r in records])

            elif path == "/services/healthy":
                max_age = float(qs.get("max_age", [30])[0])
                records = registry.healthy(name=name, max_age_seconds=max_age)
                self._json_response([r.to_dict() for r in records])

            elif path == "/services/count":
                self._json_response({"count": registry.count(name=name)})

            elif path.startswith("/services/"):
                key = urllib.parse.unquote(path[len("/services/"):])
                record = registry.get(key)
                if record:
                    self._json_response(record.to_dict())
                else:
                    self._json_response({"error": "not found"}, status=404)

            else:
                self._json_response({"error": "not found"}, status=404)

    return RegistryHTTPHandler


def start_registry_server(
    registry: InMemoryRegistry,
    host: str = "127.0.0.1",
    port: int = 8471,
) -> ThreadingHTTPServer:
    """Start a ThreadingHTTPServer in a daemon thread and return the server."""
    handler = _make_handler(registry)
    server = ThreadingHTTPServer((host, port), handler)
    thread = threading.Thread(target=server.serve_forever, name="vigil-registry", daemon=True)
    thread.start()
    return server


# ---------------------------------------------------------------------------
# HTTP client (used by the CLI to query a running daemon)
# ---------------------------------------------------------------------------

class ServiceRegistryClient:
    """Thin HTTP client for the status query API."""

    def __init__(self, host: str = "127.0.0.1", port: int = 8471, timeout: float = 10):
        self._base = f"http://{host}:{port}"
        self._timeout = timeout
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        qs = urllib.parse.urlencode({k: v for k, v in (params or {}).items() if v is not None})
        url = f"{self._base}{path}?{qs}" if qs else f"{self._base}{path}"
        with self._opener.open(url, timeout=self._timeout) as resp:
            return json.loads(resp.read().decode())

    def get(self, key: str) -> Optional[ServiceRecord]:
        try:
            data = self._get(f"/services/{urllib.parse.quote(key)}")
        except (urllib.error.URLError, OSError):
            return None
        if "error" in data:
            return None
        return ServiceRecord.from_dict(data)

    def list(self, name: Optional[str] = None,
             status_filter: Optional[str] = None) -> List[ServiceRecord]:
        try:
            data = self._get("/services", {"name": name, "status": status_filter})
        except (urllib.error.URLError, OSError):
            return []
        return [ServiceRecord.from_dict(d) for d in data]

    def healthy(self, name: Optional[str] = None,
                max_age_seconds: float = 30) -> List[ServiceRecord]:
        try:
            data = self._get("/services/healthy", {"name": name, "max_age": str(max_age_seconds)})
        except (urllib.error.URLError, OSError):
            return []
        return [ServiceRecord.from_dict(d) for d in data]

    def count(self, name: Optional[str] = None) -> int:
        try:
            data = self._get("/services/count", {"name": name})
        except (urllib.error.URLError, OSError):
            return 0
        return data.get("count", 0)
