"""Tests for the status registry, its HTTP API, and the reporters that feed it."""

import logging
import time

import pytest

from vigil.config import VigilConfig
from vigil.coordinator import Coordinator
from vigil.errors import ConfigurationError
from vigil.registry import (
    InMemoryRegistry,
    ServiceRecord,
    ServiceRegistryClient,
    ServiceStatus,
    start_registry_server,
)
from vigil.reporter import LogReporter, RegistryReporter, make_reporter
from vigil.watcher import ServiceWatcher


def record(key, name="web", status=ServiceStatus.HEALTHY, **kwargs):
    values = dict(key=key, name=name, host="127.0.0.1", port=int(key.rsplit("_", 1)[1]),
                  instance_id="host-1", status=status.value)
    values.update(kwargs)
    return ServiceRecord(**values)


@pytest.fixture
def registry():
    registry = InMemoryRegistry()
    registry.upsert(record("web_1"))
    registry.upsert(record("web_2", status=ServiceStatus.UNHEALTHY))
    registry.upsert(record("api_3", name="api", ephemeral=True))
    return registry


@pytest.fixture
def client(registry):
    server = start_registry_server(registry, host="127.0.0.1", port=0)
    yield ServiceRegistryClient(port=server.server_address[1], timeout=5)
    server.shutdown()
    server.server_close()


class TestInMemoryRegistry:

    def test_upsert_returns_previous_status(self):
        registry = InMemoryRegistry()
        assert registry.upsert(record("web_1")) is None
        assert registry.upsert(record("web_1", status=ServiceStatus.UNHEALTHY)) == "healthy"
        assert registry.count() == 1

    def test_filters(self, registry):
        assert [r.key for r in registry.list()] == ["api_3", "web_1", "web_2"]
        assert [r.key for r in registry.list(name="web")] == ["web_1", "web_2"]
        assert [r.key for r in registry.list(status_filter=ServiceStatus.UNHEALTHY)] == ["web_2"]
        assert registry.count(name="api") == 1

    def test_healthy_ignores_stale_records(self, registry):
        registry.upsert(record("web_4", last_seen=time.time() - 120))
        assert [r.key for r in registry.healthy()] == ["api_3", "web_1"]

    def test_remove(self, registry):
        assert registry.remove("web_1") is True
        assert registry.remove("web_1") is False
        assert registry.get("web_1") is None


class TestRegistryHTTP:

    def test_list(self, client):
        assert [r.key for r in client.list()] == ["api_3", "web_1", "web_2"]
        assert [r.key for r in client.list(name="api")] == ["api_3"]
        assert [r.key for r in client.list(status_filter="unhealthy")] == ["web_2"]

    def test_get(self, client):
        api = client.get("api_3")
        assert api.ephemeral is True
        assert api.port == 3
        assert client.get("missing_1") is None

    def test_healthy_and_count(self, client):
        assert [r.key for r in client.healthy(name="web")] == ["web_1"]
        assert client.count() == 3
        assert client.count(name="web") == 2

    def test_unreachable_server(self):
        client = ServiceRegistryClient(port=1, timeout=1)
        assert client.list() == []
        assert client.get("web_1") is None
        assert client.count() == 0


class TestReporters:

    def test_log_reporter_logs_changes(self, reporter, caplog):
        log_reporter = LogReporter()
        watcher = ServiceWatcher("web", {"type": "scripted", "port": 1}, log_reporter)
        with caplog.at_level(logging.INFO, logger="vigil.reporter"):
            log_reporter.report(watcher, True)
            log_reporter.report(watcher, True)
            log_reporter.report(watcher, False)
        messages = [r.getMessage() for r in caplog.records if r.name == "vigil.reporter"]
        assert messages == ["web_1: init -> healthy", "web_1: healthy -> unhealthy"]

    def test_registry_reporter_tracks_watchers(self, scripted_checks):
        registry_reporter = RegistryReporter()
        scripted_checks["web"].extend([True, False])
        watcher = ServiceWatcher(
            "web",
            {"type": "scripted", "host": "10.0.0.1", "port": "8080", "name": "web",
             "instance_id": "host-1"},
            registry_reporter,
            ephemeral=True,
        )
        watcher.tick()
        stored = registry_reporter.registry.get("web_8080")
        assert stored.status == "healthy"
        assert (stored.host, stored.port, stored.instance_id) == ("10.0.0.1", "8080", "host-1")
        assert stored.ephemeral is True

        watcher.tick()
        assert registry_reporter.registry.get("web_8080").status == "unhealthy"

        watcher.close()
        assert registry_reporter.registry.get("web_8080") is None

    def test_make_reporter(self):
        assert isinstance(make_reporter(VigilConfig(reporter="log")), LogReporter)
        with pytest.raises(ConfigurationError):
            make_reporter(VigilConfig(reporter="zookeeper"))

    def test_make_registry_reporter_serves(self):
        reporter = make_reporter(VigilConfig(reporter="registry", registry_port=0))
        try:
            assert isinstance(reporter, RegistryReporter)
            port = reporter._server.server_address[1]
            assert ServiceRegistryClient(port=port, timeout=5).count() == 0
        finally:
            reporter.shutdown()

    def test_registered_port_is_stored_as_given(self):
        """A non-numeric port from a registration must not break later ticks."""
        registry_reporter = RegistryReporter()
        coordinator = Coordinator(registry_reporter)
        coordinator.start(VigilConfig(instance_id="host-1", services={}))
        touched = coordinator.receive_registration(
            {"services": {"job": {"type": "scripted", "port": "abc"}}}
        )
        assert touched == {"job_abc"}

        coordinator.tick()
        coordinator.tick()
        stored = registry_reporter.registry.get("job_abc")
        assert stored.port == "abc"
        assert stored.status == "healthy"
        assert stored.to_dict()["port"] == "abc"
