"""
Shared fixtures for vigil tests.

Provides a scripted probe type so watcher/coordinator tests control check
outcomes without touching the network, a reporter that records every call,
and a settable clock.
"""

import time
from collections import defaultdict, deque

import pytest

from vigil.checks import CHECK_TYPES, BaseCheck


class ScriptedCheck(BaseCheck):
    """Probe whose outcomes are queued per service name.

    A queued exception instance is raised instead of returned. Once a
    name's queue is empty the probe keeps returning True.
    """

    required = ("port",)
    outcomes: dict = defaultdict(deque)
    closed: list = []

    def check(self) -> bool:
        queue = self.outcomes[self.name]
        outcome = queue.popleft() if queue else True
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed.append(self.name)


class RecordingReporter:
    def __init__(self):
        self.reports = []
        self.withdrawn = []

    def report(self, watcher, status):
        self.reports.append((watcher.key, status))

    def withdraw(self, watcher):
        self.withdrawn.append(watcher.key)

    def statuses(self, key):
        return [status for reported_key, status in self.reports if reported_key == key]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def scripted_checks(monkeypatch):
    monkeypatch.setitem(CHECK_TYPES, "scripted", ScriptedCheck)
    ScriptedCheck.outcomes.clear()
    ScriptedCheck.closed.clear()
    yield ScriptedCheck.outcomes
    ScriptedCheck.outcomes.clear()
    ScriptedCheck.closed.clear()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def clock():
    return FakeClock()


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll *predicate* until it is truthy or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def closed_checks():
    """Names of scripted probes that have been closed, in order."""
    return ScriptedCheck.closed


@pytest.fixture
def wait():
    return wait_for
