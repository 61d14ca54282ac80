"""Shared fixtures for the filesystem server tests."""

from __future__ import annotations

from typing import List

import pytest

from filesystem_server.watchers import WatcherRegistry


class FakeObserver:
    """Stands in for a watchdog Observer without starting a thread."""

    def __init__(self) -> None:
        self.scheduled: list = []
        self.started = False
        self.stopped = False
        self.joined = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout=None) -> None:
        self.joined = True

    @property
    def handler(self):
        return self.scheduled[0][0]


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def observers() -> List[FakeObserver]:
    return []


@pytest.fixture
def registry(observers: List[FakeObserver]) -> WatcherRegistry:
    def factory() -> FakeObserver:
        observer = FakeObserver()
        observers.append(observer)
        return observer

    return WatcherRegistry(observer_factory=factory)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
