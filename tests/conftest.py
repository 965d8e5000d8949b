"""
Shared fixtures for the analytics test suite.
"""

from datetime import datetime, timedelta, timezone

import pytest

from analytics_service import (
    AnalyticsService,
    CircuitBreaker,
    InMemoryDocumentStore,
    ResilientExecutor,
)


class FakeClock:
    """Controllable time source.

    Calling the clock returns the current aware UTC datetime; ``monotonic``
    returns seconds elapsed since creation, for the circuit breaker.
    """

    def __init__(self, start: datetime = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.start = start
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return (self.now - self.start).total_seconds()

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class SleepRecorder:
    """Stands in for ``time.sleep`` and remembers every requested delay."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def executor(clock, sleeps):
    breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60.0, clock=clock.monotonic)
    # Jitter pinned to zero offset so delays are exact
    return ResilientExecutor(circuit_breaker=breaker, sleep=sleeps, rng=lambda: 0.5)


@pytest.fixture
def service(store, executor, clock):
    return AnalyticsService(
        store=store,
        executor=executor,
        clock=clock,
        site_hostname="myblog.example",
    )
