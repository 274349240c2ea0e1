"""Shared test fixtures for all test modules."""

from collections.abc import Generator, Mapping

import pytest

from measurepy.adapters.sinks.in_memory import InMemoryMetricsSink
from measurepy.core import interceptor as interceptor_module
from measurepy.core.interceptor import MeasureInterceptor


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingSink:
    """Sink whose record() always raises."""

    def __init__(self) -> None:
        self.calls = 0

    def record(
        self,
        metric_name: str,
        tags: Mapping[str, str],
        duration: float,
        outcome: str,
    ) -> None:
        self.calls += 1
        raise ConnectionError("metrics backend is down")


@pytest.fixture
def sink() -> InMemoryMetricsSink:
    """Fixture providing an empty in-memory sink."""
    return InMemoryMetricsSink()


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def failing_sink() -> FailingSink:
    """Fixture providing a sink that always fails."""
    return FailingSink()


@pytest.fixture
def interceptor(sink: InMemoryMetricsSink) -> MeasureInterceptor:
    """Fixture providing an interceptor writing to the in-memory sink."""
    return MeasureInterceptor(sink)


@pytest.fixture(autouse=True)
def _reset_default_interceptor() -> Generator[None]:
    """Make sure no test leaks a configured default interceptor."""
    interceptor_module.reset()
    yield
    interceptor_module.reset()
