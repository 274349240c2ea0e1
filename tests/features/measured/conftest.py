"""Step definitions for measured_calls.feature."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest
from pytest_bdd import given, parsers, then, when

from measurepy import measured
from measurepy.adapters.sinks.in_memory import InMemoryMetricsSink
from measurepy.core.interceptor import MeasureInterceptor
from measurepy.core.models import Measurement, TagFallback


class InsufficientFunds(Exception):
    """Raised by the scenario payment service."""


class ManualClock:
    """Clock advanced explicitly by the scenario service."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class UnavailableSink:
    """Sink that always fails."""

    def record(
        self,
        metric_name: str,
        tags: Mapping[str, str],
        duration: float,
        outcome: str,
    ) -> None:
        raise ConnectionError("sink unavailable")


@dataclass
class MeasuredScenarioContext:
    """Shared state between steps in a measured-call scenario."""

    sink: InMemoryMetricsSink = field(default_factory=InMemoryMetricsSink)
    clock: ManualClock = field(default_factory=ManualClock)
    metric_name: str = ""
    expressions: dict[str, str] = field(default_factory=dict)
    fallback: TagFallback = TagFallback.PLACEHOLDER
    sink_down: bool = False
    insufficient_funds: bool = False
    result: Any = None
    error: BaseException | None = None

    def measurement(self) -> Measurement:
        [measurement] = self.sink.measurements
        return measurement


@pytest.fixture
def ctx() -> MeasuredScenarioContext:
    """Fresh scenario context for each test."""
    return MeasuredScenarioContext()


# === Background Steps ===
@given("an in-memory metrics sink")
def step_sink(ctx: MeasuredScenarioContext) -> None:
    ctx.sink = InMemoryMetricsSink()


@given(parsers.parse('a service measured as "{name}" with tag "{tag}" from "{source}"'))
def step_service(
    ctx: MeasuredScenarioContext, name: str, tag: str, source: str
) -> None:
    ctx.metric_name = name
    ctx.expressions[tag] = source


# === Setup Steps ===
@given(parsers.parse('an extra tag "{tag}" from "{source}"'))
def step_extra_tag(ctx: MeasuredScenarioContext, tag: str, source: str) -> None:
    ctx.expressions[tag] = source


@given("unresolvable tags are omitted")
def step_omit(ctx: MeasuredScenarioContext) -> None:
    ctx.fallback = TagFallback.OMIT


@given("the account has insufficient funds")
def step_insufficient_funds(ctx: MeasuredScenarioContext) -> None:
    ctx.insufficient_funds = True


@given("the metrics sink is unavailable")
def step_sink_down(ctx: MeasuredScenarioContext) -> None:
    ctx.sink_down = True


# === Action Steps ===
@when(parsers.parse('the service charges {amount:d} "{currency}" taking {ms:d}ms'))
def step_charge(
    ctx: MeasuredScenarioContext, amount: int, currency: str, ms: int
) -> None:
    interceptor = MeasureInterceptor(
        UnavailableSink() if ctx.sink_down else ctx.sink,
        clock=ctx.clock,
        tag_fallback=ctx.fallback,
    )

    class PaymentService:
        @measured(ctx.metric_name, expressions=ctx.expressions, interceptor=interceptor)
        def charge(self, amount: int, currency: str) -> dict[str, str]:
            ctx.clock.now += ms / 1000
            if ctx.insufficient_funds:
                raise InsufficientFunds(f"{amount} {currency}")
            return {"status": "captured"}

    try:
        ctx.result = PaymentService().charge(amount, currency)
    except InsufficientFunds as exc:
        ctx.error = exc


# === Assertion Steps ===
@then(parsers.parse('the call returns "{status}"'))
def step_returns(ctx: MeasuredScenarioContext, status: str) -> None:
    assert ctx.error is None
    assert ctx.result == {"status": status}


@then("the caller observes InsufficientFunds")
def step_observes_error(ctx: MeasuredScenarioContext) -> None:
    assert isinstance(ctx.error, InsufficientFunds)


@then(parsers.parse('exactly {n:d} measurement named "{name}" is recorded'))
def step_count(ctx: MeasuredScenarioContext, n: int, name: str) -> None:
    assert len(ctx.sink.find(name)) == n
    assert len(ctx.sink) == n


@then("no measurement is recorded")
def step_none_recorded(ctx: MeasuredScenarioContext) -> None:
    assert len(ctx.sink) == 0


@then(parsers.parse('the measurement has outcome "{outcome}"'))
def step_outcome(ctx: MeasuredScenarioContext, outcome: str) -> None:
    assert ctx.measurement().outcome.value == outcome


@then(parsers.parse('the measurement has tag "{tag}" with value "{value}"'))
def step_tag(ctx: MeasuredScenarioContext, tag: str, value: str) -> None:
    assert ctx.measurement().tag_dict.get(tag) == value


@then(parsers.parse('the measurement has no tag "{tag}"'))
def step_no_tag(ctx: MeasuredScenarioContext, tag: str) -> None:
    assert tag not in ctx.measurement().tag_dict


@then(parsers.parse("the measurement took about {ms:d}ms"))
def step_duration(ctx: MeasuredScenarioContext, ms: int) -> None:
    assert ctx.measurement().duration == pytest.approx(ms / 1000)
