from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from eventwatch.core.config import PollConfig, WatermarkConfig
from eventwatch.core.errors import RenderError, SourceQueryError, SourceUnavailable, StartupConfigError
from eventwatch.core.models import ClassificationRule, Record
from eventwatch.core.poller import Poller, PollerState
from eventwatch.core.rules_engine import build_classifier

T0 = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)

RULES = build_classifier(
    [
        {"category_id": 3, "label": "NETWORK", "emphasis": "bold red"},
        {"category_id": 11, "label": "FILE", "emphasis": "yellow"},
        {"category_id": "default", "label": "OTHER", "emphasis": ""},
    ]
)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def tick(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeSource:
    """Serves a scripted list of responses, honouring the strict watermark bound."""

    def __init__(self, responses: list, clock: Optional[FakeClock] = None, on_fetch: Optional[Callable] = None) -> None:
        self.responses = list(responses)
        self.queries: list[datetime] = []
        self._clock = clock
        self._on_fetch = on_fetch

    def fetch_since(self, watermark: datetime) -> list[Record]:
        self.queries.append(watermark)
        if self._clock is not None:
            self._clock.tick(0.5)
        if self._on_fetch is not None:
            self._on_fetch(len(self.queries))
        response = self.responses.pop(0) if self.responses else []
        if isinstance(response, Exception):
            raise response
        return [record for record in response if record.timestamp > watermark]


class FakeRenderer:
    def __init__(self) -> None:
        self.emitted: list[tuple[Record, ClassificationRule]] = []

    def emit(self, record: Record, rule: ClassificationRule) -> None:
        self.emitted.append((record, rule))


def _record(seconds: float, category_id: int = 3, message: str = "msg") -> Record:
    return Record(timestamp=T0 + timedelta(seconds=seconds), category_id=category_id, message=message)


def _poller(source, renderer, clock, **kwargs) -> Poller:
    return Poller(
        source=source,
        classifier=RULES,
        renderer=renderer,
        poll_config=PollConfig(interval=kwargs.pop("interval", 2.0)),
        clock=clock,
        **kwargs,
    )


def test_reference_scenario_network_record() -> None:
    clock = FakeClock(T0)
    first = _record(1, 3, "conn to 1.2.3.4")
    source = FakeSource([[first], []], clock=clock)
    renderer = FakeRenderer()
    poller = _poller(source, renderer, clock)

    clock.tick(2)
    result = poller.run_cycle()

    assert [(record.message, rule.label) for record, rule in renderer.emitted] == [("conn to 1.2.3.4", "NETWORK")]
    assert result.ok and result.fetched == 1 and result.emitted == 1
    # Watermark is the capture right after the fetch returned, not the record time.
    assert poller.watermark == T0 + timedelta(seconds=2.5)
    assert poller.watermark > first.timestamp

    clock.tick(2)
    poller.run_cycle()
    assert source.queries == [T0, T0 + timedelta(seconds=2.5)]


def test_no_backlog_on_start() -> None:
    clock = FakeClock(T0)
    backlog = [_record(-30), _record(-1), _record(0)]
    source = FakeSource([backlog + [_record(0.25, 11)]], clock=clock)
    renderer = FakeRenderer()
    poller = _poller(source, renderer, clock)

    poller.run_cycle()

    assert [record.timestamp for record, _ in renderer.emitted] == [T0 + timedelta(seconds=0.25)]


def test_order_preserved_within_and_across_cycles() -> None:
    clock = FakeClock(T0)
    cycle_one = [_record(0.1, 3, "a"), _record(0.2, 11, "b"), _record(0.3, 7, "c")]
    cycle_two = [_record(0.6, 7, "d"), _record(0.7, 3, "e")]
    source = FakeSource([cycle_one, cycle_two], clock=clock)
    renderer = FakeRenderer()
    poller = _poller(source, renderer, clock)

    poller.run_cycle()
    clock.tick(0.05)
    poller.run_cycle()

    assert [record.message for record, _ in renderer.emitted] == ["a", "b", "c", "d", "e"]
    assert [rule.label for _, rule in renderer.emitted] == ["NETWORK", "FILE", "OTHER", "OTHER", "NETWORK"]


def test_no_duplicate_emission_across_cycles() -> None:
    clock = FakeClock(T0)
    early = _record(0.2, 3, "early")
    late = _record(1.5, 3, "late")
    # The source keeps returning everything it has; the watermark filters repeats.
    source = FakeSource([[early], [early, late], [early, late]], clock=clock)
    renderer = FakeRenderer()
    poller = _poller(source, renderer, clock)

    poller.run_cycle()
    clock.tick(0.5)
    poller.run_cycle()
    clock.tick(2)
    poller.run_cycle()

    assert [record.message for record, _ in renderer.emitted] == ["early", "late"]


def test_failure_isolation_keeps_watermark() -> None:
    clock = FakeClock(T0)
    source = FakeSource([SourceUnavailable("service stopped"), [_record(0.1, 11, "after")]], clock=clock)
    renderer = FakeRenderer()
    poller = _poller(source, renderer, clock)

    failed = poller.run_cycle()
    assert not failed.ok
    assert isinstance(failed.error, SourceUnavailable)
    assert failed.watermark_after == failed.watermark_before == T0
    assert poller.watermark == T0
    assert renderer.emitted == []

    clock.tick(2)
    recovered = poller.run_cycle()
    assert recovered.ok
    assert source.queries == [T0, T0]
    assert [record.message for record, _ in renderer.emitted] == ["after"]


def test_query_error_is_recovered_like_unavailable() -> None:
    clock = FakeClock(T0)
    source = FakeSource([SourceQueryError("truncated response"), []], clock=clock)
    poller = _poller(source, FakeRenderer(), clock)

    assert not poller.run_cycle().ok
    assert poller.run_cycle().ok
    assert source.queries == [T0, T0]


def test_watermark_never_moves_backward() -> None:
    clock = FakeClock(T0)
    source = FakeSource([[], SourceUnavailable("down"), [], []])
    poller = _poller(source, FakeRenderer(), clock)

    seen = [poller.watermark]
    for step in (3, -10, 0, 1):
        clock.tick(step)
        poller.run_cycle()
        seen.append(poller.watermark)

    assert seen == sorted(seen)
    assert poller.watermark == T0 + timedelta(seconds=3)


def test_render_error_is_fatal() -> None:
    class BrokenRenderer:
        def emit(self, record, rule) -> None:
            raise RenderError("broken pipe")

    clock = FakeClock(T0)
    source = FakeSource([[_record(0.1)]], clock=clock)
    poller = _poller(source, BrokenRenderer(), clock)

    with pytest.raises(RenderError):
        poller.run()
    assert poller.state is PollerState.STOPPED
    assert poller.watermark == T0


def test_run_stops_during_sleep() -> None:
    clock = FakeClock(T0)
    stop = threading.Event()
    source = FakeSource([[], [], []], clock=clock, on_fetch=lambda count: stop.set() if count == 2 else None)
    poller = _poller(source, FakeRenderer(), clock, interval=0.01, stop_event=stop)

    cycles = poller.run()

    assert cycles == 2
    assert len(source.queries) == 2
    assert poller.state is PollerState.STOPPED


def test_run_continues_after_failed_cycle() -> None:
    clock = FakeClock(T0)
    source = FakeSource([SourceUnavailable("down"), [_record(0.1, 3, "x")]], clock=clock)
    renderer = FakeRenderer()
    poller = _poller(source, renderer, clock, interval=0.01)

    assert poller.run(max_cycles=2) == 2
    assert [record.message for record, _ in renderer.emitted] == ["x"]


def test_stop_before_start_fetches_nothing() -> None:
    source = FakeSource([[_record(1)]])
    poller = _poller(source, FakeRenderer(), FakeClock(T0))
    poller.stop()

    assert poller.run() == 0
    assert source.queries == []


@pytest.mark.parametrize("interval", [0, -1, float("nan"), float("inf"), True, "2"])
def test_interval_must_be_positive(interval) -> None:
    with pytest.raises(StartupConfigError):
        Poller(FakeSource([]), RULES, FakeRenderer(), PollConfig(interval=interval))


def test_max_record_policy_overlaps_without_duplicates() -> None:
    clock = FakeClock(T0)
    first = _record(1, 3, "first")
    straggler = _record(0.8, 11, "straggler")
    second = _record(2, 3, "second")
    source = FakeSource([[first], [first, straggler, second]], clock=clock)
    renderer = FakeRenderer()
    poller = _poller(
        source,
        renderer,
        clock,
        watermark_config=WatermarkConfig(policy="max_record", overlap_seconds=1.0),
    )

    poller.run_cycle()
    assert poller.watermark == first.timestamp

    poller.run_cycle()
    assert source.queries[1] == first.timestamp - timedelta(seconds=1)
    assert [record.message for record, _ in renderer.emitted] == ["first", "straggler", "second"]
    assert poller.watermark == second.timestamp


def test_wall_clock_policy_skips_late_stamped_records() -> None:
    clock = FakeClock(T0)
    late_stamped = _record(0.2, 3, "late")
    # Record stamped before the post-fetch capture but only visible on the next query.
    source = FakeSource([[], [late_stamped]], clock=clock)
    renderer = FakeRenderer()
    poller = _poller(source, renderer, clock)

    poller.run_cycle()
    poller.run_cycle()

    assert renderer.emitted == []
