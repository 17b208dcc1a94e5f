"""Core polling loop.

This module is integration-agnostic. It only relies on ports for the event
source and the renderer, so a different log backend or output needs no
changes here.

Each cycle follows a strict order:
1) Capture the query start from the watermark
2) Fetch records newer than it (blocking)
3) Classify and render each record in source order
4) Advance the watermark
5) Sleep for the interval, waking early on cancellation
"""

from __future__ import annotations

import enum
import logging
import math
import threading
from datetime import datetime
from typing import Callable, Optional

from eventwatch.core.config import PollConfig, WatermarkConfig
from eventwatch.core.errors import SourceError, StartupConfigError
from eventwatch.core.instants import utc_now
from eventwatch.core.models import CycleResult
from eventwatch.core.ports import EventSourcePort, RendererPort
from eventwatch.core.rules_engine import Classifier
from eventwatch.core.watermark import Watermark, build_policy

LOGGER = logging.getLogger(__name__)


class PollerState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RENDERING = "rendering"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class Poller:
    """Drives fetch, classify, render and sleep on a single thread."""

    def __init__(
        self,
        source: EventSourcePort,
        classifier: Classifier,
        renderer: RendererPort,
        poll_config: Optional[PollConfig] = None,
        watermark_config: Optional[WatermarkConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        poll_config = poll_config or PollConfig()
        interval = poll_config.interval
        if isinstance(interval, bool) or not isinstance(interval, (int, float)):
            raise StartupConfigError(f"Poll interval must be a number, got {interval!r}")
        if not math.isfinite(interval) or interval <= 0:
            raise StartupConfigError(f"Poll interval must be positive, got {interval!r}")

        self._source = source
        self._classifier = classifier
        self._renderer = renderer
        self._interval = float(interval)
        self._policy = build_policy(watermark_config)
        self._clock = clock
        self._stop = stop_event or threading.Event()
        # Baseline at construction so history before start is never emitted.
        self._watermark = Watermark(clock())
        self.state = PollerState.IDLE
        self.cycles = 0

    @property
    def watermark(self) -> datetime:
        return self._watermark.value

    @property
    def interval(self) -> float:
        return self._interval

    def stop(self) -> None:
        """Request cancellation; observed before the next fetch or during sleep."""

        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run_cycle(self) -> CycleResult:
        """Run one fetch-classify-render pass and advance the watermark."""

        before = self._watermark.value
        start = self._policy.query_start(self._watermark)

        self.state = PollerState.FETCHING
        try:
            records = list(self._source.fetch_since(start))
        except SourceError as exc:
            LOGGER.warning("Event source fetch failed, will retry in %ss: %s", self._interval, exc)
            return CycleResult(watermark_before=before, watermark_after=before, error=exc)
        # Captured once the fetch returns, before any rendering time elapses.
        fetched_at = self._clock()

        self.state = PollerState.RENDERING
        emitted = 0
        for record in records:
            if not self._policy.accept(record):
                continue
            rule = self._classifier.classify(record)
            self._renderer.emit(record, rule)
            emitted += 1

        self._watermark.advance(self._policy.next_watermark(self._watermark, records, fetched_at))
        after = self._watermark.value
        LOGGER.debug("Cycle done: fetched=%s emitted=%s watermark=%s", len(records), emitted, after.isoformat())
        return CycleResult(
            watermark_before=before,
            watermark_after=after,
            fetched=len(records),
            emitted=emitted,
        )

    def run(self, max_cycles: Optional[int] = None) -> int:
        """Poll until stopped (or ``max_cycles`` cycles ran). Returns cycles run."""

        LOGGER.info(
            "Polling every %ss from watermark %s",
            self._interval,
            self._watermark.value.isoformat(),
        )
        try:
            while not self._stop.is_set():
                self.run_cycle()
                self.cycles += 1
                if max_cycles is not None and self.cycles >= max_cycles:
                    break
                self.state = PollerState.SLEEPING
                if self._stop.wait(self._interval):
                    break
        finally:
            self.state = PollerState.STOPPED
        LOGGER.info("Polling stopped after %s cycles", self.cycles)
        return self.cycles
