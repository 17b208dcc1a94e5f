"""Watermark tracking and advance policies (core domain).

The watermark is the instant before which every record counts as processed.
It lives in memory only; a restart re-baselines to "now" so a backlog is
never replayed, at the cost of missing events during downtime.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from eventwatch.core.config import WatermarkConfig
from eventwatch.core.dedup import OverlapWindow
from eventwatch.core.instants import ensure_utc
from eventwatch.core.models import Record

LOGGER = logging.getLogger(__name__)


class Watermark:
    """A single instant that only ever moves forward."""

    def __init__(self, initial: datetime) -> None:
        self._value = ensure_utc(initial)

    @property
    def value(self) -> datetime:
        return self._value

    def advance(self, instant: datetime) -> bool:
        """Move forward to ``instant``. Returns False if it would move backward."""

        instant = ensure_utc(instant)
        if instant <= self._value:
            if instant < self._value:
                LOGGER.debug("Ignoring backward watermark move %s -> %s", self._value, instant)
            return False
        self._value = instant
        return True


class AdvancePolicy:
    """Wall-clock policy: query from the watermark, advance to the post-fetch capture.

    A record stamped before the capture but queryable only after it falls in
    the gap and is never fetched.
    """

    def query_start(self, watermark: Watermark) -> datetime:
        return watermark.value

    def accept(self, record: Record) -> bool:
        return True

    def next_watermark(self, watermark: Watermark, records: Iterable[Record], fetched_at: datetime) -> datetime:
        return fetched_at


class MaxRecordPolicy(AdvancePolicy):
    """Advance to the newest record seen, re-querying an overlap window.

    Repeats inside the overlap are dropped by fingerprint, so a record is
    emitted at most once.
    """

    def __init__(self, overlap: timedelta) -> None:
        self._overlap = overlap
        self._window = OverlapWindow()

    def query_start(self, watermark: Watermark) -> datetime:
        return watermark.value - self._overlap

    def accept(self, record: Record) -> bool:
        if self._window.is_seen(record):
            return False
        self._window.mark_seen(record)
        return True

    def next_watermark(self, watermark: Watermark, records: Iterable[Record], fetched_at: datetime) -> datetime:
        newest: Optional[datetime] = None
        for record in records:
            if newest is None or record.timestamp > newest:
                newest = record.timestamp
        target = newest if newest is not None else watermark.value
        target = max(target, watermark.value)
        self._window.prune(target - self._overlap)
        return target


def build_policy(config: Optional[WatermarkConfig]) -> AdvancePolicy:
    """Return the advance policy for the configured name."""

    config = config or WatermarkConfig()
    if config.policy == "wall_clock":
        return AdvancePolicy()
    if config.policy == "max_record":
        return MaxRecordPolicy(timedelta(seconds=config.overlap_seconds))
    raise ValueError(f"Unsupported watermark policy: {config.policy}")
