"""Settings shapes consumed by the poller and the console renderer.

settings.py validates the JSON file and fills these in; the core trusts
them as given.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_INTERVAL = 2.0

WATERMARK_POLICIES = ("wall_clock", "max_record")
OUTPUT_FORMATS = ("rich", "plain")
OUTPUT_TARGETS = ("stdout", "stderr")


@dataclass(frozen=True)
class PollConfig:
    """Polling cadence in seconds."""

    interval: float = DEFAULT_INTERVAL


@dataclass(frozen=True)
class WatermarkConfig:
    """How the watermark advances after a successful cycle.

    - wall_clock: advance to the time captured right after the fetch returns
    - max_record: advance to the newest record seen, re-querying
      ``overlap_seconds`` of history and dropping repeats
    """

    policy: str = "wall_clock"
    overlap_seconds: float = 0.0


@dataclass(frozen=True)
class OutputConfig:
    """Renderer settings consumed by the console adapter."""

    format: str = "rich"
    target: str = "stdout"
