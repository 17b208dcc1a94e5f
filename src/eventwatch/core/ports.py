"""Ports (interfaces) used by the core poller.

Ports define the minimal contracts for event sources and renderers so that
the core can be reused with different log backends and outputs.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from eventwatch.core.models import ClassificationRule, Record


class EventSourcePort(Protocol):
    """Pull-based access to an external event log."""

    def fetch_since(self, watermark: datetime) -> Sequence[Record]:
        """Return records with ``timestamp > watermark`` in source order.

        Blocking. Raises SourceUnavailable or SourceQueryError.
        """
        ...


class RendererPort(Protocol):
    """Output operations required by the core poller."""

    def emit(self, record: Record, rule: ClassificationRule) -> None:
        ...
