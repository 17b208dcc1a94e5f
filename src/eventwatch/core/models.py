"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any source-specific record types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Record:
    """One entry fetched from the event source."""

    timestamp: datetime
    category_id: int
    message: str


@dataclass(frozen=True)
class ClassificationRule:
    """Label and emphasis for one category id.

    ``category_id`` is ``None`` for the default rule.
    """

    category_id: Optional[int]
    label: str
    emphasis: str

    @property
    def is_default(self) -> bool:
        return self.category_id is None


@dataclass(frozen=True)
class CycleResult:
    """Summary of a single poll cycle."""

    watermark_before: datetime
    watermark_after: datetime
    fetched: int = 0
    emitted: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None
