"""Deduplication helpers for overlapping fetch windows (core domain)."""

from __future__ import annotations

import hashlib
from datetime import datetime

from eventwatch.core.models import Record


def compute_fingerprint(record: Record) -> str:
    """Return a fingerprint hash identifying a record's content."""

    payload = f"{record.timestamp.isoformat()}\n{record.category_id}\n{record.message}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class OverlapWindow:
    """Fingerprints of records emitted inside the re-query window."""

    def __init__(self) -> None:
        self._seen: dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def is_seen(self, record: Record) -> bool:
        return compute_fingerprint(record) in self._seen

    def mark_seen(self, record: Record) -> None:
        self._seen[compute_fingerprint(record)] = record.timestamp

    def prune(self, horizon: datetime) -> int:
        """Forget records at or before ``horizon``; they can no longer be re-fetched."""

        stale = [key for key, timestamp in self._seen.items() if timestamp <= horizon]
        for key in stale:
            del self._seen[key]
        return len(stale)
