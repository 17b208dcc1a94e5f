"""systemd journal event source.

Reads entries newer than the watermark with ``seek_realtime`` and uses an
integer journal field (PRIORITY unless configured) as the category id.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from eventwatch.core.errors import SourceUnavailable, StartupConfigError
from eventwatch.core.instants import ensure_utc
from eventwatch.core.models import Record

LOGGER = logging.getLogger(__name__)

DEFAULT_CATEGORY_FIELD = "PRIORITY"


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def entry_to_record(entry: dict, category_field: str = DEFAULT_CATEGORY_FIELD) -> Optional[Record]:
    """Convert a journal entry to a Record, or None if it lacks usable fields."""

    msg = entry.get("MESSAGE")
    timestamp = entry.get("__REALTIME_TIMESTAMP")
    if not msg or timestamp is None:
        return None

    raw_category = entry.get(category_field)
    try:
        category_id = int(raw_category)
    except (TypeError, ValueError):
        return None

    return Record(
        # The reader yields naive local datetimes.
        timestamp=timestamp.astimezone(timezone.utc),
        category_id=category_id,
        message=_decode(msg),
    )


class JournalSource:
    """EventSource adapter over the local systemd journal."""

    def __init__(self, category_field: str = DEFAULT_CATEGORY_FIELD) -> None:
        try:
            import systemd.journal
        except ImportError as exc:
            raise StartupConfigError(
                "The journal source needs systemd-python: pip install 'eventwatch[journal]'"
            ) from exc
        self._journal = systemd.journal
        self._category_field = category_field

    def fetch_since(self, watermark: datetime) -> list[Record]:
        watermark = ensure_utc(watermark)
        try:
            reader = self._journal.Reader()
        except OSError as exc:
            raise SourceUnavailable(f"Cannot open the systemd journal: {exc}") from exc

        records: list[Record] = []
        skipped = 0
        try:
            reader.seek_realtime(int(watermark.timestamp() * 1_000_000))
            for entry in reader:
                record = entry_to_record(entry, self._category_field)
                if record is None:
                    skipped += 1
                    continue
                if record.timestamp > watermark:
                    records.append(record)
        except OSError as exc:
            raise SourceUnavailable(f"Journal read failed: {exc}") from exc
        finally:
            reader.close()

        if skipped:
            LOGGER.debug("Skipped %s journal entries without %s or MESSAGE", skipped, self._category_field)
        return records
