"""JSON-lines file event source.

Tails an append-only file of ``{"timestamp", "category_id", "message"}``
objects. A byte offset keeps already-read history from being parsed again;
the watermark filter still decides what is new.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime

from eventwatch.core.errors import SourceUnavailable
from eventwatch.core.instants import ensure_utc, parse_instant
from eventwatch.core.models import Record

LOGGER = logging.getLogger(__name__)


def parse_record(payload: dict) -> Record:
    """Build a Record from one decoded line. Raises ValueError if it is not one."""

    if not isinstance(payload, dict):
        raise ValueError("line is not a JSON object")
    category_id = payload.get("category_id")
    if isinstance(category_id, bool) or not isinstance(category_id, int):
        raise ValueError(f"category_id must be an integer, got {category_id!r}")
    message = payload.get("message", "")
    if not isinstance(message, str):
        message = json.dumps(message, ensure_ascii=False)
    return Record(
        timestamp=parse_instant(payload.get("timestamp")),
        category_id=category_id,
        message=message,
    )


class JsonLinesSource:
    """EventSource adapter over an append-only JSON-lines file."""

    def __init__(self, path: str, encoding: str = "utf-8") -> None:
        self._path = path
        self._encoding = encoding
        self._offset = 0

    @property
    def path(self) -> str:
        return self._path

    @property
    def offset(self) -> int:
        return self._offset

    def _read_new_bytes(self) -> bytes:
        try:
            size = os.path.getsize(self._path)
            if size < self._offset:
                LOGGER.info("%s shrank (%s < %s bytes), reading from the start", self._path, size, self._offset)
                self._offset = 0
            with open(self._path, "rb") as handle:
                handle.seek(self._offset)
                return handle.read()
        except OSError as exc:
            raise SourceUnavailable(f"Cannot read {self._path}: {exc}") from exc

    def fetch_since(self, watermark: datetime) -> list[Record]:
        watermark = ensure_utc(watermark)
        chunk = self._read_new_bytes()

        # Only complete lines are consumed; a partial trailing write waits.
        end = chunk.rfind(b"\n")
        if end < 0:
            return []
        complete = chunk[: end + 1]

        records: list[Record] = []
        for raw in complete.split(b"\n"):
            if not raw.strip():
                continue
            try:
                record = parse_record(json.loads(raw.decode(self._encoding)))
            except (ValueError, OverflowError) as exc:
                # UnicodeDecodeError and json.JSONDecodeError are ValueErrors too.
                LOGGER.warning("Skipping malformed line in %s: %s", self._path, exc)
                continue
            if record.timestamp > watermark:
                records.append(record)

        self._offset += len(complete)
        return records
