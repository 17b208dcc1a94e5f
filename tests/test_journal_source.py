from __future__ import annotations

import sys
import types
from datetime import datetime, timedelta, timezone

import pytest

from eventwatch.adapters.journal_source import JournalSource, entry_to_record
from eventwatch.core.errors import SourceUnavailable

WATERMARK = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def _entry(seconds: float, priority=3, message=b"disk full") -> dict:
    return {
        "MESSAGE": message,
        "PRIORITY": priority,
        "__REALTIME_TIMESTAMP": WATERMARK + timedelta(seconds=seconds),
        "SYSLOG_IDENTIFIER": "kernel",
    }


def _install_fake_journal(monkeypatch, entries, open_error=None):
    seeks: list[int] = []
    closed: list[bool] = []

    class Reader:
        def __init__(self) -> None:
            if open_error is not None:
                raise open_error

        def seek_realtime(self, usec: int) -> None:
            seeks.append(usec)

        def __iter__(self):
            return iter(entries)

        def close(self) -> None:
            closed.append(True)

    journal = types.ModuleType("systemd.journal")
    journal.Reader = Reader
    package = types.ModuleType("systemd")
    package.journal = journal
    monkeypatch.setitem(sys.modules, "systemd", package)
    monkeypatch.setitem(sys.modules, "systemd.journal", journal)
    return seeks, closed


def test_entry_to_record_decodes_message() -> None:
    record = entry_to_record(_entry(1))

    assert record is not None
    assert record.category_id == 3
    assert record.message == "disk full"
    assert record.timestamp == WATERMARK + timedelta(seconds=1)


def test_entry_without_category_or_message_is_skipped() -> None:
    assert entry_to_record(_entry(1, priority=None)) is None
    assert entry_to_record(_entry(1, message="")) is None
    assert entry_to_record(_entry(1), category_field="MISSING") is None


def test_custom_category_field() -> None:
    entry = _entry(1)
    entry["SYSLOG_FACILITY"] = "4"

    record = entry_to_record(entry, category_field="SYSLOG_FACILITY")

    assert record is not None and record.category_id == 4


def test_fetch_since_seeks_and_filters(monkeypatch) -> None:
    seeks, closed = _install_fake_journal(monkeypatch, [_entry(0), _entry(1, 6, "later"), _entry(2, None)])

    records = JournalSource().fetch_since(WATERMARK)

    assert [record.message for record in records] == ["later"]
    assert seeks == [int(WATERMARK.timestamp() * 1_000_000)]
    assert closed == [True]


def test_unopenable_journal_is_unavailable(monkeypatch) -> None:
    _install_fake_journal(monkeypatch, [], open_error=OSError("no journal"))

    with pytest.raises(SourceUnavailable):
        JournalSource().fetch_since(WATERMARK)
