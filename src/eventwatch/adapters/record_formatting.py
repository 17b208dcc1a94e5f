"""Shared record formatting helpers.

Keeping formatting here prevents drift between output modes and keeps blocks
consistent regardless of whether the terminal supports styling.
"""

from __future__ import annotations

from typing import Union

from rich.text import Text

from eventwatch.core.models import ClassificationRule, Record

DIVIDER = "──────────────"


def format_timestamp(record: Record) -> str:
    return record.timestamp.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip()


def format_header(record: Record, rule: ClassificationRule) -> str:
    """Return the header line shared by both modes."""

    return f"[{format_timestamp(record)}] {rule.label} (id {record.category_id})"


def _format_plain(record: Record, rule: ClassificationRule) -> str:
    lines = [
        format_header(record, rule),
        record.message,
        DIVIDER,
    ]
    return "\n".join(lines)


def _format_rich(record: Record, rule: ClassificationRule) -> Text:
    """Build a styled block; only the header carries the rule's emphasis."""

    # Text.assemble never interprets markup, so bracketed log content is safe.
    return Text.assemble(
        (format_header(record, rule), rule.emphasis or ""),
        "\n",
        record.message,
        "\n",
        (DIVIDER, "dim"),
    )


def format_record(record: Record, rule: ClassificationRule, mode: str) -> Union[str, Text]:
    """Return the record block formatted for the requested mode."""

    if mode == "plain":
        return _format_plain(record, rule)
    if mode == "rich":
        return _format_rich(record, rule)
    raise ValueError(f"Unsupported output format: {mode}")
