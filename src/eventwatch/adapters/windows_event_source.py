"""Windows event log channel source.

Queries a channel (Sysmon by default) through pywin32's EvtQuery API with an
XPath filter on ``TimeCreated/@SystemTime`` and maps each event to a Record:
EventID becomes the category id, the EventData pairs become the message.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Optional

from eventwatch.core.errors import SourceQueryError, SourceUnavailable, StartupConfigError
from eventwatch.core.instants import ensure_utc, format_system_time, parse_instant
from eventwatch.core.models import Record

LOGGER = logging.getLogger(__name__)

SYSMON_CHANNEL = "Microsoft-Windows-Sysmon/Operational"
BATCH_SIZE = 64


def _find_local(node: Optional[ET.Element], localname: str) -> Optional[ET.Element]:
    """Find a direct child by local name, ignoring the event XML namespace."""

    if node is None:
        return None
    for child in list(node):
        if child.tag == localname or child.tag.endswith("}" + localname):
            return child
    return None


def _event_message(root: ET.Element) -> str:
    data_node = _find_local(root, "EventData")
    if data_node is None:
        return ""
    parts = []
    for item in list(data_node):
        name = item.attrib.get("Name")
        value = (item.text or "").strip()
        parts.append(f"{name}={value}" if name else value)
    return "\n".join(part for part in parts if part)


def parse_event_xml(xml: str) -> Record:
    """Map rendered event XML to a Record. Raises SourceQueryError if unusable."""

    try:
        root = ET.fromstring(xml)
    except ET.ParseError as exc:
        raise SourceQueryError(f"Unparsable event XML: {exc}") from exc

    system = _find_local(root, "System")
    event_id = _find_local(system, "EventID")
    created = _find_local(system, "TimeCreated")
    if event_id is None or created is None:
        raise SourceQueryError("Event XML lacks EventID or TimeCreated")

    try:
        category_id = int((event_id.text or "").strip())
        timestamp = parse_instant(created.attrib.get("SystemTime", ""))
    except ValueError as exc:
        raise SourceQueryError(f"Bad EventID or SystemTime in event XML: {exc}") from exc

    return Record(timestamp=timestamp, category_id=category_id, message=_event_message(root))


def build_query(watermark: datetime) -> str:
    return f"*[System[TimeCreated[@SystemTime>'{format_system_time(watermark)}']]]"


class WindowsEventLogSource:
    """EventSource adapter over a Windows event log channel."""

    def __init__(self, channel: str = SYSMON_CHANNEL) -> None:
        try:
            import pywintypes
            import win32evtlog
        except ImportError as exc:
            raise StartupConfigError(
                "The windows source needs pywin32: pip install 'eventwatch[windows]'"
            ) from exc
        self._evt = win32evtlog
        self._win_error = pywintypes.error
        self._channel = channel

    @property
    def channel(self) -> str:
        return self._channel

    def fetch_since(self, watermark: datetime) -> list[Record]:
        watermark = ensure_utc(watermark)
        evt = self._evt
        flags = evt.EvtQueryChannelPath | evt.EvtQueryForwardDirection
        LOGGER.debug("Querying %s since %s", self._channel, watermark.isoformat())
        try:
            query = evt.EvtQuery(self._channel, flags, build_query(watermark))
        except self._win_error as exc:
            # Win32 status: channel missing, access denied, service stopped.
            raise SourceUnavailable(f"Cannot query {self._channel}: {exc}") from exc

        records: list[Record] = []
        try:
            while True:
                try:
                    handles = evt.EvtNext(query, BATCH_SIZE)
                except self._win_error as exc:
                    raise SourceQueryError(f"Read error on {self._channel}: {exc}") from exc
                if not handles:
                    break
                for handle in handles:
                    try:
                        record = parse_event_xml(evt.EvtRender(handle, evt.EvtRenderEventXml))
                    except (self._win_error, SourceQueryError) as exc:
                        LOGGER.warning("Skipping unreadable event from %s: %s", self._channel, exc)
                        continue
                    # SystemTime has sub-microsecond precision; keep the strict bound.
                    if record.timestamp > watermark:
                        records.append(record)
        finally:
            evt.EvtClose(query)
        return records
