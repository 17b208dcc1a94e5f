"""Console renderer adapter.

Implements the core RendererPort by writing one block per record to a
terminal stream through rich.
"""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from rich.console import Console
from rich.errors import StyleSyntaxError
from rich.style import Style

from eventwatch.adapters.record_formatting import format_record
from eventwatch.core.errors import RenderError, StartupConfigError
from eventwatch.core.models import ClassificationRule, Record
from eventwatch.core.rules_engine import Classifier


def check_emphasis(classifier: Classifier) -> None:
    """Fail fast on emphasis strings rich cannot parse."""

    for rule in classifier.all_rules():
        if not rule.emphasis:
            continue
        try:
            Style.parse(rule.emphasis)
        except StyleSyntaxError as exc:
            raise StartupConfigError(f"Rule {rule.label!r}: invalid emphasis {rule.emphasis!r}: {exc}") from exc


def stream_for_target(target: str) -> TextIO:
    if target == "stdout":
        return sys.stdout
    if target == "stderr":
        return sys.stderr
    raise ValueError(f"Unsupported output target: {target}")


class ConsoleRenderer:
    """Renderer adapter that prints classified records to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None, mode: str = "rich", console: Optional[Console] = None) -> None:
        self._stream = stream or sys.stdout
        self._mode = mode
        self._console = console or Console(file=self._stream, highlight=False, soft_wrap=True)

    @property
    def console(self) -> Console:
        return self._console

    def emit(self, record: Record, rule: ClassificationRule) -> None:
        """Write the block for one record, completely, before returning."""

        block = format_record(record, rule, self._mode)
        try:
            if self._mode == "plain":
                self._stream.write(block + "\n")
                self._stream.flush()
            else:
                # rich swallows BrokenPipeError on its own writes, so render to
                # a capture and do the write here.
                with self._console.capture() as capture:
                    self._console.print(block)
                self._console.file.write(capture.get())
                self._console.file.flush()
        except OSError as exc:
            raise RenderError(f"Failed to write record to output: {exc}") from exc
