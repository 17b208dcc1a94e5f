"""Application entry point for the eventwatch monitor."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import text2art
from rich.console import Console
from rich.table import Table

from eventwatch.adapters.console_renderer import ConsoleRenderer, check_emphasis, stream_for_target
from eventwatch.core.errors import RenderError, StartupConfigError
from eventwatch.core.poller import Poller
from eventwatch.settings import CONFIG_ENV_VAR, Settings, load_settings

NAME = "EVENTWATCH"
FONT = "tarty-1"

EXIT_OK = 0
EXIT_RENDER_FAILED = 1
EXIT_CONFIG_ERROR = 2

LOGGER = logging.getLogger(__name__)


def _print_banner(console: Console) -> None:
    # Banner goes to stderr so stdout carries nothing but records.
    console.print(text2art(NAME, font=FONT), highlight=False, markup=False)


def _configure_logging(config: dict) -> None:
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/eventwatch.log")
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = RotatingFileHandler(
                path,
                maxBytes=file_cfg.get("max_bytes", 5 * 1024 * 1024),
                backupCount=file_cfg.get("backup_count", 5),
                encoding="utf-8",
            )
        except OSError as exc:
            raise StartupConfigError(f"Cannot open log file {path}: {exc}") from exc
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers, force=True)


def build_source(source_config: dict):
    """Select the source adapter named by ``source.type``."""

    source_type = source_config.get("type")
    if source_type == "jsonl":
        from eventwatch.adapters.jsonl_source import JsonLinesSource

        return JsonLinesSource(source_config["path"], encoding=source_config.get("encoding", "utf-8"))
    if source_type == "windows":
        from eventwatch.adapters.windows_event_source import SYSMON_CHANNEL, WindowsEventLogSource

        return WindowsEventLogSource(source_config.get("channel", SYSMON_CHANNEL))
    if source_type == "journal":
        from eventwatch.adapters.journal_source import DEFAULT_CATEGORY_FIELD, JournalSource

        return JournalSource(source_config.get("category_field", DEFAULT_CATEGORY_FIELD))
    raise StartupConfigError(f"Unknown source type {source_type!r}")


def _install_signal_handlers(stop_event: threading.Event) -> None:
    """Turn SIGINT/SIGTERM into a cooperative stop request."""

    def _handler(signum, frame) -> None:
        LOGGER.info("Received signal %s, stopping after the current cycle", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _load(args: argparse.Namespace) -> Settings:
    return load_settings(
        config_path=args.config,
        rules_path=args.rules,
        interval=getattr(args, "interval", None),
    )


def _run(args: argparse.Namespace, err_console: Console) -> int:
    if not args.no_banner:
        _print_banner(err_console)

    try:
        loaded = _load(args)
        _configure_logging(loaded.logging)
        check_emphasis(loaded.classifier)
        source = build_source(loaded.source)
    except StartupConfigError as exc:
        err_console.print(f"Configuration error: {exc}", markup=False, highlight=False)
        return EXIT_CONFIG_ERROR

    LOGGER.info("Starting eventwatch (%s source)", loaded.source.get("type"))
    LOGGER.info("%s rules are loaded plus the default", len(loaded.classifier.rules))

    renderer = ConsoleRenderer(stream_for_target(loaded.output.target), mode=loaded.output.format)
    stop_event = threading.Event()
    _install_signal_handlers(stop_event)
    poller = Poller(
        source=source,
        classifier=loaded.classifier,
        renderer=renderer,
        poll_config=loaded.poll,
        watermark_config=loaded.watermark,
        stop_event=stop_event,
    )

    try:
        poller.run()
    except RenderError as exc:
        LOGGER.error("Output failed, shutting down: %s", exc)
        return EXIT_RENDER_FAILED
    finally:
        close = getattr(source, "close", None)
        if callable(close):
            close()
    return EXIT_OK


def _check(args: argparse.Namespace, err_console: Console) -> int:
    try:
        loaded = _load(args)
        check_emphasis(loaded.classifier)
    except StartupConfigError as exc:
        err_console.print(f"Configuration error: {exc}", markup=False, highlight=False)
        return EXIT_CONFIG_ERROR

    table = Table(title="Classification rules")
    table.add_column("Category id", justify="right")
    table.add_column("Label")
    table.add_column("Emphasis")
    for rule in loaded.classifier.all_rules():
        category = "default" if rule.is_default else str(rule.category_id)
        table.add_row(category, rule.label, rule.emphasis or "-", style=rule.emphasis or None)

    console = Console()
    console.print(table)
    console.print(
        f"Source: {loaded.source.get('type')}  Interval: {loaded.poll.interval}s  "
        f"Watermark: {loaded.watermark.policy}  Config: {loaded.config_path or 'built-in defaults'}",
        markup=False,
        highlight=False,
    )
    return EXIT_OK


def _add_config_arguments(parser: argparse.ArgumentParser, default=None) -> None:
    parser.add_argument(
        "--config", default=default, help=f"JSON config file (default: ${CONFIG_ENV_VAR} or ./config.json)"
    )
    parser.add_argument("--rules", default=default, help="JSON rule file replacing the config's rules")


def _add_run_arguments(parser: argparse.ArgumentParser, default=None) -> None:
    parser.add_argument("--interval", type=float, default=default, help="Seconds between polls (default 2)")
    parser.add_argument(
        "--no-banner",
        action="store_true",
        default=False if default is None else default,
        help="Skip the start-up banner",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="eventwatch")
    _add_config_arguments(parser)
    _add_run_arguments(parser)
    subparsers = parser.add_subparsers(dest="command")

    # Subcommand copies leave values given before the subcommand alone.
    run_parser = subparsers.add_parser("run", help="Start monitoring (default)")
    _add_config_arguments(run_parser, default=argparse.SUPPRESS)
    _add_run_arguments(run_parser, default=argparse.SUPPRESS)
    check_parser = subparsers.add_parser("check", help="Validate the configuration and show the rule table")
    _add_config_arguments(check_parser, default=argparse.SUPPRESS)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    err_console = Console(stderr=True)

    if args.command == "check":
        return _check(args, err_console)
    return _run(args, err_console)


if __name__ == "__main__":
    sys.exit(main())
