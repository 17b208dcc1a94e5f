"""Configuration loading for eventwatch.

All user-editable settings (source, rules, cadence, output, logging) live in
a single JSON file so they can be tuned without touching Python. Every
problem found here is a StartupConfigError: the loop never starts on a bad
configuration.
"""

from __future__ import annotations

import json
import logging
import math
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Optional

from dotenv import load_dotenv

from eventwatch.core.config import (
    DEFAULT_INTERVAL,
    OUTPUT_FORMATS,
    OUTPUT_TARGETS,
    WATERMARK_POLICIES,
    OutputConfig,
    PollConfig,
    WatermarkConfig,
)
from eventwatch.core.errors import StartupConfigError
from eventwatch.core.rules_engine import DEFAULT_RULES_CONFIG, Classifier, build_classifier

# Looked up in the working directory unless --config or EVENTWATCH_CONFIG says otherwise.
DEFAULT_CONFIG_PATH = "config.json"
CONFIG_ENV_VAR = "EVENTWATCH_CONFIG"

SOURCE_TYPES = ("jsonl", "windows", "journal")


@dataclass(frozen=True)
class Settings:
    """Validated runtime configuration."""

    poll: PollConfig
    classifier: Classifier
    source: dict
    watermark: WatermarkConfig = field(default_factory=WatermarkConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: dict = field(default_factory=dict)
    config_path: Optional[str] = None


def _load_json(path: str, what: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError as exc:
        raise StartupConfigError(f"{what} not found: {path}") from exc
    except OSError as exc:
        raise StartupConfigError(f"Cannot read {what} {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise StartupConfigError(f"Invalid JSON in {what} {path}: {exc}") from exc


def _resolve_config_path(config_path: Optional[str]) -> Optional[str]:
    """Return the config file to read, or None to run on built-in defaults."""

    if config_path:
        return config_path
    load_dotenv()
    from_env = os.getenv(CONFIG_ENV_VAR)
    if from_env:
        return from_env
    if os.path.exists(DEFAULT_CONFIG_PATH):
        return DEFAULT_CONFIG_PATH
    return None


def parse_interval(raw: Any) -> float:
    """Validate a poll interval in seconds."""

    if isinstance(raw, bool):
        raise StartupConfigError(f"poll_interval must be a number of seconds, got {raw!r}")
    try:
        interval = float(raw)
    except (TypeError, ValueError) as exc:
        raise StartupConfigError(f"poll_interval must be a number of seconds, got {raw!r}") from exc
    if not math.isfinite(interval) or interval <= 0:
        raise StartupConfigError(f"poll_interval must be positive, got {raw!r}")
    return interval


def _load_rules_file(path: str) -> list:
    raw = _load_json(path, "Rule file")
    if isinstance(raw, dict):
        raw = raw.get("rules")
    if not isinstance(raw, list):
        raise StartupConfigError(f"Rule file {path} must hold a list or an object with a 'rules' list")
    return raw


def _normalize_source(raw: Any) -> dict:
    """Fill in the default source and check the selected type."""

    if raw is None:
        if sys.platform == "win32":
            return {"type": "windows"}
        raise StartupConfigError(
            "No event source configured; set source.type to one of: " + ", ".join(SOURCE_TYPES)
        )
    if not isinstance(raw, dict):
        raise StartupConfigError("source must be an object")

    source = dict(raw)
    source_type = source.get("type")
    if source_type not in SOURCE_TYPES:
        raise StartupConfigError(
            f"Unknown source type {source_type!r}; expected one of: " + ", ".join(SOURCE_TYPES)
        )
    if source_type == "jsonl" and not source.get("path"):
        raise StartupConfigError("source.path is required for the jsonl source")
    return source


def _build_watermark(raw: Any) -> WatermarkConfig:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise StartupConfigError("watermark must be an object")
    policy = raw.get("policy", "wall_clock")
    if policy not in WATERMARK_POLICIES:
        raise StartupConfigError(
            f"Unknown watermark policy {policy!r}; expected one of: " + ", ".join(WATERMARK_POLICIES)
        )
    try:
        overlap = float(raw.get("overlap_seconds", 0))
    except (TypeError, ValueError) as exc:
        raise StartupConfigError("watermark.overlap_seconds must be a number") from exc
    if not math.isfinite(overlap) or overlap < 0:
        raise StartupConfigError("watermark.overlap_seconds must be zero or positive")
    return WatermarkConfig(policy=policy, overlap_seconds=overlap)


def _build_output(raw: Any) -> OutputConfig:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise StartupConfigError("output must be an object")
    output_format = raw.get("format", "rich")
    target = raw.get("target", "stdout")
    if output_format not in OUTPUT_FORMATS:
        raise StartupConfigError(f"output.format must be one of: {', '.join(OUTPUT_FORMATS)}")
    if target not in OUTPUT_TARGETS:
        raise StartupConfigError(f"output.target must be one of: {', '.join(OUTPUT_TARGETS)}")
    return OutputConfig(format=output_format, target=target)


def _build_logging(raw: Any) -> dict:
    """Check the logging block; the app turns it into handlers."""

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise StartupConfigError("logging must be an object")
    for key in ("enabled", "console"):
        if key in raw and not isinstance(raw[key], bool):
            raise StartupConfigError(f"logging.{key} must be true or false")
    level = raw.get("level", "INFO")
    if not isinstance(level, str) or not isinstance(logging.getLevelName(level.upper()), int):
        raise StartupConfigError(f"logging.level is not a logging level: {level!r}")

    file_cfg = raw.get("file", {})
    if not isinstance(file_cfg, dict):
        raise StartupConfigError("logging.file must be an object")
    if "enabled" in file_cfg and not isinstance(file_cfg["enabled"], bool):
        raise StartupConfigError("logging.file.enabled must be true or false")
    path = file_cfg.get("path", "logs/eventwatch.log")
    if not isinstance(path, str) or not path:
        raise StartupConfigError("logging.file.path must be a non-empty string")
    for key in ("max_bytes", "backup_count"):
        value = file_cfg.get(key, 0)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise StartupConfigError(f"logging.file.{key} must be a non-negative integer")
    return raw


def load_settings(
    config_path: Optional[str] = None,
    rules_path: Optional[str] = None,
    interval: Optional[float] = None,
) -> Settings:
    """Load and validate settings; command-line values override the file."""

    path = _resolve_config_path(config_path)
    config: dict = {}
    if path:
        config = _load_json(path, "Config file")
        if not isinstance(config, dict):
            raise StartupConfigError(f"Config file {path} must hold a JSON object")

    if rules_path:
        rules_config = _load_rules_file(rules_path)
    else:
        rules_config = config.get("rules", DEFAULT_RULES_CONFIG)

    poll_interval = parse_interval(interval if interval is not None else config.get("poll_interval", DEFAULT_INTERVAL))

    return Settings(
        poll=PollConfig(interval=poll_interval),
        classifier=build_classifier(rules_config),
        source=_normalize_source(config.get("source")),
        watermark=_build_watermark(config.get("watermark")),
        output=_build_output(config.get("output")),
        logging=_build_logging(config.get("logging")),
        config_path=path,
    )
