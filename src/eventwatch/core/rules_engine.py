"""Rule table compilation and classification logic (core domain)."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from eventwatch.core.errors import StartupConfigError
from eventwatch.core.models import ClassificationRule, Record

DEFAULT_KEY = "default"

# Reference table: Sysmon network connections and file creations.
DEFAULT_RULES_CONFIG = [
    {"category_id": 3, "label": "NETWORK", "emphasis": "bold red"},
    {"category_id": 11, "label": "FILE", "emphasis": "bold yellow"},
    {"category_id": DEFAULT_KEY, "label": "OTHER", "emphasis": "cyan"},
]


class Classifier:
    """Maps category ids to rules with a mandatory default."""

    def __init__(self, rules: Mapping[int, ClassificationRule], default: ClassificationRule) -> None:
        self._rules = MappingProxyType(dict(rules))
        self._default = default

    @property
    def rules(self) -> Mapping[int, ClassificationRule]:
        return self._rules

    @property
    def default(self) -> ClassificationRule:
        return self._default

    def all_rules(self) -> list[ClassificationRule]:
        """Return keyed rules sorted by id, followed by the default."""

        return [self._rules[key] for key in sorted(self._rules)] + [self._default]

    def classify(self, record: Record) -> ClassificationRule:
        """Return the rule for the record's category, or the default rule."""

        return self._rules.get(record.category_id, self._default)


def _parse_category_id(raw: Any, index: int) -> Optional[int]:
    if raw == DEFAULT_KEY:
        return None
    # bool is an int subclass; "true" is never a meaningful category.
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise StartupConfigError(
            f"rules[{index}]: category_id must be an integer or {DEFAULT_KEY!r}, got {raw!r}"
        )
    return raw


def build_classifier(rules_config: Iterable[dict]) -> Classifier:
    """Validate rule configs and build the lookup table.

    Exactly one default entry is required so classification is total.
    Disabled entries are skipped, except the default which cannot be disabled.
    """

    if not isinstance(rules_config, (list, tuple)):
        raise StartupConfigError("rules must be a list of rule objects")

    rules: dict[int, ClassificationRule] = {}
    default: Optional[ClassificationRule] = None

    for index, entry in enumerate(rules_config):
        if not isinstance(entry, dict):
            raise StartupConfigError(f"rules[{index}]: expected an object, got {type(entry).__name__}")
        if "category_id" not in entry:
            raise StartupConfigError(f"rules[{index}]: missing category_id")

        category_id = _parse_category_id(entry["category_id"], index)
        label = entry.get("label")
        if not isinstance(label, str) or not label.strip():
            raise StartupConfigError(f"rules[{index}]: label must be a non-empty string")
        emphasis = entry.get("emphasis", "")
        if not isinstance(emphasis, str):
            raise StartupConfigError(f"rules[{index}]: emphasis must be a string")

        rule = ClassificationRule(category_id=category_id, label=label.strip(), emphasis=emphasis.strip())

        if category_id is None:
            if not entry.get("enabled", True):
                raise StartupConfigError(f"rules[{index}]: the default rule cannot be disabled")
            if default is not None:
                raise StartupConfigError("rules: more than one default entry")
            default = rule
            continue

        if not entry.get("enabled", True):
            continue
        if category_id in rules:
            raise StartupConfigError(f"rules[{index}]: duplicate category_id {category_id}")
        rules[category_id] = rule

    if default is None:
        raise StartupConfigError(f"rules: a {DEFAULT_KEY!r} entry is required")

    return Classifier(rules, default)
