"""
spawner_mcp.rules

Regex rule engines over submitted code.

Two engines share one loader/matcher contract and differ only in file convention,
pattern field and hit shape:

- ValidationEngine: `validations.yaml` -> `validations: [...]`, case-sensitive,
  applied to any submission (a code snippet is not tied to one skill).
- SharpEdgeEngine: `sharp-edges.yaml` -> `sharp_edges: [...]`, case-insensitive,
  every edge tagged with the owning skill id so checks can be scoped to one skill.

Patterns are compiled once at load time. A rule whose pattern does not compile is
logged and kept inert; it never blocks the other rules.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from spawner_mcp.config import DEFAULT_IGNORE_DIRS, get_logger
from spawner_mcp.loader import (
    SHARP_EDGES_FILE,
    VALIDATIONS_FILE,
    derive_identity,
    load_documents,
)

logger = get_logger("rules")

SEVERITY_ORDER: dict[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def severity_rank(severity: Any) -> int:
    """Lower is more severe; unknown severities sort after `low`."""
    return SEVERITY_ORDER.get(str(severity).lower(), len(SEVERITY_ORDER))


def sort_by_severity(hits: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    # sorted() is stable, so load order is kept within a severity
    return sorted(hits, key=lambda h: severity_rank(h.get("severity")))


@dataclass
class LoadedRule:
    record: dict[str, Any]
    regex: re.Pattern[str] | None
    scope: str | None = None


class RuleEngine:
    """Loads a flat list of pattern-tagged rules and applies them to text."""

    filename: str = ""
    list_key: str = ""
    pattern_keys: tuple[str, ...] = ("pattern",)
    flags: int = 0

    def __init__(
        self, root: Path, ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS
    ) -> None:
        self.root = Path(root)
        self.ignore_dirs = frozenset(ignore_dirs)
        self._rules: list[LoadedRule] = []
        self._loaded = False
        self._lock = threading.Lock()

    # --- loading ---
    def load_rules(self) -> None:
        """
        function_purpose: Rebuild the rule list from every matching file under root.

        Files that fail to parse, or that lack a `<list_key>` list, contribute nothing.
        """
        rules: list[LoadedRule] = []
        for path, data in load_documents(self.root, self.filename, self.ignore_dirs):
            entries = data.get(self.list_key) if isinstance(data, dict) else None
            if not isinstance(entries, list):
                if data:
                    logger.warning(
                        "No '%s' list in %s", self.list_key, path.relative_to(self.root)
                    )
                continue
            scope, _ = derive_identity(path.relative_to(self.root))
            for entry in entries:
                if not isinstance(entry, dict):
                    logger.warning(
                        "Skipping non-mapping rule in %s", path.relative_to(self.root)
                    )
                    continue
                rules.append(self._prepare(entry, scope))
        with self._lock:
            self._rules = rules
            self._loaded = True
        logger.info("Loaded %d rules from %s files", len(rules), self.filename)

    def ensure_loaded(self) -> None:
        if not self._loaded:
            self.load_rules()

    def _pattern_of(self, record: dict[str, Any]) -> str | None:
        for key in self.pattern_keys:
            value = record.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    def _is_applicable(self, record: dict[str, Any]) -> bool:
        return True

    def _prepare(self, record: dict[str, Any], scope: str) -> LoadedRule:
        pattern = self._pattern_of(record)
        regex = None
        if pattern is not None and self._is_applicable(record):
            try:
                regex = re.compile(pattern, self.flags)
            except re.error as exc:
                logger.error(
                    "Invalid regex for rule %s: %s (%s)", record.get("id"), pattern, exc
                )
        return LoadedRule(record=record, regex=regex, scope=scope)

    # --- matching ---
    @property
    def rules(self) -> list[LoadedRule]:
        self.ensure_loaded()
        return self._rules

    def _hit(self, rule: LoadedRule) -> dict[str, Any]:
        return dict(rule.record)

    def _match(self, text: str, scope_id: str | None = None) -> list[dict[str, Any]]:
        if not text:
            return []
        hits: list[dict[str, Any]] = []
        for rule in self.rules:
            if scope_id is not None and rule.scope != scope_id:
                continue
            if rule.regex is not None and rule.regex.search(text):
                hits.append(self._hit(rule))
        return hits


class ValidationEngine(RuleEngine):
    filename = VALIDATIONS_FILE
    list_key = "validations"

    def _is_applicable(self, record: dict[str, Any]) -> bool:
        # conceptual rules describe a review check, not a pattern
        return record.get("type") in (None, "regex")

    def _hit(self, rule: LoadedRule) -> dict[str, Any]:
        record = rule.record
        return {
            "rule_id": record.get("id"),
            "name": record.get("name"),
            "severity": record.get("severity"),
            "message": record.get("message"),
            "fix_action": record.get("fix_action"),
        }

    def apply(self, text: str) -> list[dict[str, Any]]:
        """Return every validation rule whose pattern matches text, in load order."""
        return self._match(text)


class SharpEdgeEngine(RuleEngine):
    filename = SHARP_EDGES_FILE
    list_key = "sharp_edges"
    pattern_keys = ("detection_pattern", "pattern")
    flags = re.IGNORECASE

    def _hit(self, rule: LoadedRule) -> dict[str, Any]:
        hit = dict(rule.record)
        hit["skill_id"] = rule.scope
        return hit

    def apply(self, text: str, skill_id: str | None = None) -> list[dict[str, Any]]:
        """Return sharp edges matching text, optionally only those of one skill."""
        return self._match(text, skill_id)

    def edges_for(self, skill_id: str | None = None) -> list[dict[str, Any]]:
        """List edges without matching: all of them, or those of one skill."""
        return [
            self._hit(rule)
            for rule in self.rules
            if skill_id is None or rule.scope == skill_id
        ]
