"""
Loads and caches the funnel rules YAML into typed, immutable objects.

The rules file is the single source of truth for:
  - exclusion values (tracking slugs, DnB source, test-record name patterns)
  - per-vertical table routing
  - stage definitions (label, timestamp column, mandatory conditions, order)
  - Chapter activity mediums
"""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.verticals import Vertical, normalize_vertical

logger = get_logger(__name__)

STAGE_KEYS: tuple[str, ...] = ("lead", "prospect", "account", "sale")


class FunnelRulesError(RuntimeError):
    """Funnel rules file missing or malformed."""


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class NameExclusionPatterns:
    not_like: tuple[str, ...] = ()
    not_equal: tuple[str, ...] = ()


@dataclass(frozen=True)
class VerticalTables:
    opportunities_table: str
    enquiries_vertical: str
    has_data: bool = True
    exclude_test_records: bool = False


@dataclass(frozen=True)
class StageRule:
    key: str
    label: str
    sort_order: int
    timestamp_column: str
    mandatory_conditions: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChapterRules:
    viewing_mediums: tuple[str, ...]
    meeting_medium: str
    leadable_type: str
    feedable_type: str


@dataclass(frozen=True)
class FunnelRules:
    version: int
    slug_exclusions: tuple[str, ...]
    source_exclusion: str
    test_name_patterns: NameExclusionPatterns
    verticals: dict[Vertical, VerticalTables]
    stages: dict[str, StageRule]
    chapter: ChapterRules
    source_path: str = field(default="", compare=False)

    def tables_for(self, vertical: Vertical) -> VerticalTables:
        try:
            return self.verticals[vertical]
        except KeyError:
            raise FunnelRulesError(f"No table routing for vertical '{vertical.value}'") from None

    def stage(self, key: str) -> StageRule:
        return self.stages[key]


# ── Parsing ──────────────────────────────────────────────

def _require(raw: dict[str, Any], key: str, where: str) -> Any:
    if key not in raw or raw[key] in (None, ""):
        raise FunnelRulesError(f"Missing '{key}' in {where}")
    return raw[key]


def _parse_verticals(raw: dict[str, Any]) -> dict[Vertical, VerticalTables]:
    verticals: dict[Vertical, VerticalTables] = {}
    for name, entry in raw.items():
        vertical = normalize_vertical(name)
        if vertical is None:
            raise FunnelRulesError(f"Unknown vertical '{name}' in funnel rules")
        verticals[vertical] = VerticalTables(
            opportunities_table=_require(entry, "opportunities_table", f"verticals.{name}"),
            enquiries_vertical=_require(entry, "enquiries_vertical", f"verticals.{name}"),
            has_data=bool(entry.get("has_data", True)),
            exclude_test_records=bool(entry.get("exclude_test_records", False)),
        )
    missing = [v.value for v in Vertical if v not in verticals]
    if missing:
        raise FunnelRulesError(f"Funnel rules missing verticals: {', '.join(missing)}")
    return verticals


def _parse_stages(raw: dict[str, Any]) -> dict[str, StageRule]:
    stages: dict[str, StageRule] = {}
    for key in STAGE_KEYS:
        entry = _require(raw, key, "stages")
        stages[key] = StageRule(
            key=key,
            label=_require(entry, "label", f"stages.{key}"),
            sort_order=int(_require(entry, "sort_order", f"stages.{key}")),
            timestamp_column=_require(entry, "timestamp_column", f"stages.{key}"),
            mandatory_conditions=tuple(entry.get("mandatory_conditions") or ()),
        )
    return stages


def _parse_rules(raw: dict[str, Any], source_path: str) -> FunnelRules:
    if not isinstance(raw, dict):
        raise FunnelRulesError("Funnel rules must be a mapping")
    patterns = raw.get("test_name_patterns") or {}
    chapter = _require(raw, "chapter", "funnel rules")
    return FunnelRules(
        version=raw.get("version", 1),
        slug_exclusions=tuple(str(s) for s in raw.get("slug_exclusions") or ()),
        source_exclusion=str(_require(raw, "source_exclusion", "funnel rules")),
        test_name_patterns=NameExclusionPatterns(
            not_like=tuple(patterns.get("not_like") or ()),
            not_equal=tuple(patterns.get("not_equal") or ()),
        ),
        verticals=_parse_verticals(_require(raw, "verticals", "funnel rules")),
        stages=_parse_stages(_require(raw, "stages", "funnel rules")),
        chapter=ChapterRules(
            viewing_mediums=tuple(_require(chapter, "viewing_mediums", "chapter")),
            meeting_medium=_require(chapter, "meeting_medium", "chapter"),
            leadable_type=_require(chapter, "leadable_type", "chapter"),
            feedable_type=_require(chapter, "feedable_type", "chapter"),
        ),
        source_path=source_path,
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_funnel_rules(path: str | None = None) -> FunnelRules:
    """Load and cache the funnel rules (default path from settings)."""
    rules_path = Path(path or get_settings().funnel_rules_path)
    if not rules_path.exists():
        raise FunnelRulesError(f"Funnel rules not found: {rules_path}")
    try:
        with open(rules_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise FunnelRulesError(f"Invalid funnel rules YAML in {rules_path}: {exc}") from exc
    rules = _parse_rules(raw, str(rules_path))
    logger.info("Loaded funnel rules v%s from %s", rules.version, rules_path)
    return rules
