"""Structural shape inference over untyped JSON payloads.

Used when no tool name is available for a payload. Each ``ShapeRule`` is a
typed predicate over a JSON object; rules are evaluated in declaration
order and the first match wins. This is a heuristic fallback, not an
exhaustive classifier: a payload no rule recognises stays unclassified.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

DIRECTORY_ENTRY_TYPES = frozenset({"file", "directory", "dir", "folder", "symlink"})
MEDIA_TYPES = frozenset({"image", "video", "audio", "photo"})


@dataclass(frozen=True)
class ShapeRule:
    name: str
    tool_family: str
    signature_id: str
    predicate: Callable[[dict[str, Any]], bool]


def _records(value: Any) -> list[dict[str, Any]] | None:
    """Return ``value`` if it is a non-empty list made only of objects."""
    if not isinstance(value, list) or not value:
        return None
    if not all(isinstance(item, dict) for item in value):
        return None
    return value


def _records_with(value: Any, *keys: str) -> list[dict[str, Any]] | None:
    rows = _records(value)
    if rows is None:
        return None
    if not all(all(k in row for k in keys) for row in rows):
        return None
    return rows


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def is_directory_listing(data: dict[str, Any]) -> bool:
    for key in ("items", "files", "entries", "matches"):
        rows = _records_with(data.get(key), "name", "type")
        if rows and all(str(r["type"]).lower() in DIRECTORY_ENTRY_TYPES for r in rows):
            return True
    return False


def is_workspace_inventory(data: dict[str, Any]) -> bool:
    return _records(data.get("repos")) is not None


def is_media_gallery(data: dict[str, Any]) -> bool:
    if _records(data.get("media")) is not None:
        return True
    for key in ("items", "files"):
        rows = _records(data.get(key))
        if rows and all(
            str(r.get("mediaType") or r.get("type", "")).lower() in MEDIA_TYPES for r in rows
        ):
            return True
    return False


def is_itinerary(data: dict[str, Any]) -> bool:
    return _records(data.get("itinerary")) is not None


def is_weekly_meal_plan(data: dict[str, Any]) -> bool:
    return _records_with(data.get("days"), "meals") is not None


def is_ranked_predictions(data: dict[str, Any]) -> bool:
    for key in ("picks", "predictions"):
        rows = _records(data.get(key))
        if rows and all("ticker" in r or "symbol" in r for r in rows):
            return True
    return False


def is_market_regime(data: dict[str, Any]) -> bool:
    return isinstance(data.get("regime"), str)


def is_plugin_catalog(data: dict[str, Any]) -> bool:
    return isinstance(data.get("plugins"), list)


def is_tool_run_summary(data: dict[str, Any]) -> bool:
    return isinstance(data.get("toolName"), str) and "result" in data


# Priority order is part of the contract: earlier rules shadow later ones.
SHAPE_RULES: tuple[ShapeRule, ...] = (
    ShapeRule("directory_listing", "filesystem", "directory_listing", is_directory_listing),
    ShapeRule("workspace_inventory", "code_workspace", "workspace_inventory", is_workspace_inventory),
    ShapeRule("media_gallery", "multimedia", "media_gallery", is_media_gallery),
    ShapeRule("itinerary", "travel_planner", "itinerary_board", is_itinerary),
    ShapeRule("weekly_meal_plan", "meal_planner", "weekly_meal_plan", is_weekly_meal_plan),
    ShapeRule("ranked_predictions", "alpharank", "ranked_predictions_table", is_ranked_predictions),
    ShapeRule("market_regime", "alpharank", "market_regime_snapshot", is_market_regime),
    ShapeRule("plugin_catalog", "plugin_discovery", "plugin_catalog_list", is_plugin_catalog),
    ShapeRule("tool_run_summary", "tool_inspector", "tool_run_summary", is_tool_run_summary),
)


def match_shape(data: Any) -> ShapeRule | None:
    """Return the first rule whose predicate holds for ``data``."""
    if not isinstance(data, dict):
        return None
    for rule in SHAPE_RULES:
        if rule.predicate(data):
            return rule
    return None


def hint_matches(required_keys: Iterable[str], data: Any) -> bool:
    """True when ``data`` carries any of the hint's keys.

    An empty hint never matches.
    """
    if not isinstance(data, dict):
        return False
    return any(key in data for key in required_keys)


# ---------------------------------------------------------------------------
# Structured data extraction from assistant text
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)```", re.DOTALL)


def extract_structured_data(text: str | None) -> dict[str, Any] | None:
    """Pull a JSON object out of free-form assistant text.

    A fenced ```json block wins; otherwise the outermost ``{...}`` span is
    tried and only accepted with at least two keys.
    """
    if not text:
        return None

    for block in _FENCE_RE.findall(text):
        try:
            parsed = json.loads(block.strip())
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    if isinstance(parsed, dict) and len(parsed) >= 2:
        return parsed
    return None
