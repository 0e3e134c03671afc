"""Payload normalization — reshape tool output into the shape templates expect."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cardflow.signatures.catalog import ToolSignature

GENERIC_ROW_ALIASES: tuple[str, ...] = (
    "rows",
    "items",
    "files",
    "entries",
    "results",
    "records",
    "plugins",
    "repos",
    "picks",
    "predictions",
    "media",
    "matches",
    "tools",
)


def _first_list(source: dict[str, Any], aliases: tuple[str, ...]) -> list | None:
    for key in aliases:
        value = source.get(key)
        if isinstance(value, list):
            return value
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_data(signature: ToolSignature, raw: Any) -> dict[str, Any]:
    """Return a copy of ``raw`` guaranteed to carry a ``rows`` list.

    Total over any JSON value: lists become the rows themselves, other
    non-objects are wrapped under ``value``. The input is never mutated.
    """
    if isinstance(raw, dict):
        source = raw
    elif isinstance(raw, list):
        source = {"rows": raw}
    elif raw is None:
        source = {}
    else:
        source = {"value": raw}

    result = dict(source)
    rows = _first_list(source, signature.row_aliases)
    if rows is None:
        rows = _first_list(source, GENERIC_ROW_ALIASES)
    result["rows"] = list(rows) if rows is not None else []

    if signature.summary_field and not _is_number(result.get(signature.summary_field)):
        result[signature.summary_field] = len(result["rows"])

    return result
