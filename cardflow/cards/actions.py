"""Human-readable labels for card actions shown on acknowledgment cards."""

from __future__ import annotations

from typing import Any

# Payload keys scanned for the most descriptive scalar, best group first.
DESCRIPTIVE_KEY_GROUPS: tuple[tuple[str, ...], ...] = (
    ("toolName", "displayName", "name"),
    ("title",),
    ("path", "ticker", "slug", "city", "destination"),
    ("text", "query", "topic", "description"),
    ("id",),
)

MAX_DETAIL_LENGTH = 80


def humanize_action(action: str) -> str:
    words = action.replace("-", " ").replace("_", " ").split()
    if not words:
        return "Action"
    phrase = " ".join(words)
    return phrase[0].upper() + phrase[1:]


def descriptive_scalar(payload: Any) -> str | None:
    """First non-empty string or number found in the payload, by key group."""
    if not isinstance(payload, dict):
        return None
    for group in DESCRIPTIVE_KEY_GROUPS:
        for key in group:
            value = payload.get(key)
            if isinstance(value, bool):
                continue
            if isinstance(value, (int, float)):
                return str(value)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def describe_action(action: str, payload: Any = None) -> str:
    label = humanize_action(action)
    detail = descriptive_scalar(payload)
    if detail is None:
        return label
    if len(detail) > MAX_DETAIL_LENGTH:
        detail = detail[: MAX_DETAIL_LENGTH - 1] + "…"
    return f"{label}: {detail}"
