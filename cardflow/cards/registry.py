"""Card type registry — ordered matchers resolving a settled message to a card type."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardflow.schemas import ServerMessage

logger = logging.getLogger(__name__)

DEFAULT_CARD_TYPE = "chat"
USER_CARD_TYPE = "user-bubble"
TERMINAL_CARD_TYPE = "terminal"
DYNAMIC_UI_CARD_TYPE = "dynamic-ui"


@dataclass(frozen=True)
class CardTypeMatcher:
    card_type: str
    match: Callable[[ServerMessage], bool]


class CardTypeRegistry:
    """Matchers are evaluated in registration order; first match wins."""

    def __init__(self, terminal_tool_id: str = "claude-code") -> None:
        self.terminal_tool_id = terminal_tool_id
        self._matchers: list[CardTypeMatcher] = []

    @classmethod
    def with_defaults(cls, terminal_tool_id: str = "claude-code") -> CardTypeRegistry:
        registry = cls(terminal_tool_id)
        registry.register(TERMINAL_CARD_TYPE, registry.is_terminal_message)
        registry.register(DYNAMIC_UI_CARD_TYPE, lambda msg: bool(msg.generated_ui))
        return registry

    def register(self, card_type: str, match: Callable[[ServerMessage], bool]) -> None:
        """Append a matcher. Re-registering a type moves it to the end."""
        self._matchers = [m for m in self._matchers if m.card_type != card_type]
        self._matchers.append(CardTypeMatcher(card_type=card_type, match=match))

    def types(self) -> list[str]:
        return [m.card_type for m in self._matchers]

    def is_terminal_message(self, msg: ServerMessage) -> bool:
        return msg.tool_meta is not None and msg.tool_meta.tool_id == self.terminal_tool_id

    def resolve(self, msg: ServerMessage, role: str = "assistant") -> str:
        if role == "user":
            return TERMINAL_CARD_TYPE if self.is_terminal_message(msg) else USER_CARD_TYPE

        for matcher in self._matchers:
            if matcher.match(msg):
                return matcher.card_type
        return DEFAULT_CARD_TYPE
