"""Card state — cards, the normalized card collection and session context."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from cardflow.schemas import (
        AgentStep,
        AppInfo,
        CardModeDetail,
        ChannelMode,
        FamilySummary,
        OperationStatus,
        ProjectInfo,
        ToolBuildSummary,
        ToolMeta,
        ToolQuestion,
    )

CardRole = Literal["user", "assistant"]
CardStatus = Literal["streaming", "complete", "error"]
EnhanceStatus = Literal["loading", "ready", "unavailable", "suggested"]


@dataclass(frozen=True)
class Card:
    """One addressable unit of conversation. Replaced, never mutated in place."""

    id: str
    run_id: str
    type: str
    role: CardRole
    status: CardStatus
    created_at: int
    updated_at: int
    display: Literal["expanded", "collapsed"] = "expanded"
    text: str | None = None
    data: Any = None
    generated_ui: str | None = None
    media_urls: tuple[str, ...] = ()
    tool_meta: ToolMeta | None = None
    pending_action: str | None = None
    operation: OperationStatus | None = None
    pending_questions: tuple[ToolQuestion, ...] | None = None
    steps: tuple[AgentStep, ...] | None = None
    card_mode: CardModeDetail | None = None
    enhance_status: EnhanceStatus | None = None
    suggested_family: str | None = None
    pending_proposal: str | None = None
    app_data: Any = None
    app_generated_ui: str | None = None
    app_card_mode: CardModeDetail | None = None
    app_build_summary: ToolBuildSummary | None = None
    view_mode: Literal["original", "app"] | None = None

    def touch(self, now: int, **changes: Any) -> Card:
        """Copy with ``changes`` applied; ``updated_at`` never moves backwards."""
        return replace(self, updated_at=max(now, self.updated_at), **changes)


@dataclass
class CardState:
    """Normalized card collection: lookup by id plus display order."""

    cards: dict[str, Card] = field(default_factory=dict)
    card_order: list[str] = field(default_factory=list)

    def get(self, card_id: str | None) -> Card | None:
        if card_id is None:
            return None
        return self.cards.get(card_id)

    def put(self, card: Card) -> Card:
        if card.id not in self.cards:
            self.card_order.append(card.id)
        self.cards[card.id] = card
        return card

    def find_assistant_by_run(self, run_id: str) -> Card | None:
        for card_id in self.card_order:
            card = self.cards[card_id]
            if card.run_id == run_id and card.role == "assistant":
                return card
        return None

    def find_by_operation(self, operation_id: str) -> Card | None:
        for card_id in self.card_order:
            card = self.cards[card_id]
            if card.operation is not None and card.operation.operation_id == operation_id:
                return card
        return None

    def ordered(self) -> list[Card]:
        return [self.cards[card_id] for card_id in self.card_order]

    def __len__(self) -> int:
        return len(self.card_order)


@dataclass
class SessionContext:
    """Per-connection session state threaded through every reduction."""

    mode: ChannelMode = "full"
    terminal_tool_id: str = "claude-code"
    active_terminal_card_id: str | None = None
    code_session_id: str | None = None
    code_session_cwd: str | None = None
    is_waiting: bool = False
    apps: list[AppInfo] = field(default_factory=list)
    tool_families: list[FamilySummary] = field(default_factory=list)
    projects: list[ProjectInfo] = field(default_factory=list)
    enso_project_path: str | None = None
