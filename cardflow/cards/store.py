"""Client-side card store — owns the card collection for one connection.

Outbound operations (sending chat, card actions, enhance requests) update
local state optimistically and hand a ``ClientMessage`` to the transport
callable; inbound frames go through ``receive`` and the reducer. Waiting
on the server is represented as card state (``streaming``, ``loading``),
never as a blocked call.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from cardflow.cards.actions import describe_action
from cardflow.cards.models import Card, CardState, SessionContext
from cardflow.cards.reducer import CardReducer
from cardflow.cards.registry import TERMINAL_CARD_TYPE, USER_CARD_TYPE, CardTypeRegistry
from cardflow.schemas import (
    CancelOperation,
    CardAction,
    CardBuildApp,
    CardEnhance,
    CardProposeApp,
    ChatSend,
    DeleteAllApps,
    ListApps,
    ListProjects,
    RestartServer,
    RunApp,
    SaveAppToCodebase,
    SetMode,
    ToolMeta,
    ToolRouting,
    parse_server_message,
)

if TYPE_CHECKING:
    from cardflow.schemas import ChannelMode, ClientMessage, ServerMessage

logger = logging.getLogger(__name__)

DEFAULT_ENHANCE_TIMEOUT_SECONDS = 45.0
MALFORMED_MESSAGE_TEXT = "Received a malformed message from the server."


class EnhanceWatchdogLike(Protocol):
    def arm(self, card_id: str, deadline_ms: int, callback: Callable[[], Any]) -> None: ...

    def disarm(self, card_id: str) -> None: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


class CardStore:
    def __init__(
        self,
        send: Callable[[ClientMessage], None],
        *,
        session: SessionContext | None = None,
        reducer: CardReducer | None = None,
        clock: Callable[[], int] = _now_ms,
        enhance_timeout_seconds: float = DEFAULT_ENHANCE_TIMEOUT_SECONDS,
        watchdog: EnhanceWatchdogLike | None = None,
    ) -> None:
        self._send = send
        self.session = session or SessionContext()
        self.reducer = reducer or CardReducer(CardTypeRegistry.with_defaults(self.session.terminal_tool_id))
        self.state = CardState()
        self.clock = clock
        self.enhance_timeout_ms = int(enhance_timeout_seconds * 1000)
        self.watchdog = watchdog
        self.cancel_requested: set[str] = set()
        self._enhance_deadlines: dict[str, int] = {}

    # -----------------------------------------------------------------------
    # Accessors
    # -----------------------------------------------------------------------

    @property
    def cards(self) -> list[Card]:
        return self.state.ordered()

    def card(self, card_id: str) -> Card | None:
        return self.state.get(card_id)

    def _new_card(self, **fields: Any) -> Card:
        now = self.clock()
        card_id = str(uuid.uuid4())
        fields.setdefault("run_id", card_id)
        return self.state.put(Card(id=card_id, created_at=now, updated_at=now, **fields))

    def _update(self, card_id: str, **changes: Any) -> Card | None:
        card = self.state.get(card_id)
        if card is None:
            return None
        return self.state.put(card.touch(self.clock(), **changes))

    # -----------------------------------------------------------------------
    # Chat
    # -----------------------------------------------------------------------

    def send_message(self, text: str, routing: ToolRouting | None = None) -> Card | None:
        """Send a chat turn. Handles the ``/code`` and ``/delete-apps`` commands."""
        command = text.strip()
        terminal_id = self.session.terminal_tool_id

        if command == "/delete-apps":
            self.delete_all_apps()
            return None

        if command == "/code":
            self.fetch_projects()
            card = self._new_card(
                type=TERMINAL_CARD_TYPE,
                role="assistant",
                status="complete",
                tool_meta=ToolMeta(tool_id=terminal_id),
            )
            self.session.active_terminal_card_id = card.id
            logger.debug(f"Opened terminal session card {card.id}")
            return card

        display_text = text
        if routing is None and text.startswith("/code "):
            display_text = text[len("/code "):]
            routing = ToolRouting(
                tool_id=terminal_id,
                tool_session_id=self.session.code_session_id,
                cwd=self.session.code_session_cwd,
            )

        if routing is not None and routing.tool_id == terminal_id:
            card = self._append_to_terminal(display_text)
            self._send(ChatSend(text=display_text, routing=routing))
            return card

        card = self._new_card(type=USER_CARD_TYPE, role="user", status="complete", text=display_text)
        self.session.is_waiting = True
        self._send(ChatSend(text=display_text, routing=routing))
        return card

    def _append_to_terminal(self, text: str) -> Card:
        line = f">>> {text}\n"
        self.session.is_waiting = True
        active = self.state.get(self.session.active_terminal_card_id)
        if active is None:
            card = self._new_card(
                type=TERMINAL_CARD_TYPE,
                role="assistant",
                status="streaming",
                text=line,
                tool_meta=ToolMeta(tool_id=self.session.terminal_tool_id),
            )
            self.session.active_terminal_card_id = card.id
            return card
        return self._update(
            active.id,
            text=(active.text or "") + line,
            status="streaming",
            pending_questions=None,
        )

    # -----------------------------------------------------------------------
    # Card actions
    # -----------------------------------------------------------------------

    def send_card_action(self, card_id: str, action: str, payload: Any = None) -> bool:
        """Dispatch a card action. Returns False when rejected without sending."""
        card = self.state.get(card_id)
        if card is None:
            logger.warning(f"Card action '{action}' for unknown card {card_id}")
            return False
        if card.status == "streaming":
            logger.info(f"Card action '{action}' ignored while card {card_id} is busy")
            return False

        operation = None
        if card.operation is not None:
            operation = card.operation.model_copy(
                update={"stage": "processing", "label": "Processing action", "cancellable": False}
            )
        self._update(card_id, status="streaming", pending_action=action, operation=operation)
        self.session.is_waiting = True

        if self.session.mode == "full":
            self._new_card(
                type=USER_CARD_TYPE,
                role="user",
                status="complete",
                text=describe_action(action, payload),
            )

        routing = ToolRouting(tool_id=card.tool_meta.tool_id) if card.tool_meta else None
        self._send(
            CardAction(
                card_id=card_id,
                card_action=action,
                card_payload=payload,
                mode=self.session.mode,
                routing=routing,
            )
        )
        return True

    def cancel_operation(self, operation_id: str) -> None:
        self.cancel_requested.add(operation_id)
        self._send(CancelOperation(operation_id=operation_id))

    def toggle_card_view(self, card_id: str, view_mode: str) -> None:
        self._update(card_id, view_mode=view_mode)

    def collapse_card(self, card_id: str) -> None:
        self._update(card_id, display="collapsed")

    def expand_card(self, card_id: str) -> None:
        self._update(card_id, display="expanded")

    # -----------------------------------------------------------------------
    # Enhance / build / propose
    # -----------------------------------------------------------------------

    def enhance_card(self, card_id: str, family: str | None = None) -> bool:
        """Request an app view for a card, optionally naming the tool family."""
        card = self.state.get(card_id)
        if card is None or card.enhance_status == "loading":
            return False

        self._update(card_id, enhance_status="loading", suggested_family=None)
        deadline = self.clock() + self.enhance_timeout_ms
        self._enhance_deadlines[card_id] = deadline
        if self.watchdog is not None:
            self.watchdog.arm(card_id, deadline, self.expire_enhancements)

        self._send(CardEnhance(card_id=card_id, card_text=card.text or "", suggested_family=family))
        return True

    def expire_enhancements(self, now: int | None = None) -> list[str]:
        """Force ``unavailable`` on every enhance request past its deadline."""
        now = self.clock() if now is None else now
        expired = []
        for card_id, deadline in list(self._enhance_deadlines.items()):
            if deadline > now:
                continue
            del self._enhance_deadlines[card_id]
            card = self.state.get(card_id)
            if card is not None and card.enhance_status == "loading":
                self.state.put(card.touch(now, enhance_status="unavailable"))
                expired.append(card_id)
                logger.warning(f"Enhance request for card {card_id} timed out")
        return expired

    def build_app(
        self,
        card_id: str,
        card_text: str,
        definition: str,
        conversation_context: str | None = None,
    ) -> bool:
        # Fire-and-forget: the outcome arrives later as a build completion.
        if self.state.get(card_id) is None:
            return False
        self._send(
            CardBuildApp(
                card_id=card_id,
                card_text=card_text,
                build_app_definition=definition,
                conversation_context=conversation_context,
            )
        )
        return True

    def propose_app(self, card_id: str, card_text: str, conversation_context: str) -> None:
        self._send(
            CardProposeApp(card_id=card_id, card_text=card_text, conversation_context=conversation_context)
        )

    # -----------------------------------------------------------------------
    # Apps, projects, settings
    # -----------------------------------------------------------------------

    def delete_all_apps(self) -> None:
        self._send(DeleteAllApps())

    def fetch_apps(self) -> None:
        self._send(ListApps())

    def run_app(self, tool_family: str) -> None:
        self._send(RunApp(tool_family=tool_family))

    def save_app_to_codebase(self, tool_family: str) -> None:
        self._send(SaveAppToCodebase(tool_family=tool_family))

    def restart_server(self) -> None:
        self._send(RestartServer())

    def fetch_projects(self) -> None:
        self._send(ListProjects())

    def set_code_session_cwd(self, cwd: str) -> None:
        self.session.code_session_cwd = cwd

    def set_mode(self, mode: ChannelMode) -> None:
        self._send(SetMode(mode=mode))

    # -----------------------------------------------------------------------
    # Inbound
    # -----------------------------------------------------------------------

    def receive(self, raw: str | bytes) -> Card | None:
        """Parse and apply one wire frame. Malformed frames become an error card."""
        try:
            msg = parse_server_message(raw)
        except ValidationError as e:
            logger.warning(f"Malformed server message: {e.error_count()} validation error(s)")
            self.session.is_waiting = False
            return self._new_card(
                type="chat",
                role="assistant",
                status="error",
                text=MALFORMED_MESSAGE_TEXT,
            )
        return self.handle(msg)

    def handle(self, msg: ServerMessage) -> Card | None:
        card = self.reducer.apply(self.state, self.session, msg, self.clock())

        if msg.app_saved is not None:
            self.fetch_apps()

        if card is not None:
            if card.operation is not None and card.operation.is_terminal:
                self.cancel_requested.discard(card.operation.operation_id)
            if card.id in self._enhance_deadlines and card.enhance_status != "loading":
                del self._enhance_deadlines[card.id]
                if self.watchdog is not None:
                    self.watchdog.disarm(card.id)
        return card
