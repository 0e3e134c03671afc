"""Card protocol reducer — applies server messages to the card collection.

Routing precedence per message, first applicable tier wins:

    0. session payloads   settings, projects, apps list, app notifications,
                          proposals and build completions
    1. target_card_id     out-of-band update of one existing card
    2. active terminal    session-tool traffic appended to the terminal card
    3. run correlation    merge into the assistant card for ``run_id``,
                          or create it

A message is always reduced to completion before the next one; cards are
replaced wholesale, never edited in place.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cardflow.cards.models import Card
from cardflow.cards.registry import DEFAULT_CARD_TYPE, CardTypeRegistry
from cardflow.schemas import STAGE_ORDER

if TYPE_CHECKING:
    from cardflow.cards.models import CardState, SessionContext
    from cardflow.schemas import OperationStatus, ServerMessage

logger = logging.getLogger(__name__)

DEFAULT_ERROR_TEXT = "An error occurred."


def merge_operation(
    current: OperationStatus | None, incoming: OperationStatus | None
) -> OperationStatus | None:
    """Apply an in-flight operation update without regressing its stage."""
    if incoming is None:
        return current
    if current is None or current.operation_id != incoming.operation_id:
        return incoming
    if current.is_terminal:
        return current
    if STAGE_ORDER[incoming.stage] < STAGE_ORDER[current.stage]:
        return current
    return incoming


def settle_operation(
    current: OperationStatus | None, incoming: OperationStatus | None
) -> OperationStatus | None:
    """Operation left on a card once it settles: cleared unless the message carries one."""
    if incoming is None:
        return None
    return merge_operation(current, incoming)


def merge_media(existing: tuple[str, ...], incoming: list[str] | None) -> tuple[str, ...]:
    if not incoming:
        return existing
    return existing + tuple(incoming)


class CardReducer:
    def __init__(self, card_types: CardTypeRegistry | None = None) -> None:
        self.card_types = card_types or CardTypeRegistry.with_defaults()

    def apply(
        self, state: CardState, session: SessionContext, msg: ServerMessage, now: int
    ) -> Card | None:
        """Reduce one message. Returns the card created or updated, if any."""
        if msg.settings is not None:
            session.mode = msg.settings.mode
            if msg.settings.tool_families is not None:
                session.tool_families = list(msg.settings.tool_families)
            if msg.settings.terminal_tool_id:
                session.terminal_tool_id = msg.settings.terminal_tool_id
                self.card_types.terminal_tool_id = msg.settings.terminal_tool_id
            if msg.settings.enso_project_path:
                session.enso_project_path = msg.settings.enso_project_path
            logger.debug(f"Session settings applied (mode={session.mode})")
            return None

        if msg.projects is not None:
            session.projects = list(msg.projects)
            return None

        if msg.apps_list is not None:
            session.apps = list(msg.apps_list)
            return None

        if msg.apps_deleted is not None:
            deleted = msg.apps_deleted
            session.apps = []
            text = (
                f"Deleted {deleted.count} app(s): {', '.join(deleted.families)}"
                if deleted.count > 0
                else "No apps to delete."
            )
            return self._notify(state, msg, text, now)

        if msg.app_saved is not None:
            saved = msg.app_saved
            label = saved.tool_family.replace("_", " ")
            text = (
                f"App **{label}** saved to codebase. You can now `git commit` it."
                if saved.success
                else f"Failed to save app **{label}** to codebase: {saved.error}"
            )
            return self._notify(state, msg, text, now)

        if msg.app_proposal is not None:
            card = state.get(msg.app_proposal.card_id)
            if card is None:
                logger.warning(f"App proposal for unknown card {msg.app_proposal.card_id}, dropped")
                return None
            return state.put(card.touch(now, pending_proposal=msg.app_proposal.proposal))

        if msg.build_complete is not None:
            return self._apply_build_complete(state, msg, now)

        if msg.target_card_id:
            return self._apply_targeted(state, session, msg, now)

        if self.card_types.is_terminal_message(msg) and session.active_terminal_card_id:
            return self._apply_terminal(state, session, msg, now)

        return self._apply_run(state, session, msg, now)

    # -----------------------------------------------------------------------
    # Tier 0 helpers
    # -----------------------------------------------------------------------

    def _notify(self, state: CardState, msg: ServerMessage, text: str, now: int) -> Card:
        return state.put(
            Card(
                id=msg.id,
                run_id=msg.run_id,
                type=DEFAULT_CARD_TYPE,
                role="assistant",
                status="complete",
                text=text,
                created_at=now,
                updated_at=now,
            )
        )

    def _apply_build_complete(self, state: CardState, msg: ServerMessage, now: int) -> Card:
        build = msg.build_complete
        if build.success and build.summary is not None:
            label = build.summary.tool_family.replace("_", " ")
            text = (
                f"✓ New app built: **{label}** ({len(build.summary.tool_names)} tools)\n\n"
                f"{build.summary.description}"
            )
        else:
            text = f"✗ App build failed{': ' + build.error if build.error else ''}"

        notification = self._notify(state, msg, text, now)

        source = state.get(build.card_id)
        if source is not None and build.success:
            state.put(source.touch(now, enhance_status="ready"))
        elif source is None:
            logger.info(f"Build finished for card {build.card_id}, which no longer exists")
        return notification

    # -----------------------------------------------------------------------
    # Tier 1: explicit card addressing
    # -----------------------------------------------------------------------

    def _apply_targeted(
        self, state: CardState, session: SessionContext, msg: ServerMessage, now: int
    ) -> Card | None:
        card = state.get(msg.target_card_id)
        if card is None:
            logger.warning(f"Message {msg.id} targets unknown card {msg.target_card_id}, dropped")
            return None

        if msg.has_enhance_result:
            result = msg.enhance_result
            if result is None:
                status = "unavailable" if card.enhance_status == "loading" else card.enhance_status
                return state.put(
                    card.touch(
                        now,
                        enhance_status=status,
                        status="complete",
                        operation=None,
                        pending_action=None,
                    )
                )
            was_loading = card.enhance_status == "loading"
            return state.put(
                card.touch(
                    now,
                    app_data=result.data,
                    app_generated_ui=result.generated_ui,
                    app_card_mode=result.card_mode,
                    app_build_summary=result.build_summary,
                    enhance_status="ready",
                    status="complete",
                    view_mode="app" if was_loading else (card.view_mode or "app"),
                    operation=None,
                    pending_action=None,
                )
            )

        if msg.enhance_hint is not None:
            if card.enhance_status is None:
                return state.put(
                    card.touch(
                        now,
                        enhance_status="suggested",
                        suggested_family=msg.enhance_hint.tool_family,
                    )
                )
            return card

        is_delta = msg.state == "delta"
        changes = {
            "text": msg.text if msg.text is not None else card.text,
            "status": {"delta": "streaming", "error": "error"}.get(msg.state, "complete"),
            "pending_action": card.pending_action if is_delta else None,
            "operation": (
                merge_operation(card.operation, msg.operation)
                if is_delta
                else settle_operation(card.operation, msg.operation)
            ),
            "card_mode": msg.card_mode or card.card_mode,
            "data": msg.data if msg.data is not None else card.data,
            "generated_ui": msg.generated_ui if msg.generated_ui is not None else card.generated_ui,
            "media_urls": merge_media(card.media_urls, msg.media_urls),
        }
        if card.view_mode == "app" and card.enhance_status == "ready":
            if msg.data is not None:
                changes["app_data"] = msg.data
            if msg.generated_ui is not None:
                changes["app_generated_ui"] = msg.generated_ui
            if msg.card_mode is not None:
                changes["app_card_mode"] = msg.card_mode

        if not is_delta:
            session.is_waiting = False
        return state.put(card.touch(now, **changes))

    # -----------------------------------------------------------------------
    # Tier 2: active terminal card
    # -----------------------------------------------------------------------

    def _apply_terminal(
        self, state: CardState, session: SessionContext, msg: ServerMessage, now: int
    ) -> Card | None:
        card = state.get(session.active_terminal_card_id)
        if card is None:
            logger.warning(f"Active terminal card {session.active_terminal_card_id} is gone, dropped {msg.id}")
            session.is_waiting = False
            return None

        common = {
            "tool_meta": msg.tool_meta or card.tool_meta,
            "card_mode": msg.card_mode or card.card_mode,
        }

        match msg.state:
            case "delta":
                has_questions = bool(msg.questions)
                if has_questions:
                    # The session tool is blocked on the user.
                    session.is_waiting = False
                updated = card.touch(
                    now,
                    text=(card.text or "") + (msg.text or ""),
                    status="complete" if has_questions else "streaming",
                    operation=merge_operation(card.operation, msg.operation),
                    pending_questions=tuple(msg.questions) if has_questions else card.pending_questions,
                    **common,
                )
            case "final":
                session.is_waiting = False
                if msg.tool_meta is not None and msg.tool_meta.tool_session_id:
                    session.code_session_id = msg.tool_meta.tool_session_id
                # Deltas already delivered the full output.
                updated = card.touch(
                    now,
                    status="complete",
                    operation=settle_operation(card.operation, msg.operation),
                    **common,
                )
            case "error":
                session.is_waiting = False
                updated = card.touch(
                    now,
                    text=(card.text or "") + (msg.text or "Error occurred."),
                    status="error",
                    operation=settle_operation(card.operation, msg.operation),
                    **common,
                )
            case _:
                raise ValueError(f"Unknown message state: {msg.state}")
        return state.put(updated)

    # -----------------------------------------------------------------------
    # Tier 3: run correlation
    # -----------------------------------------------------------------------

    def _apply_run(
        self, state: CardState, session: SessionContext, msg: ServerMessage, now: int
    ) -> Card:
        existing = state.find_assistant_by_run(msg.run_id)

        if existing is None and msg.operation is not None and msg.operation.operation_id == msg.run_id:
            # Replies for operations with no live run carry the operation id as run id.
            owner = state.find_by_operation(msg.run_id)
            if owner is not None:
                return self._apply_operation_reply(state, session, owner, msg, now)

        match msg.state:
            case "delta":
                return self._apply_run_delta(state, existing, msg, now)
            case "final":
                return self._apply_run_final(state, session, existing, msg, now)
            case "error":
                return self._apply_run_error(state, session, existing, msg, now)
            case _:
                raise ValueError(f"Unknown message state: {msg.state}")

    def _apply_operation_reply(
        self, state: CardState, session: SessionContext, card: Card, msg: ServerMessage, now: int
    ) -> Card:
        logger.debug(f"Operation reply {msg.run_id} applied to card {card.id}")
        if msg.state != "delta":
            session.is_waiting = False
        status = {"delta": "streaming", "error": "error"}.get(msg.state, "complete")
        return state.put(
            card.touch(
                now,
                status=status,
                operation=msg.operation,
                pending_action=card.pending_action if msg.state == "delta" else None,
            )
        )

    def _apply_run_delta(self, state: CardState, existing: Card | None, msg: ServerMessage, now: int) -> Card:
        if existing is not None:
            return state.put(
                existing.touch(
                    now,
                    text=(existing.text or "") + (msg.text or ""),
                    status="streaming",
                    media_urls=merge_media(existing.media_urls, msg.media_urls),
                    operation=merge_operation(existing.operation, msg.operation),
                    card_mode=msg.card_mode or existing.card_mode,
                )
            )
        # Streaming cards render as chat until the run settles.
        return state.put(
            Card(
                id=msg.id,
                run_id=msg.run_id,
                type=msg.card_type or DEFAULT_CARD_TYPE,
                role="assistant",
                status="streaming",
                text=msg.text or "",
                media_urls=merge_media((), msg.media_urls),
                tool_meta=msg.tool_meta,
                operation=msg.operation,
                card_mode=msg.card_mode,
                created_at=now,
                updated_at=now,
            )
        )

    def _apply_run_final(
        self, state: CardState, session: SessionContext, existing: Card | None, msg: ServerMessage, now: int
    ) -> Card:
        session.is_waiting = False
        if self.card_types.is_terminal_message(msg) and msg.tool_meta.tool_session_id:
            session.code_session_id = msg.tool_meta.tool_session_id

        card_type = msg.card_type or self.card_types.resolve(msg, "assistant")
        steps = tuple(msg.steps) if msg.steps is not None else None

        if existing is not None:
            return state.put(
                existing.touch(
                    now,
                    type=card_type,
                    status="complete",
                    text=msg.text if msg.text is not None else existing.text,
                    data=msg.data if msg.data is not None else existing.data,
                    generated_ui=msg.generated_ui if msg.generated_ui is not None else existing.generated_ui,
                    media_urls=merge_media(existing.media_urls, msg.media_urls),
                    tool_meta=msg.tool_meta or existing.tool_meta,
                    operation=settle_operation(existing.operation, msg.operation),
                    pending_action=None,
                    card_mode=msg.card_mode or existing.card_mode,
                    steps=steps if steps is not None else existing.steps,
                )
            )

        return state.put(
            Card(
                id=msg.id,
                run_id=msg.run_id,
                type=card_type,
                role="assistant",
                status="complete",
                text=msg.text or "",
                data=msg.data,
                generated_ui=msg.generated_ui,
                media_urls=merge_media((), msg.media_urls),
                tool_meta=msg.tool_meta,
                operation=msg.operation,
                card_mode=msg.card_mode,
                steps=steps,
                created_at=now,
                updated_at=now,
            )
        )

    def _apply_run_error(
        self, state: CardState, session: SessionContext, existing: Card | None, msg: ServerMessage, now: int
    ) -> Card:
        session.is_waiting = False
        if existing is not None:
            return state.put(
                existing.touch(
                    now,
                    text=msg.text or DEFAULT_ERROR_TEXT,
                    status="error",
                    tool_meta=msg.tool_meta or existing.tool_meta,
                    operation=settle_operation(existing.operation, msg.operation),
                    pending_action=None,
                    card_mode=msg.card_mode or existing.card_mode,
                )
            )
        return state.put(
            Card(
                id=msg.id,
                run_id=msg.run_id,
                type=DEFAULT_CARD_TYPE,
                role="assistant",
                status="error",
                text=msg.text or DEFAULT_ERROR_TEXT,
                tool_meta=msg.tool_meta,
                operation=msg.operation,
                card_mode=msg.card_mode,
                created_at=now,
                updated_at=now,
            )
        )
