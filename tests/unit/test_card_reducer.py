"""
Tests for the card protocol reducer.

Messages are applied straight to a ``CardState`` with an explicit
``SessionContext``; no transport is involved.
"""

import pytest
from cardflow.cards.models import Card, CardState, SessionContext
from cardflow.cards.reducer import CardReducer, merge_operation
from cardflow.cards.registry import CardTypeRegistry
from cardflow.schemas import (
    AppProposal,
    AppsDeleted,
    BuildComplete,
    CardModeDetail,
    EnhanceHint,
    EnhanceResult,
    OperationStatus,
    ServerMessage,
    SessionSettings,
    ToolBuildSummary,
    ToolMeta,
    ToolQuestion,
)

NOW = 1_000


@pytest.fixture
def state():
    return CardState()


@pytest.fixture
def session():
    return SessionContext()


@pytest.fixture
def reducer():
    return CardReducer(CardTypeRegistry.with_defaults("claude-code"))


@pytest.fixture
def apply(reducer, state, session):
    def _apply(msg, now=NOW):
        return reducer.apply(state, session, msg, now)

    return _apply


def seed(state, **fields):
    fields.setdefault("run_id", fields["id"])
    fields.setdefault("type", "chat")
    fields.setdefault("role", "assistant")
    fields.setdefault("status", "complete")
    return state.put(Card(created_at=0, updated_at=0, **fields))


def op(operation_id, stage, **kwargs):
    return OperationStatus(operation_id=operation_id, stage=stage, **kwargs)


def _msg(run_id, state, msg_id, **fields):
    return ServerMessage(id=msg_id, run_id=run_id, state=state, **fields)


class TestRunCorrelation:
    """Deltas and finals with the same run id merge into one card."""

    def test_delta_then_final_is_one_card(self, apply, state):
        apply(_msg("run-1", "delta", "msg-1", text="Hel"))
        apply(_msg("run-1", "delta", "msg-2", text="lo"))
        card = apply(_msg("run-1", "final", "msg-3", text="Hello, world"))

        assert len(state) == 1
        assert card.id == "msg-1"
        assert card.status == "complete"
        assert card.text == "Hello, world"

    def test_deltas_append(self, apply):
        apply(_msg("run-1", "delta", "msg-1", text="a"))
        card = apply(_msg("run-1", "delta", "msg-2", text="b"))
        assert card.text == "ab"
        assert card.status == "streaming"

    def test_final_without_text_keeps_streamed_text(self, apply):
        apply(_msg("run-1", "delta", "msg-1", text="streamed"))
        card = apply(_msg("run-1", "final", "msg-2"))
        assert card.text == "streamed"

    def test_media_merged(self, apply):
        apply(_msg("run-1", "delta", "msg-1", media_urls=["a.png"]))
        card = apply(_msg("run-1", "final", "msg-2", media_urls=["b.png"]))
        assert card.media_urls == ("a.png", "b.png")

    def test_different_runs_make_different_cards(self, apply, state):
        apply(_msg("run-1", "final", "msg-1", text="one"))
        apply(_msg("run-2", "final", "msg-2", text="two"))
        assert [c.text for c in state.ordered()] == ["one", "two"]

    def test_error_default_text(self, apply):
        card = apply(_msg("run-1", "error", "msg-1"))
        assert card.status == "error"
        assert card.text == "An error occurred."

    def test_error_after_delta(self, apply, state):
        apply(_msg("run-1", "delta", "msg-1", text="partial"))
        card = apply(_msg("run-1", "error", "msg-2", text="boom"))
        assert len(state) == 1
        assert card.status == "error"
        assert card.text == "boom"

    def test_user_cards_are_never_merged(self, apply, state):
        seed(state, id="user-1", run_id="run-1", role="user", type="user-bubble", text="hi")
        apply(_msg("run-1", "final", "msg-1", text="reply"))
        assert len(state) == 2

    def test_final_with_generated_ui_is_dynamic(self, apply):
        card = apply(_msg("run-1", "final", "msg-1", generated_ui="export default function GeneratedUI() {}"))
        assert card.type == "dynamic-ui"

    def test_final_plain_is_chat(self, apply):
        assert apply(_msg("run-1", "final", "msg-1", text="x")).type == "chat"

    def test_explicit_card_type_wins(self, apply):
        assert apply(_msg("run-1", "final", "msg-1", card_type="custom")).type == "custom"

    def test_updated_at_never_moves_backwards(self, apply):
        apply(_msg("run-1", "delta", "msg-1", text="a"), now=5_000)
        card = apply(_msg("run-1", "final", "msg-2", text="b"), now=4_000)
        assert card.updated_at == 5_000


class TestOperationStages:
    """Stages only move forward; terminal stages stick."""

    def test_merge_operation_never_regresses(self):
        current = op("op-1", "generating_ui")
        assert merge_operation(current, op("op-1", "processing")) is current

    def test_merge_operation_advances(self):
        incoming = op("op-1", "streaming")
        assert merge_operation(op("op-1", "calling_tool"), incoming) is incoming

    def test_terminal_stage_sticks(self):
        current = op("op-1", "cancelled")
        assert merge_operation(current, op("op-1", "streaming")) is current

    def test_new_operation_replaces(self):
        incoming = op("op-2", "processing")
        assert merge_operation(op("op-1", "complete"), incoming) is incoming

    def test_delta_cannot_regress_card_stage(self, apply):
        apply(_msg("run-1", "delta", "msg-1", operation=op("op-1", "calling_tool")))
        card = apply(_msg("run-1", "delta", "msg-2", operation=op("op-1", "processing")))
        assert card.operation.stage == "calling_tool"

    def test_final_clears_operation(self, apply):
        apply(_msg("run-1", "delta", "msg-1", operation=op("op-1", "streaming", cancellable=True)))
        card = apply(_msg("run-1", "final", "msg-2", text="done"))
        assert card.operation is None

    def test_cancelled_final_keeps_stage(self, apply):
        apply(_msg("run-1", "delta", "msg-1", operation=op("op-1", "streaming", cancellable=True)))
        card = apply(_msg("run-1", "final", "msg-2", operation=op("op-1", "cancelled")))
        assert card.operation.stage == "cancelled"
        assert card.status == "complete"

    def test_not_running_reply_lands_on_owning_card(self, apply, state):
        seed(state, id="card-1", status="streaming", pending_action="refresh", operation=op("op-9", "calling_tool"))
        reply = _msg(
            "op-9",
            "error",
            "msg-1",
            text="Operation is no longer running.",
            operation=op("op-9", "error", label="Not running"),
        )
        card = apply(reply)

        assert card.id == "card-1"
        assert len(state) == 1
        assert card.status == "error"
        assert card.operation.label == "Not running"
        assert card.pending_action is None

    def test_not_running_reply_without_owner_is_standalone(self, apply, state):
        reply = _msg("op-404", "error", "msg-1", operation=op("op-404", "error", label="Not running"))
        card = apply(reply)
        assert card.status == "error"
        assert card.operation.operation_id == "op-404"
        assert len(state) == 1


class TestTargetedMessages:
    """Explicit card addressing beats every other routing tier."""

    def test_targeted_final_updates_card(self, apply, state):
        seed(state, id="card-1", status="streaming", pending_action="refresh", data={"old": True})
        card = apply(_msg("op-1", "final", "msg-1", target_card_id="card-1", data={"rows": []}))
        assert card.id == "card-1"
        assert card.status == "complete"
        assert card.data == {"rows": []}
        assert card.pending_action is None

    def test_targeted_delta_keeps_pending_action(self, apply, state):
        seed(state, id="card-1", status="streaming", pending_action="refresh")
        card = apply(_msg("op-1", "delta", "msg-1", target_card_id="card-1", operation=op("op-1", "calling_tool")))
        assert card.status == "streaming"
        assert card.pending_action == "refresh"

    def test_unknown_target_dropped(self, apply, state):
        assert apply(_msg("op-1", "final", "msg-1", target_card_id="ghost", text="x")) is None
        assert len(state) == 0

    def test_targeted_beats_run_correlation(self, apply, state):
        seed(state, id="card-1")
        seed(state, id="card-2", run_id="run-1")
        card = apply(_msg("run-1", "final", "msg-1", target_card_id="card-1", text="addressed"))
        assert card.id == "card-1"
        assert state.get("card-2").text is None

    def test_app_view_refreshed_in_place(self, apply, state):
        seed(state, id="card-1", view_mode="app", enhance_status="ready", app_data={"v": 1})
        card = apply(_msg("op-1", "final", "msg-1", target_card_id="card-1", data={"v": 2}))
        assert card.app_data == {"v": 2}
        assert card.view_mode == "app"


class TestEnhanceReplies:
    """Enhance results, explicit no-result replies and hints."""

    @pytest.fixture
    def result(self):
        return EnhanceResult(
            data={"rows": []},
            generated_ui="export default function GeneratedUI() {}",
            card_mode=CardModeDetail(interaction_mode="tool", tool_family="filesystem"),
        )

    def test_result_switches_to_app(self, apply, state, result):
        seed(state, id="card-1", enhance_status="loading")
        card = apply(_msg("x", "final", "msg-1", target_card_id="card-1", enhance_result=result))
        assert card.enhance_status == "ready"
        assert card.view_mode == "app"
        assert card.app_generated_ui == result.generated_ui
        assert card.app_card_mode.tool_family == "filesystem"

    def test_explicit_null_is_unavailable(self, apply, state):
        seed(state, id="card-1", enhance_status="loading")
        card = apply(_msg("x", "final", "msg-1", target_card_id="card-1", enhance_result=None))
        assert card.enhance_status == "unavailable"

    def test_null_after_timeout_leaves_state(self, apply, state):
        seed(state, id="card-1", enhance_status="ready")
        card = apply(_msg("x", "final", "msg-1", target_card_id="card-1", enhance_result=None))
        assert card.enhance_status == "ready"

    def test_absent_enhance_result_is_plain_update(self, apply, state):
        seed(state, id="card-1", enhance_status="loading")
        card = apply(_msg("x", "final", "msg-1", target_card_id="card-1", text="plain"))
        assert card.enhance_status == "loading"
        assert card.text == "plain"

    def test_hint_marks_suggested(self, apply, state):
        seed(state, id="card-1")
        card = apply(
            _msg("x", "final", "msg-1", target_card_id="card-1", enhance_hint=EnhanceHint(tool_family="filesystem"))
        )
        assert card.enhance_status == "suggested"
        assert card.suggested_family == "filesystem"

    def test_hint_ignored_once_enhanced(self, apply, state):
        seed(state, id="card-1", enhance_status="ready")
        card = apply(
            _msg("x", "final", "msg-1", target_card_id="card-1", enhance_hint=EnhanceHint(tool_family="filesystem"))
        )
        assert card.enhance_status == "ready"
        assert card.suggested_family is None


class TestTerminalSession:
    """Traffic for the terminal tool lands on the active terminal card."""

    @pytest.fixture
    def terminal(self, state, session):
        card = seed(state, id="term-1", type="terminal", status="streaming", text=">>> ls\n",
                    tool_meta=ToolMeta(tool_id="claude-code"))
        session.active_terminal_card_id = card.id
        return card

    def test_delta_appends_regardless_of_run(self, apply, state, terminal):
        card = apply(_msg("other-run", "delta", "msg-1", text="file.txt\n", tool_meta=ToolMeta(tool_id="claude-code")))
        assert card.id == "term-1"
        assert card.text == ">>> ls\nfile.txt\n"
        assert len(state) == 1

    def test_questions_block_the_card(self, apply, session, terminal):
        session.is_waiting = True
        question = ToolQuestion(question="Proceed?", options=[{"label": "Yes"}, {"label": "No"}])
        card = apply(_msg("r", "delta", "msg-1", tool_meta=ToolMeta(tool_id="claude-code"), questions=[question]))
        assert card.status == "complete"
        assert card.pending_questions[0].question == "Proceed?"
        assert session.is_waiting is False

    def test_final_records_session_id(self, apply, session, terminal):
        card = apply(
            _msg("r", "final", "msg-1", text="ignored", tool_meta=ToolMeta(tool_id="claude-code", tool_session_id="sess-7"))
        )
        assert session.code_session_id == "sess-7"
        assert card.status == "complete"
        assert card.text == ">>> ls\n"

    def test_error_appends(self, apply, terminal):
        card = apply(_msg("r", "error", "msg-1", text="crashed", tool_meta=ToolMeta(tool_id="claude-code")))
        assert card.status == "error"
        assert card.text.endswith("crashed")

    def test_other_tools_use_run_correlation(self, apply, state, terminal):
        card = apply(_msg("r", "final", "msg-1", text="x", tool_meta=ToolMeta(tool_id="other")))
        assert card.id != "term-1"
        assert len(state) == 2


class TestSessionPayloads:
    """Settings, lists and notifications."""

    def test_settings_update_session(self, apply, session, state):
        assert apply(_msg("s", "final", "msg-1", settings=SessionSettings(mode="im"))) is None
        assert session.mode == "im"
        assert len(state) == 0

    def test_settings_carry_terminal_tool(self, apply, session, state, reducer):
        apply(_msg("s", "final", "msg-1", settings=SessionSettings(mode="full", terminal_tool_id="codex")))
        assert session.terminal_tool_id == "codex"
        assert reducer.card_types.terminal_tool_id == "codex"

        seed(state, id="term-1", type="terminal", status="streaming", text=">>> ls\n",
             tool_meta=ToolMeta(tool_id="codex"))
        session.active_terminal_card_id = "term-1"
        card = apply(_msg("other-run", "delta", "msg-2", text="done\n", tool_meta=ToolMeta(tool_id="codex")))
        assert card.id == "term-1"
        assert card.text == ">>> ls\ndone\n"

    def test_settings_without_terminal_tool_keep_default(self, apply, session):
        apply(_msg("s", "final", "msg-1", settings=SessionSettings(mode="ui")))
        assert session.terminal_tool_id == "claude-code"

    def test_apps_deleted_notification(self, apply, session):
        card = apply(_msg("s", "final", "msg-1", apps_deleted=AppsDeleted(families=["mail"], count=1)))
        assert card.text == "Deleted 1 app(s): mail"
        assert session.apps == []

    def test_nothing_deleted(self, apply):
        card = apply(_msg("s", "final", "msg-1", apps_deleted=AppsDeleted(families=[], count=0)))
        assert card.text == "No apps to delete."

    def test_proposal_attached(self, apply, state):
        seed(state, id="card-1")
        card = apply(_msg("s", "final", "msg-1", app_proposal=AppProposal(card_id="card-1", proposal="An inbox app")))
        assert card.pending_proposal == "An inbox app"

    def test_build_complete_flips_source(self, apply, state):
        seed(state, id="card-1", enhance_status="loading")
        summary = ToolBuildSummary(tool_family="inbox_zero", tool_names=["a", "b"], description="Inbox")
        note = apply(
            _msg("b", "final", "msg-1", build_complete=BuildComplete(card_id="card-1", success=True, summary=summary))
        )
        assert note.id != "card-1"
        assert "inbox zero" in note.text
        assert state.get("card-1").enhance_status == "ready"

    def test_build_failure_leaves_source(self, apply, state):
        seed(state, id="card-1", enhance_status="loading")
        note = apply(_msg("b", "final", "msg-1", build_complete=BuildComplete(card_id="card-1", success=False, error="nope")))
        assert note.text == "✗ App build failed: nope"
        assert state.get("card-1").enhance_status == "loading"

    def test_build_for_missing_card_still_notifies(self, apply, state):
        note = apply(_msg("b", "final", "msg-1", build_complete=BuildComplete(card_id="gone", success=False)))
        assert note is not None
        assert len(state) == 1


class TestCardTypeRegistry:
    """Ordered matchers; first match wins."""

    def test_default_order(self):
        assert CardTypeRegistry.with_defaults().types() == ["terminal", "dynamic-ui"]

    def test_reregistering_moves_to_end(self):
        registry = CardTypeRegistry.with_defaults()
        registry.register("terminal", registry.is_terminal_message)
        assert registry.types() == ["dynamic-ui", "terminal"]

    def test_custom_matcher_resolves(self):
        registry = CardTypeRegistry.with_defaults()
        registry.register("chart", lambda msg: isinstance(msg.data, dict) and "series" in msg.data)
        msg = _msg("r", "final", "msg-1", data={"series": []})
        assert registry.resolve(msg) == "chart"
        assert registry.types()[-1] == "chart"
