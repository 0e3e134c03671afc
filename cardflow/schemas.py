"""Wire protocol models — the contract between server and card clients.

Field names are snake_case in Python and camelCase on the wire
(``run_id`` ↔ ``runId``). ``ClientMessage`` is a discriminated union on
``type``; parse inbound frames with ``parse_client_message``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

ChannelMode = Literal["im", "ui", "full"]

OperationStage = Literal[
    "processing",
    "calling_tool",
    "generating_ui",
    "agent_fallback",
    "streaming",
    "complete",
    "cancelled",
    "error",
]

TERMINAL_STAGES: frozenset[str] = frozenset({"complete", "cancelled", "error"})

# Position in the stage machine; the three terminal stages share the last slot.
STAGE_ORDER: dict[str, int] = {
    "processing": 0,
    "calling_tool": 1,
    "generating_ui": 2,
    "agent_fallback": 3,
    "streaming": 4,
    "complete": 5,
    "cancelled": 5,
    "error": 5,
}


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Shared payloads
# ---------------------------------------------------------------------------


class OperationStatus(WireModel):
    """Transient status of a long-running, possibly cancellable sub-task."""

    operation_id: str
    stage: OperationStage
    label: str | None = None
    cancellable: bool = False
    message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES


class CardModeDetail(WireModel):
    interaction_mode: Literal["llm", "tool"]
    tool_family: str | None = None
    signature_id: str | None = None
    coverage_status: Literal["covered", "partial"] | None = None


class ToolMeta(WireModel):
    tool_id: str
    tool_session_id: str | None = None


class ToolRouting(WireModel):
    mode: Literal["direct_tool"] = "direct_tool"
    tool_id: str
    tool_session_id: str | None = None
    cwd: str | None = None


class ToolQuestionOption(WireModel):
    label: str
    description: str | None = None


class ToolQuestion(WireModel):
    """A blocking multiple-choice prompt raised by a session tool."""

    question: str
    options: list[ToolQuestionOption] = []


class AgentStep(WireModel):
    seq: int
    text: str


class ProjectInfo(WireModel):
    name: str
    path: str


class FamilySummary(WireModel):
    tool_family: str
    description: str


class SessionSettings(WireModel):
    mode: ChannelMode
    tool_families: list[FamilySummary] | None = None
    terminal_tool_id: str | None = None
    enso_project_path: str | None = None


class AppInfo(WireModel):
    tool_family: str
    description: str
    tool_count: int
    primary_tool_name: str
    built_in: bool | None = None
    codebase: bool | None = None


class BuildStep(WireModel):
    label: str
    status: Literal["passed", "failed"]


class ToolBuildSummary(WireModel):
    tool_family: str
    tool_names: list[str]
    description: str
    scenario: str = ""
    actions: list[str] = []
    steps: list[BuildStep] = []
    skill_generated: bool | None = None
    persisted: bool | None = None


class EnhanceResult(WireModel):
    data: Any = None
    generated_ui: str = Field(alias="generatedUI")
    card_mode: CardModeDetail
    build_summary: ToolBuildSummary | None = None


class EnhanceHint(WireModel):
    tool_family: str


class AppProposal(WireModel):
    card_id: str
    proposal: str


class AppsDeleted(WireModel):
    families: list[str]
    count: int


class AppSaved(WireModel):
    tool_family: str
    success: bool
    path: str | None = None
    error: str | None = None


class BuildComplete(WireModel):
    card_id: str
    success: bool
    summary: ToolBuildSummary | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Server → client
# ---------------------------------------------------------------------------


class ServerMessage(WireModel):
    """One event in the server stream.

    ``enhance_result`` distinguishes "absent" from an explicit ``null``
    (the "no enhancement available" reply); check ``has_enhance_result``.
    """

    id: str
    run_id: str
    session_key: str = "main"
    seq: int = 0
    state: Literal["delta", "final", "error"]
    text: str | None = None
    data: Any = None
    generated_ui: str | None = Field(default=None, alias="generatedUI")
    media_urls: list[str] | None = None
    tool_meta: ToolMeta | None = None
    card_type: str | None = None
    card_mode: CardModeDetail | None = None
    target_card_id: str | None = None
    projects: list[ProjectInfo] | None = None
    questions: list[ToolQuestion] | None = None
    operation: OperationStatus | None = None
    settings: SessionSettings | None = None
    steps: list[AgentStep] | None = None
    enhance_result: EnhanceResult | None = None
    enhance_hint: EnhanceHint | None = None
    app_proposal: AppProposal | None = None
    apps_deleted: AppsDeleted | None = None
    apps_list: list[AppInfo] | None = None
    app_saved: AppSaved | None = None
    build_complete: BuildComplete | None = None
    timestamp: int = 0

    @property
    def has_enhance_result(self) -> bool:
        return "enhance_result" in self.model_fields_set

    def to_wire(self) -> dict[str, Any]:
        payload = super().to_wire()
        if self.has_enhance_result and self.enhance_result is None:
            payload["enhanceResult"] = None
        return payload


def parse_server_message(raw: str | bytes | dict[str, Any]) -> ServerMessage:
    """Raises ``pydantic.ValidationError`` on malformed input."""
    if isinstance(raw, dict):
        return ServerMessage.model_validate(raw)
    return ServerMessage.model_validate_json(raw)


# ---------------------------------------------------------------------------
# Client → server
# ---------------------------------------------------------------------------


class UiActionPayload(WireModel):
    component_id: str
    action: str
    payload: Any = None


class ChatSend(WireModel):
    type: Literal["chat.send"] = "chat.send"
    text: str = ""
    media_urls: list[str] | None = None
    session_key: str | None = None
    routing: ToolRouting | None = None


class ChatHistory(WireModel):
    type: Literal["chat.history"] = "chat.history"
    session_key: str | None = None


class UiAction(WireModel):
    type: Literal["ui_action"] = "ui_action"
    ui_action: UiActionPayload


class ListProjects(WireModel):
    type: Literal["tools.list_projects"] = "tools.list_projects"


class CardAction(WireModel):
    type: Literal["card.action"] = "card.action"
    card_id: str
    card_action: str
    card_payload: Any = None
    mode: ChannelMode | None = None
    routing: ToolRouting | None = None


class CardEnhance(WireModel):
    type: Literal["card.enhance"] = "card.enhance"
    card_id: str
    card_text: str = ""
    suggested_family: str | None = None


class CardBuildApp(WireModel):
    type: Literal["card.build_app"] = "card.build_app"
    card_id: str
    card_text: str = ""
    build_app_definition: str = ""
    conversation_context: str | None = None


class CardProposeApp(WireModel):
    type: Literal["card.propose_app"] = "card.propose_app"
    card_id: str
    card_text: str = ""
    conversation_context: str | None = None


class DeleteAllApps(WireModel):
    type: Literal["card.delete_all_apps"] = "card.delete_all_apps"


class ListApps(WireModel):
    type: Literal["apps.list"] = "apps.list"


class RunApp(WireModel):
    type: Literal["apps.run"] = "apps.run"
    tool_family: str


class SaveAppToCodebase(WireModel):
    type: Literal["app.save_to_codebase"] = "app.save_to_codebase"
    tool_family: str


class RestartServer(WireModel):
    type: Literal["server.restart"] = "server.restart"


class SetMode(WireModel):
    type: Literal["settings.set_mode"] = "settings.set_mode"
    mode: ChannelMode


class CancelOperation(WireModel):
    type: Literal["operation.cancel"] = "operation.cancel"
    operation_id: str


ClientMessage = Annotated[
    Union[
        ChatSend,
        ChatHistory,
        UiAction,
        ListProjects,
        CardAction,
        CardEnhance,
        CardBuildApp,
        CardProposeApp,
        DeleteAllApps,
        ListApps,
        RunApp,
        SaveAppToCodebase,
        RestartServer,
        SetMode,
        CancelOperation,
    ],
    Field(discriminator="type"),
]

_client_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(raw: str | bytes | dict[str, Any]) -> ClientMessage:
    """Raises ``pydantic.ValidationError`` on malformed input or unknown ``type``."""
    if isinstance(raw, dict):
        return _client_adapter.validate_python(raw)
    return _client_adapter.validate_json(raw)
