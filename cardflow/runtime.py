"""Runtime — bridges client messages to tools, the LLM and the signature registry.

One ``ClientSession`` per connection. Every inbound ``ClientMessage`` is
dispatched to a handler that answers with ``ServerMessage`` events through
the async ``send`` callable. Long-running work (chat replies, card actions)
runs as tracked operations that can be cancelled; enhance and build
requests run as background tasks whose replies address the card directly.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from cardflow.llm import AnthropicProposer, AnthropicResponder
from cardflow.operations import OperationTracker, new_operation_id
from cardflow.schemas import (
    AppInfo,
    AppProposal,
    AppSaved,
    AppsDeleted,
    BuildComplete,
    CancelOperation,
    CardAction,
    CardBuildApp,
    CardEnhance,
    CardModeDetail,
    CardProposeApp,
    ChatHistory,
    ChatSend,
    DeleteAllApps,
    EnhanceHint,
    EnhanceResult,
    FamilySummary,
    ListApps,
    ListProjects,
    OperationStatus,
    ProjectInfo,
    RestartServer,
    RunApp,
    SaveAppToCodebase,
    ServerMessage,
    SessionSettings,
    SetMode,
    ToolMeta,
    UiAction,
)
from cardflow.signatures.shapes import extract_structured_data

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine

    from cardflow.config import CardflowConfig
    from cardflow.llm import Proposer, Responder
    from cardflow.schemas import ClientMessage, OperationStage, ToolBuildSummary
    from cardflow.signatures.catalog import ToolFamilyCapability, ToolSignature
    from cardflow.signatures.registry import SignatureRegistry
    from cardflow.tools import ToolCatalog

logger = logging.getLogger(__name__)

GENERIC_ERROR_TEXT = "An error occurred processing your message."
NOT_RUNNING_TEXT = "Operation is no longer running."


@dataclass
class AppBuildRequest:
    card_id: str
    card_text: str
    definition: str
    conversation_context: str | None = None


class AppBuilder(Protocol):
    """Builds a new tool family and registers it with the registry and catalog."""

    async def build(
        self, request: AppBuildRequest, registry: SignatureRegistry, catalog: ToolCatalog
    ) -> ToolBuildSummary: ...


@dataclass
class CardContext:
    """What the server remembers about a tool-backed card."""

    tool_family: str
    signature_id: str
    tool_name: str | None = None
    params: dict[str, Any] = field(default_factory=dict)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _operation(
    operation_id: str, stage: OperationStage, label: str | None = None, cancellable: bool = False
) -> OperationStatus:
    return OperationStatus(operation_id=operation_id, stage=stage, label=label, cancellable=cancellable)


def _tool_mode(signature: ToolSignature) -> CardModeDetail:
    return CardModeDetail(
        interaction_mode="tool",
        tool_family=signature.tool_family,
        signature_id=signature.signature_id,
        coverage_status=signature.coverage_status,
    )


class ClientSession:
    def __init__(
        self,
        send: Callable[[ServerMessage], Awaitable[None]],
        *,
        config: CardflowConfig,
        registry: SignatureRegistry,
        catalog: ToolCatalog,
        responder: Responder | None = None,
        proposer: Proposer | None = None,
        builder: AppBuilder | None = None,
        session_key: str = "main",
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._send = send
        self.config = config
        self.registry = registry
        self.catalog = catalog
        self.responder = responder or AnthropicResponder(config.model)
        self.proposer = proposer or AnthropicProposer(config.model)
        self.builder = builder
        self.session_key = session_key
        self.clock = clock
        self.mode = config.mode
        self.operations = OperationTracker()
        self.contexts: dict[str, CardContext] = {}
        self.history: list[tuple[str, str]] = []
        self._seq = itertools.count(1)
        self._background: set[asyncio.Task] = set()

    # -----------------------------------------------------------------------
    # Plumbing
    # -----------------------------------------------------------------------

    def _message(self, run_id: str, state: str, **fields: Any) -> ServerMessage:
        return ServerMessage(
            id=str(uuid.uuid4()),
            run_id=run_id,
            session_key=self.session_key,
            seq=next(self._seq),
            state=state,
            timestamp=self.clock(),
            **fields,
        )

    async def _emit(self, run_id: str, state: str, **fields: Any) -> ServerMessage:
        msg = self._message(run_id, state, **fields)
        await self._send(msg)
        return msg

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _guard(
        self,
        operation_id: str,
        coro: Coroutine[Any, Any, Any],
        *,
        run_id: str | None = None,
        target_card_id: str | None = None,
    ) -> None:
        """Run an operation, reporting cancellation and failure as stages."""
        reply_run = run_id or operation_id
        try:
            await coro
        except asyncio.CancelledError:
            await self._emit(
                reply_run,
                "final",
                target_card_id=target_card_id,
                operation=_operation(operation_id, "cancelled", "Cancelled"),
            )
            raise
        except Exception as e:
            logger.error(f"Operation {operation_id} failed: {e}", exc_info=True)
            await self._emit(
                reply_run,
                "error",
                target_card_id=target_card_id,
                text=f"Operation failed: {e}",
                operation=_operation(operation_id, "error", "Failed"),
            )

    def _start(
        self,
        work: Callable[[str], Coroutine[Any, Any, Any]],
        *,
        run_id: str | None = None,
        target_card_id: str | None = None,
    ) -> str:
        """Start ``work(operation_id)`` as a cancellable operation."""
        operation_id = new_operation_id()
        self.operations.start(
            operation_id,
            self._guard(operation_id, work(operation_id), run_id=run_id, target_card_id=target_card_id),
        )
        return operation_id

    async def join(self) -> None:
        """Wait until every operation and background task has finished."""
        while True:
            pending = [t for t in (*self.operations.tasks(), *self._background) if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Cancel everything still running for this connection."""
        cancelled = self.operations.cancel_all()
        for task in list(self._background):
            task.cancel()
        if cancelled:
            logger.info(f"Session {self.session_key} closed with {cancelled} running operation(s)")

    # -----------------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------------

    async def greet(self) -> None:
        await self._send_settings()

    async def handle(self, msg: ClientMessage) -> None:
        """Handle one client message. Never raises."""
        try:
            await self._dispatch(msg)
        except Exception as e:
            logger.error(f"Error handling '{msg.type}': {e}", exc_info=True)
            await self._emit(str(uuid.uuid4()), "error", text=GENERIC_ERROR_TEXT)

    async def reject(self, reason: str) -> None:
        """Answer a frame that could not be parsed."""
        logger.warning(f"Rejected client frame: {reason}")
        await self._emit(str(uuid.uuid4()), "error", text=GENERIC_ERROR_TEXT)

    async def _dispatch(self, msg: ClientMessage) -> None:
        logger.debug(f"Client message: {msg.type}")
        match msg:
            case ChatSend():
                await self._handle_chat(msg.text, msg)
            case ChatHistory():
                # Cards are not persisted across reconnects.
                pass
            case UiAction():
                payload = json.dumps(msg.ui_action.payload, default=str)
                await self._handle_chat(f"[ui_action] {msg.ui_action.action} on {msg.ui_action.component_id}: {payload}", None)
            case CardAction():
                await self._handle_card_action(msg)
            case CardEnhance():
                self._spawn(self._handle_enhance(msg))
            case CardBuildApp():
                self._spawn(self._handle_build(msg))
            case CardProposeApp():
                self._spawn(self._handle_propose(msg))
            case DeleteAllApps():
                await self._handle_delete_apps()
            case ListApps():
                await self._emit(str(uuid.uuid4()), "final", apps_list=self.list_apps())
            case RunApp():
                await self._handle_run_app(msg.tool_family)
            case SaveAppToCodebase():
                await self._emit(
                    str(uuid.uuid4()),
                    "final",
                    app_saved=AppSaved(
                        tool_family=msg.tool_family,
                        success=False,
                        error="Saving apps to the codebase is not supported by this server",
                    ),
                )
            case RestartServer():
                await self._emit(str(uuid.uuid4()), "error", text="Server restart is not supported.")
            case SetMode():
                self.mode = msg.mode
                logger.info(f"Channel mode set to '{msg.mode}'")
                await self._send_settings()
            case ListProjects():
                await self._emit(str(uuid.uuid4()), "final", projects=self.list_projects())
            case CancelOperation():
                await self._handle_cancel(msg.operation_id)
            case _:
                raise ValueError(f"Unknown client message type: {msg.type}")

    # -----------------------------------------------------------------------
    # Settings, apps, projects
    # -----------------------------------------------------------------------

    def featured_families(self) -> list[FamilySummary]:
        names = self.config.featured_families or [
            c.tool_family for c in self.registry.capabilities() if c.fallback_tool_name
        ]
        summaries = []
        for name in names:
            capability = self.registry.capability_for(name)
            if capability is not None:
                summaries.append(FamilySummary(tool_family=name, description=capability.description))
        return summaries

    async def _send_settings(self) -> None:
        await self._emit(
            str(uuid.uuid4()),
            "final",
            settings=SessionSettings(
                mode=self.mode,
                tool_families=self.featured_families(),
                terminal_tool_id=self.config.terminal_tool_id,
            ),
        )

    def list_apps(self) -> list[AppInfo]:
        apps = []
        for capability in self.registry.capabilities():
            if not capability.prefix or not capability.fallback_tool_name:
                continue
            tool_count = len(self.catalog.names_with_prefix(capability.prefix)) or len(capability.action_suffixes)
            apps.append(
                AppInfo(
                    tool_family=capability.tool_family,
                    description=capability.description,
                    tool_count=tool_count,
                    primary_tool_name=capability.fallback_tool_name,
                    built_in=capability.built_in,
                    codebase=False,
                )
            )
        return apps

    def list_projects(self) -> list[ProjectInfo]:
        projects = []
        for root in self.config.project_roots:
            base = Path(root).expanduser()
            if not base.is_dir():
                logger.warning(f"Project root not found: {base}")
                continue
            for child in sorted(base.iterdir(), key=lambda p: p.name.lower()):
                if child.is_dir() and not child.name.startswith("."):
                    projects.append(ProjectInfo(name=child.name, path=str(child)))
        return projects

    async def _handle_delete_apps(self) -> None:
        families = [c.tool_family for c in self.registry.dynamic_capabilities()]
        for family in families:
            self.registry.unregister_family(family)
        self.contexts = {
            card_id: ctx for card_id, ctx in self.contexts.items() if ctx.tool_family not in families
        }
        logger.info(f"Deleted {len(families)} dynamic app(s)")
        await self._emit(
            str(uuid.uuid4()), "final", apps_deleted=AppsDeleted(families=families, count=len(families))
        )

    async def _handle_run_app(self, tool_family: str) -> None:
        run_id = str(uuid.uuid4())
        capability = self.registry.capability_for(tool_family)
        if capability is None or not capability.fallback_tool_name:
            await self._emit(run_id, "error", text=f"Unknown app '{tool_family}'.")
            return

        outcome = await self._run_family_tool(capability)
        if isinstance(outcome, str):
            await self._emit(run_id, "error", text=outcome)
            return

        signature, data, tool_name = outcome
        msg = await self._emit(
            run_id,
            "final",
            text=tool_family.replace("_", " ").title(),
            data=data,
            generated_ui=self.registry.get_template_code(signature),
            card_mode=_tool_mode(signature),
        )
        self.contexts[msg.id] = CardContext(signature.tool_family, signature.signature_id, tool_name)

    async def _run_family_tool(
        self, capability: ToolFamilyCapability
    ) -> tuple[ToolSignature, dict[str, Any], str] | str:
        """Run a family's fallback tool. Returns the classified result or an error text."""
        tool_name = capability.fallback_tool_name
        if not tool_name or not self.catalog.is_registered(tool_name):
            return f"No tool available for '{capability.tool_family}'."
        result = await self.catalog.execute_tool_direct(tool_name, {})
        if not result.success:
            return result.error or f"Tool '{tool_name}' failed."
        signature = self.registry.detect_by_tool_name(tool_name) or self.registry.default_signature(
            capability.tool_family
        )
        if signature is None:
            return f"No template registered for '{capability.tool_family}'."
        return signature, self.registry.normalize(signature, result.data), tool_name

    # -----------------------------------------------------------------------
    # Chat
    # -----------------------------------------------------------------------

    async def _handle_chat(self, text: str, msg: ChatSend | None) -> None:
        run_id = str(uuid.uuid4())
        routing = msg.routing if msg is not None else None
        if routing is not None and routing.tool_id == self.config.terminal_tool_id:
            await self._emit(
                run_id,
                "error",
                text="Terminal sessions are not available on this server.\n",
                tool_meta=ToolMeta(tool_id=routing.tool_id, tool_session_id=routing.tool_session_id),
            )
            return
        self._start(lambda op_id: self._run_chat(run_id, op_id, text), run_id=run_id)

    async def _run_chat(self, run_id: str, operation_id: str, text: str) -> None:
        # The first message of a run creates its card, so its id is the card id.
        first = await self._emit(
            run_id, "delta", text="", operation=_operation(operation_id, "processing", "Thinking", True)
        )

        parts: list[str] = []
        async for piece in self.responder(text, list(self.history)):
            parts.append(piece)
            await self._emit(
                run_id, "delta", text=piece, operation=_operation(operation_id, "streaming", "Responding", True)
            )

        reply = "".join(parts)
        self.history.extend([("user", text), ("assistant", reply)])
        await self._emit(run_id, "final", text=reply, card_mode=CardModeDetail(interaction_mode="llm"))
        await self._send_enhance_hint(first.id, reply)

    async def _send_enhance_hint(self, card_id: str, reply: str) -> None:
        data = extract_structured_data(reply)
        if data is None:
            return
        signature = self.registry.detect_by_data_shape(data)
        if signature is None:
            return
        await self._emit(
            str(uuid.uuid4()),
            "final",
            target_card_id=card_id,
            enhance_hint=EnhanceHint(tool_family=signature.tool_family),
        )

    # -----------------------------------------------------------------------
    # Card actions
    # -----------------------------------------------------------------------

    async def _handle_card_action(self, msg: CardAction) -> None:
        if self.mode == "im":
            await self._emit(
                str(uuid.uuid4()),
                "error",
                target_card_id=msg.card_id,
                text="Card actions are not available in IM mode.",
            )
            return

        ctx = self.contexts.get(msg.card_id)
        if ctx is None and msg.routing is not None:
            await self._emit(str(uuid.uuid4()), "error", target_card_id=msg.card_id, text="Card context not found")
            return

        tool_name = self._tool_for_action(ctx, msg.card_action) if ctx is not None else None
        if tool_name is None:
            self._start(lambda op_id: self._run_agent_fallback(msg, op_id), target_card_id=msg.card_id)
        else:
            self._start(lambda op_id: self._run_tool_action(msg, ctx, tool_name, op_id), target_card_id=msg.card_id)

    def _tool_for_action(self, ctx: CardContext, action: str) -> str | None:
        if action == "refresh":
            return ctx.tool_name if self.catalog.is_registered(ctx.tool_name) else None
        capability = self.registry.capability_for(ctx.tool_family)
        if capability is not None and capability.prefix:
            candidate = f"{capability.prefix}{action}"
            if self.catalog.is_registered(candidate):
                return candidate
        return action if self.catalog.is_registered(action) else None

    async def _run_tool_action(self, msg: CardAction, ctx: CardContext, tool_name: str, operation_id: str) -> None:
        card_id = msg.card_id
        params = ctx.params if msg.card_action == "refresh" else (
            msg.card_payload if isinstance(msg.card_payload, dict) else {}
        )

        await self._emit(
            operation_id,
            "delta",
            target_card_id=card_id,
            operation=_operation(operation_id, "calling_tool", f"Running {tool_name}", True),
        )
        result = await self.catalog.execute_tool_direct(tool_name, params)
        if not result.success:
            await self._emit(operation_id, "error", target_card_id=card_id, text=result.error)
            return

        await self._emit(
            operation_id,
            "delta",
            target_card_id=card_id,
            operation=_operation(operation_id, "generating_ui", "Preparing view"),
        )
        signature = self.registry.detect_by_tool_name(tool_name) or self.registry.get(
            ctx.tool_family, ctx.signature_id
        )
        if signature is None:
            await self._emit(operation_id, "final", target_card_id=card_id, data=result.data)
            return

        self.contexts[card_id] = CardContext(signature.tool_family, signature.signature_id, tool_name, dict(params))
        await self._emit(
            operation_id,
            "final",
            target_card_id=card_id,
            data=self.registry.normalize(signature, result.data),
            generated_ui=self.registry.get_template_code(signature),
            card_mode=_tool_mode(signature),
        )

    async def _run_agent_fallback(self, msg: CardAction, operation_id: str) -> None:
        await self._emit(
            operation_id,
            "delta",
            target_card_id=msg.card_id,
            operation=_operation(operation_id, "agent_fallback", "Asking the assistant", True),
        )
        prompt = f'The user pressed "{msg.card_action}" on a card.'
        if msg.card_payload is not None:
            prompt += f"\nPayload: {json.dumps(msg.card_payload, default=str)}"

        parts = [piece async for piece in self.responder(prompt, list(self.history))]
        await self._emit(operation_id, "final", target_card_id=msg.card_id, text="".join(parts))

    async def _handle_cancel(self, operation_id: str) -> None:
        if self.operations.cancel(operation_id):
            logger.info(f"Cancellation requested for operation {operation_id}")
            return
        logger.warning(f"Cancel requested for operation {operation_id}, which is not running")
        await self._emit(
            operation_id,
            "error",
            text=NOT_RUNNING_TEXT,
            operation=_operation(operation_id, "error", "Not running", False),
        )

    # -----------------------------------------------------------------------
    # Enhance / build / propose
    # -----------------------------------------------------------------------

    async def _handle_enhance(self, msg: CardEnhance) -> None:
        try:
            result = await self.build_enhancement(msg)
        except Exception as e:
            logger.error(f"Enhance failed for card {msg.card_id}: {e}", exc_info=True)
            result = None
        await self._emit(str(uuid.uuid4()), "final", target_card_id=msg.card_id, enhance_result=result)

    async def build_enhancement(self, msg: CardEnhance) -> EnhanceResult | None:
        """Suggested family first, then structured data found in the card text."""
        if msg.suggested_family:
            capability = self.registry.capability_for(msg.suggested_family)
            if capability is not None:
                outcome = await self._run_family_tool(capability)
                if not isinstance(outcome, str):
                    signature, data, tool_name = outcome
                    self.contexts[msg.card_id] = CardContext(signature.tool_family, signature.signature_id, tool_name)
                    return self._enhance_result(signature, data)
                logger.info(f"Suggested family '{msg.suggested_family}' unavailable: {outcome}")

        data = extract_structured_data(msg.card_text)
        if data is None:
            return None
        signature = self.registry.detect_by_data_shape(data)
        if signature is None:
            return None

        capability = self.registry.capability_for(signature.tool_family)
        self.contexts[msg.card_id] = CardContext(
            signature.tool_family,
            signature.signature_id,
            capability.fallback_tool_name if capability is not None else None,
        )
        return self._enhance_result(signature, self.registry.normalize(signature, data))

    def _enhance_result(
        self, signature: ToolSignature, data: dict[str, Any], build_summary: ToolBuildSummary | None = None
    ) -> EnhanceResult:
        return EnhanceResult(
            data=data,
            generated_ui=self.registry.get_template_code(signature),
            card_mode=_tool_mode(signature),
            build_summary=build_summary,
        )

    async def _handle_build(self, msg: CardBuildApp) -> None:
        run_id = str(uuid.uuid4())
        if self.builder is None:
            await self._emit(
                run_id,
                "final",
                build_complete=BuildComplete(card_id=msg.card_id, success=False, error="App builder is not configured"),
            )
            return

        request = AppBuildRequest(msg.card_id, msg.card_text, msg.build_app_definition, msg.conversation_context)
        logger.info(f"Building app for card {msg.card_id}")
        try:
            summary = await self.builder.build(request, self.registry, self.catalog)
        except Exception as e:
            logger.error(f"App build failed for card {msg.card_id}: {e}", exc_info=True)
            await self._emit(
                run_id, "final", build_complete=BuildComplete(card_id=msg.card_id, success=False, error=str(e))
            )
            return

        logger.info(f"Built app '{summary.tool_family}' ({len(summary.tool_names)} tools)")
        await self._emit(
            run_id, "final", build_complete=BuildComplete(card_id=msg.card_id, success=True, summary=summary)
        )

        capability = self.registry.capability_for(summary.tool_family)
        if capability is None:
            return
        outcome = await self._run_family_tool(capability)
        if isinstance(outcome, str):
            logger.info(f"Built app '{summary.tool_family}' has no initial view: {outcome}")
            return
        signature, data, tool_name = outcome
        self.contexts[msg.card_id] = CardContext(signature.tool_family, signature.signature_id, tool_name)
        await self._emit(
            str(uuid.uuid4()),
            "final",
            target_card_id=msg.card_id,
            enhance_result=self._enhance_result(signature, data, build_summary=summary),
        )

    async def _handle_propose(self, msg: CardProposeApp) -> None:
        try:
            proposal = await self.proposer(msg.card_text, msg.conversation_context or "")
        except Exception as e:
            logger.warning(f"App proposal failed for card {msg.card_id}: {e}")
            proposal = ""
        await self._emit(
            str(uuid.uuid4()), "final", app_proposal=AppProposal(card_id=msg.card_id, proposal=proposal)
        )
