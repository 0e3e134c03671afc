"""Tool catalog — plugin-keyed lookup for LangChain tools.

Plugins register a factory that yields one or more ``BaseTool`` objects
together with the tool names they own. The signature registry consults
the catalog to auto-register unknown tool families, and the session
handler executes tools through it directly (no agent loop, no LLM).

A tool signals failure by returning text that starts with ``[ERROR]``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from langchain_core.tools import BaseTool

logger = logging.getLogger(__name__)

ERROR_MARKER = "[ERROR]"

ToolFactory = Callable[[dict[str, Any]], "BaseTool | list[BaseTool] | None"]


@dataclass
class PluginEntry:
    plugin_id: str
    names: list[str]
    factory: ToolFactory


@dataclass
class ToolInfo:
    """Name, description and JSON-schema parameters of one resolved tool."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class NativeToolResult:
    """Outcome of a direct tool execution."""

    success: bool
    data: Any = None
    raw_text: str | None = None
    error: str | None = None


def _extract_text(content: Any) -> str:
    """Join text blocks — tools can return a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                if block.get("type", "text") == "text" and block.get("text"):
                    parts.append(block["text"])
            elif isinstance(block, str):
                parts.append(block)
        return "\n".join(parts)
    if isinstance(content, dict):
        return json.dumps(content)
    return str(content)


def parse_tool_output(raw: str) -> Any:
    """Parse tool text as JSON, wrapping non-JSON text so templates still get an object."""
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {"rawOutput": raw, "type": "text_result"}


class ToolCatalog:
    """Registry of plugin entries. One instance per server process."""

    def __init__(self) -> None:
        self._plugins: list[PluginEntry] = []

    def register_plugin(self, plugin_id: str, names: list[str], factory: ToolFactory) -> None:
        self._plugins = [p for p in self._plugins if p.plugin_id != plugin_id]
        self._plugins.append(PluginEntry(plugin_id=plugin_id, names=list(names), factory=factory))
        logger.info(f"Registered plugin '{plugin_id}' ({len(names)} tools)")

    def register_tools(self, plugin_id: str, tools: list[BaseTool]) -> None:
        """Register already-built tools under ``plugin_id``."""
        self.register_plugin(plugin_id, [t.name for t in tools], lambda _ctx: list(tools))

    def unregister_plugin(self, plugin_id: str) -> bool:
        before = len(self._plugins)
        self._plugins = [p for p in self._plugins if p.plugin_id != plugin_id]
        return len(self._plugins) != before

    def plugins(self) -> list[PluginEntry]:
        return list(self._plugins)

    def plugin_for(self, tool_name: str) -> str | None:
        """Return the plugin id owning ``tool_name``."""
        for entry in self._plugins:
            if tool_name in entry.names:
                return entry.plugin_id
        return None

    def names_for(self, plugin_id: str) -> list[str]:
        names: list[str] = []
        for entry in self._plugins:
            if entry.plugin_id == plugin_id:
                names.extend(entry.names)
        return names

    def names_with_prefix(self, prefix: str) -> list[str]:
        return [n for entry in self._plugins for n in entry.names if n.startswith(prefix)]

    def is_registered(self, tool_name: str | None) -> bool:
        return bool(tool_name) and self.plugin_for(tool_name) is not None

    # -----------------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------------

    def _build(self, entry: PluginEntry) -> list[BaseTool]:
        try:
            resolved = entry.factory({})
        except Exception as e:
            logger.warning(f"Failed to resolve tools from plugin '{entry.plugin_id}': {e}")
            return []
        if resolved is None:
            return []
        return resolved if isinstance(resolved, list) else [resolved]

    def resolve(self, tool_name: str) -> BaseTool | None:
        for entry in self._plugins:
            if tool_name not in entry.names:
                continue
            for tool in self._build(entry):
                if getattr(tool, "name", None) == tool_name:
                    return tool
        return None

    def resolve_prefix(self, prefix: str) -> list[ToolInfo]:
        """Metadata for every tool whose name starts with ``prefix``."""
        results: list[ToolInfo] = []
        seen: set[str] = set()
        for entry in self._plugins:
            if not any(n.startswith(prefix) for n in entry.names):
                continue
            for tool in self._build(entry):
                name = getattr(tool, "name", "")
                if not name.startswith(prefix) or name in seen:
                    continue
                seen.add(name)
                results.append(
                    ToolInfo(
                        name=name,
                        description=tool.description or "",
                        parameters=tool.get_input_schema().model_json_schema(),
                    )
                )
        return results

    async def execute_tool_direct(self, tool_name: str, params: dict[str, Any]) -> NativeToolResult:
        """Execute a registered tool, bypassing any agent loop."""
        tool = self.resolve(tool_name)
        if tool is None:
            return NativeToolResult(success=False, error=f'Tool "{tool_name}" not found in registry')

        try:
            output = await tool.ainvoke(params)
        except Exception as e:
            logger.error(f"Tool '{tool_name}' raised: {e}", exc_info=True)
            return NativeToolResult(success=False, error=str(e))

        raw_text = _extract_text(output)
        if raw_text.startswith(ERROR_MARKER):
            return NativeToolResult(success=False, raw_text=raw_text, error=raw_text)
        return NativeToolResult(success=True, data=parse_tool_output(raw_text), raw_text=raw_text)


def default_catalog() -> ToolCatalog:
    """Catalog pre-populated with the built-in plugins."""
    from cardflow.tools import filesystem

    catalog = ToolCatalog()
    catalog.register_tools(filesystem.PLUGIN_ID, filesystem.TOOLS)
    return catalog
