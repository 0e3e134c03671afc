"""Tooling templates — plugin catalog and single tool run inspector."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardflow.signatures.catalog import ToolSignature

_PLUGIN_CATALOG = """export default function GeneratedUI({ data, onAction }) {
  const [query, setQuery] = useState("");
  const plugins = Array.isArray(data?.rows) ? data.rows : [];
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="text-sm font-semibold text-gray-100">Plugin Catalog</div>
      <div className="text-[11px] text-gray-500">{Number(data?.totalPlugins ?? plugins.length)} plugins</div>
      <div className="flex gap-1.5">
        <input value={query} onChange={(e) => setQuery(e.target.value)} className="flex-1 text-xs bg-gray-800 rounded px-2 py-1" />
        <button onClick={() => onAction("search_plugins", { query })} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Search</button>
      </div>
      {plugins.map((p, idx) => (
        <button key={idx} onClick={() => onAction("inspect_plugin", { pluginId: p?.pluginId })} className="w-full text-left bg-gray-800 rounded-md px-2.5 py-1.5 text-xs text-gray-200">
          {String(p?.pluginId ?? p?.name ?? "plugin")} ({Array.isArray(p?.tools) ? p.tools.length : 0} tools)
        </button>
      ))}
    </div>
  );
}"""

_TOOL_RUN = """export default function GeneratedUI({ data, onAction }) {
  const result = data?.result;
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="text-xs text-gray-400">Tool mode</div>
      <div className="text-sm font-semibold text-gray-100">{String(data?.toolName ?? "Tool run")}</div>
      <pre className="text-[11px] text-gray-300 bg-gray-800 rounded p-2 overflow-x-auto">{typeof result === "string" ? result : JSON.stringify(result, null, 2)}</pre>
      <button onClick={() => onAction("rerun", { toolName: data?.toolName })} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Run Again</button>
    </div>
  );
}"""


def template_code(signature: ToolSignature) -> str:
    if signature.signature_id == "plugin_catalog_list":
        return _PLUGIN_CATALOG
    return _TOOL_RUN
