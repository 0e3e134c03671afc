"""Filesystem templates — directory browser and path details."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardflow.signatures.catalog import ToolSignature

_BROWSER = """export default function GeneratedUI({ data, onAction }) {
  const [filter, setFilter] = useState("");
  const rows = Array.isArray(data?.rows) ? data.rows : [];
  const visible = rows.filter((r) => String(r?.name ?? "").toLowerCase().includes(filter.toLowerCase()));
  const path = String(data?.path ?? ".");
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="flex items-center justify-between">
        <div>
          <div className="text-sm font-semibold text-gray-100">File Browser</div>
          <div className="text-[11px] text-gray-500">{path} • {Number(data?.total ?? rows.length)} entries</div>
        </div>
        <button onClick={() => onAction("refresh", {})} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Refresh</button>
      </div>
      <input value={filter} onChange={(e) => setFilter(e.target.value)} placeholder="Filter" className="w-full text-xs bg-gray-800 rounded px-2 py-1" />
      <div className="space-y-1 max-h-80 overflow-y-auto">
        {visible.map((row, idx) => {
          const isDir = row?.type === "directory" || row?.type === "dir";
          const target = row?.path ?? (path.replace(/\\/$/, "") + "/" + row?.name);
          return (
            <button
              key={String(row?.name) + idx}
              onClick={() => onAction(isDir ? "list_directory" : "stat_path", { path: target })}
              className="w-full text-left bg-gray-800 rounded-md px-2.5 py-1.5 text-xs text-gray-200"
            >
              {isDir ? "📁" : "📄"} {String(row?.name)}
            </button>
          );
        })}
      </div>
    </div>
  );
}"""

_DETAILS = """export default function GeneratedUI({ data, onAction }) {
  const fields = Object.entries(data ?? {}).filter(([k, v]) => k !== "rows" && typeof v !== "object");
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="text-sm font-semibold text-gray-100">{String(data?.name ?? data?.path ?? "Path details")}</div>
      {fields.map(([k, v]) => (
        <div key={k} className="flex justify-between text-xs"><span className="text-gray-400">{k}</span><span className="text-gray-200">{String(v)}</span></div>
      ))}
      <button onClick={() => onAction("list_directory", { path: data?.parent ?? "." })} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Open Folder</button>
    </div>
  );
}"""


def template_code(signature: ToolSignature) -> str:
    if signature.signature_id == "file_details":
        return _DETAILS
    return _BROWSER
