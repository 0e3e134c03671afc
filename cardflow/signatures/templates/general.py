"""Smart text card — fallback for payloads no family claims."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardflow.signatures.catalog import ToolSignature

_SMART_TEXT = """export default function GeneratedUI({ data, onAction }) {
  const rows = Array.isArray(data?.rows) ? data.rows : [];
  const scalars = Object.entries(data ?? {}).filter(([k, v]) => k !== "rows" && (typeof v === "string" || typeof v === "number"));
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      {scalars.map(([k, v]) => (
        <div key={k} className="flex justify-between text-xs"><span className="text-gray-400">{k}</span><span className="text-gray-100">{String(v)}</span></div>
      ))}
      {rows.length > 0 && (
        <ul className="space-y-1">
          {rows.map((row, idx) => <li key={idx} className="text-xs text-gray-300">{typeof row === "object" ? JSON.stringify(row) : String(row)}</li>)}
        </ul>
      )}
      <button onClick={() => onAction("refresh", {})} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Refresh</button>
    </div>
  );
}"""


def template_code(signature: ToolSignature) -> str:
    return _SMART_TEXT
