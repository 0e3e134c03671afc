"""Generic toolkit template for auto-registered plugin families."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardflow.signatures.catalog import ToolSignature

SYSTEM_AUTO_PREFIX = "system_auto_"

_TOOLKIT = """export default function GeneratedUI({ data, onAction }) {
  const title = __TITLE__;
  const actions = __ACTIONS__;
  const rows = Array.isArray(data?.rows) ? data.rows : [];
  const label = (row, idx) => {
    if (!row || typeof row !== "object") return "Row " + (idx + 1);
    return String(row.name ?? row.title ?? row.id ?? row.path ?? row.key ?? ("Row " + (idx + 1)));
  };
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="text-xs text-gray-400">System Toolkit</div>
      <div className="flex items-center justify-between">
        <div className="text-sm font-semibold text-gray-100 capitalize">{title}</div>
        <button onClick={() => onAction("refresh", {})} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Refresh</button>
      </div>
      <div className="flex flex-wrap gap-1.5">
        {actions.map((a) => (
          <button key={a} onClick={() => onAction(a, {})} className="px-2 py-0.5 text-[11px] rounded-md border">{a.replace(/_/g, " ")}</button>
        ))}
      </div>
      {rows.map((row, idx) => (
        <div key={idx} className="bg-gray-800 rounded-md px-2.5 py-1.5 text-xs text-gray-200">{label(row, idx)}</div>
      ))}
    </div>
  );
}"""


def is_system_auto_signature(signature_id: str) -> bool:
    return signature_id.startswith(SYSTEM_AUTO_PREFIX)


def template_code(signature: ToolSignature) -> str:
    title = signature.tool_family.removeprefix("system_").replace("_", " ")
    actions = sorted(a for a in signature.supported_actions if a != "refresh")
    return (
        _TOOLKIT
        .replace("__TITLE__", json.dumps(title))
        .replace("__ACTIONS__", json.dumps(actions))
    )
