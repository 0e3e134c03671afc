"""Code workspace template."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardflow.signatures.catalog import ToolSignature

_WORKSPACE = """export default function GeneratedUI({ data, onAction }) {
  const repos = Array.isArray(data?.rows) ? data.rows : [];
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="flex items-center justify-between">
        <div>
          <div className="text-sm font-semibold text-gray-100">Workspace Studio</div>
          <div className="text-[11px] text-gray-500">{Number(data?.totalRepos ?? repos.length)} repositories</div>
        </div>
        <div className="flex gap-1.5">
          <button onClick={() => onAction("refresh", {})} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Refresh</button>
          <button onClick={() => onAction("detect_dev_tools", {})} className="px-2.5 py-1 text-xs rounded-full bg-indigo-600/30">Dev Tools</button>
        </div>
      </div>
      {repos.map((repo, idx) => (
        <button key={idx} onClick={() => onAction("project_overview", { path: repo?.path })} className="w-full text-left bg-gray-800 rounded-md px-2.5 py-1.5">
          <div className="text-xs text-gray-100">{String(repo?.name ?? repo?.path ?? "repo")}</div>
          <div className="text-[11px] text-gray-500">{String(repo?.language ?? "")} {String(repo?.branch ?? "")}</div>
        </button>
      ))}
    </div>
  );
}"""


def template_code(signature: ToolSignature) -> str:
    return _WORKSPACE
