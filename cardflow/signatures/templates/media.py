"""Multimedia template."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardflow.signatures.catalog import ToolSignature

_GALLERY = """export default function GeneratedUI({ data, onAction }) {
  const [kind, setKind] = useState("all");
  const media = Array.isArray(data?.rows) ? data.rows : [];
  const visible = kind === "all" ? media : media.filter((m) => (m?.mediaType ?? m?.type) === kind);
  return (
    <div className="bg-gray-900 rounded-xl p-3 border border-gray-700 space-y-2">
      <div className="flex items-center justify-between">
        <div>
          <div className="text-sm font-semibold text-gray-100">Media Library Explorer</div>
          <div className="text-[11px] text-gray-500">{Number(data?.totalMedia ?? media.length)} files</div>
        </div>
        <button onClick={() => onAction("refresh", {})} className="px-2.5 py-1 text-xs rounded-full bg-gray-700">Refresh</button>
      </div>
      <div className="flex gap-1.5">
        {["all", "image", "video", "audio"].map((k) => (
          <button key={k} onClick={() => setKind(k)} className="px-2 py-0.5 text-[11px] rounded-md border">{k}</button>
        ))}
      </div>
      <div className="grid grid-cols-3 gap-1.5">
        {visible.map((m, idx) => (
          <button key={idx} onClick={() => onAction("inspect_file", { path: m?.path })} className="bg-gray-800 rounded-md p-1.5 text-[11px] text-gray-300 truncate">
            {String(m?.name ?? m?.path ?? "item")}
          </button>
        ))}
      </div>
    </div>
  );
}"""


def template_code(signature: ToolSignature) -> str:
    return _GALLERY
