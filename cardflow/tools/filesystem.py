"""Built-in filesystem tools — directory listings and path stats."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from langchain_core.tools import tool

PLUGIN_ID = "enso_fs"


def _entry_type(path: Path) -> str:
    if path.is_symlink():
        return "symlink"
    return "directory" if path.is_dir() else "file"


@tool
def enso_fs_list_directory(path: str = ".", show_hidden: bool = False) -> str:
    """List the entries of a directory. Returns name, type and size for each entry."""
    target = Path(path).expanduser()
    if not target.exists():
        return f"[ERROR] Path not found: {path}"
    if not target.is_dir():
        return f"[ERROR] Not a directory: {path}"

    items = []
    try:
        children = sorted(target.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()))
    except PermissionError:
        return f"[ERROR] Permission denied: {path}"

    for child in children:
        if not show_hidden and child.name.startswith("."):
            continue
        kind = _entry_type(child)
        items.append({
            "name": child.name,
            "type": kind,
            "path": str(child),
            "size": child.stat().st_size if kind == "file" else None,
        })

    return json.dumps({"path": str(target), "items": items, "total": len(items)})


@tool
def enso_fs_stat_path(path: str) -> str:
    """Return size, type and modification time for a single path."""
    target = Path(path).expanduser()
    if not target.exists():
        return f"[ERROR] Path not found: {path}"
    stat = target.stat()
    return json.dumps({
        "name": target.name,
        "path": str(target),
        "parent": str(target.parent),
        "type": _entry_type(target),
        "size": stat.st_size,
        "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
    })


TOOLS = [enso_fs_list_directory, enso_fs_stat_path]
