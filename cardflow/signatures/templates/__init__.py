"""Template source lookup — deterministic presentation code per signature.

Each family module exposes a ``template_code(signature)`` function that
returns JSX source text. Nothing here renders or compiles the code; the
renderer lives outside this package.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from cardflow.signatures.templates import (
    alpharank,
    filesystem,
    general,
    media,
    planners,
    system,
    tooling,
    workspace,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from cardflow.signatures.catalog import ToolSignature

_family_templates: dict[str, Callable[[ToolSignature], str]] = {
    "alpharank": alpharank.template_code,
    "filesystem": filesystem.template_code,
    "code_workspace": workspace.template_code,
    "multimedia": media.template_code,
    "travel_planner": planners.travel_template_code,
    "meal_planner": planners.meal_template_code,
    "plugin_discovery": tooling.template_code,
    "tool_inspector": tooling.template_code,
    "general": general.template_code,
}


def template_code_for(signature: ToolSignature) -> str:
    """Return built-in template source for ``signature``.

    Auto-registered system families get the generic toolkit layout;
    anything else unknown falls back to the smart text card.
    """
    builder = _family_templates.get(signature.tool_family)
    if builder is not None:
        return builder(signature)
    if system.is_system_auto_signature(signature.signature_id):
        return system.template_code(signature)
    return general.template_code(signature)
