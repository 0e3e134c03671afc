"""Tool signature registry — classify tool output into template families.

One ``SignatureRegistry`` is constructed per server process (see
``SignatureRegistry.with_builtins``) and injected wherever classification
is needed. Detection never raises: a miss returns ``None`` and callers
fall back to a generic template.

Detection paths:
    by tool name   — longest family prefix owns the name, then the most
                     specific signature suffix, then the family default;
                     unknown names are auto-registered from the tool catalog
    by data shape  — ordered structural predicates, then data hints
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from cardflow.signatures.catalog import (
    BUILTIN_CAPABILITIES,
    BUILTIN_FAMILIES,
    BUILTIN_SIGNATURES,
    GENERIC_WRAPPER_KEYS,
    DataHint,
    ToolFamilyCapability,
    ToolSignature,
)
from cardflow.signatures.normalize import normalize_data
from cardflow.signatures.shapes import hint_matches, match_shape
from cardflow.signatures.templates import template_code_for
from cardflow.signatures.templates.system import SYSTEM_AUTO_PREFIX

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cardflow.tools import ToolCatalog, ToolInfo

logger = logging.getLogger(__name__)


class UnknownSignatureError(KeyError):
    """Raised by ``require`` when a signature is not registered."""


def derive_prefix(plugin_id: str, tool_names: list[str]) -> str:
    """Compute the shared tool-name prefix of a plugin's tools.

    The result is never empty and always ends in ``_``; when no usable
    common prefix exists it falls back to ``plugin_id + "_"``.
    """
    fallback = f"{plugin_id}_"
    if not tool_names:
        return fallback

    if len(tool_names) == 1:
        last = tool_names[0].rfind("_")
        return tool_names[0][: last + 1] if last > 0 else fallback

    prefix = tool_names[0]
    for name in tool_names[1:]:
        while not name.startswith(prefix):
            prefix = prefix[:-1]
            if not prefix:
                return fallback

    if not prefix.endswith("_"):
        last = prefix.rfind("_")
        prefix = prefix[: last + 1] if last > 0 else fallback
    return prefix


def _suffix_matches(remainder: str, suffix: str) -> bool:
    return (
        remainder == suffix
        or remainder.endswith(f"_{suffix}")
        or remainder.startswith(f"{suffix}_")
    )


def _first_sentence(description: str) -> str:
    head = description.split(". ")[0] or description
    return head.rstrip(".")


def _format_params(schema: dict[str, Any]) -> str:
    """Render a JSON schema as ``Payload: { a: string, b?: number }``."""
    properties = schema.get("properties") or {}
    if not properties:
        return "No payload needed."
    required = set(schema.get("required") or [])
    fields = []
    for key, prop in properties.items():
        kind = prop.get("type", "unknown") if isinstance(prop, dict) else "unknown"
        fields.append(f"{key}{'' if key in required else '?'}: {kind}")
    return f"Payload: {{ {', '.join(fields)} }}"


class SignatureRegistry:
    """Signatures, data hints, family capabilities and generated template code."""

    def __init__(self, catalog: ToolCatalog | None = None) -> None:
        self.catalog = catalog
        self._signatures: dict[tuple[str, str], ToolSignature] = {}
        self._hints: dict[tuple[str, str], DataHint] = {}
        self._capabilities: dict[str, ToolFamilyCapability] = {}
        self._template_code: dict[str, str] = {}

    @classmethod
    def with_builtins(cls, catalog: ToolCatalog | None = None) -> SignatureRegistry:
        registry = cls(catalog=catalog)
        for capability in BUILTIN_CAPABILITIES:
            registry.register_capability(capability)
        for signature in BUILTIN_SIGNATURES:
            registry.register(signature)
        return registry

    # -----------------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------------

    def register(self, signature: ToolSignature) -> ToolSignature:
        """Insert or overwrite the signature keyed by (family, signature id)."""
        self._signatures[signature.key] = signature
        logger.debug(f"Registered signature {signature.tool_family}/{signature.signature_id}")
        return signature

    def unregister(self, tool_family: str, signature_id: str) -> bool:
        self._hints.pop((tool_family, signature_id), None)
        self._template_code.pop(signature_id, None)
        return self._signatures.pop((tool_family, signature_id), None) is not None

    def register_data_hint(
        self, tool_family: str, signature_id: str, required_keys: Iterable[str]
    ) -> DataHint:
        """Insert or overwrite a data hint.

        Generic wrapper keys are dropped: every tool output carries them,
        so they would make the hint match payloads from sibling tools.
        """
        keys = tuple(k for k in dict.fromkeys(required_keys) if k not in GENERIC_WRAPPER_KEYS)
        hint = DataHint(tool_family=tool_family, signature_id=signature_id, required_keys=keys)
        self._hints[(tool_family, signature_id)] = hint
        return hint

    def unregister_data_hints(self, tool_family: str) -> int:
        doomed = [key for key in self._hints if key[0] == tool_family]
        for key in doomed:
            del self._hints[key]
        return len(doomed)

    def register_capability(self, capability: ToolFamilyCapability) -> bool:
        """Add a family capability. No-op if the family already exists."""
        if capability.tool_family in self._capabilities:
            return False
        self._capabilities[capability.tool_family] = capability
        if not capability.built_in:
            logger.info(f"Registered tool family '{capability.tool_family}' (prefix={capability.prefix})")
        return True

    def register_template_code(self, signature_id: str, code: str) -> None:
        self._template_code[signature_id] = code

    def unregister_family(self, tool_family: str) -> bool:
        """Remove a dynamic family with all of its signatures and hints."""
        if tool_family in BUILTIN_FAMILIES:
            raise ValueError(f"Cannot unregister built-in family '{tool_family}'")
        for family, signature_id in [k for k in self._signatures if k[0] == tool_family]:
            self.unregister(family, signature_id)
        self.unregister_data_hints(tool_family)
        removed = self._capabilities.pop(tool_family, None) is not None
        if removed:
            logger.info(f"Removed tool family '{tool_family}'")
        return removed

    # -----------------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------------

    def get(self, tool_family: str, signature_id: str) -> ToolSignature | None:
        return self._signatures.get((tool_family, signature_id))

    def require(self, tool_family: str, signature_id: str) -> ToolSignature:
        signature = self.get(tool_family, signature_id)
        if signature is None:
            raise UnknownSignatureError(
                f"Unknown signature '{tool_family}/{signature_id}'. "
                f"Available: {sorted(f'{f}/{s}' for f, s in self._signatures)}"
            )
        return signature

    def signatures(self) -> list[ToolSignature]:
        return list(self._signatures.values())

    def data_hints(self) -> list[DataHint]:
        return list(self._hints.values())

    def capability_for(self, tool_family: str) -> ToolFamilyCapability | None:
        return self._capabilities.get(tool_family)

    def capabilities(self) -> list[ToolFamilyCapability]:
        return list(self._capabilities.values())

    def dynamic_capabilities(self) -> list[ToolFamilyCapability]:
        return [c for c in self._capabilities.values() if c.tool_family not in BUILTIN_FAMILIES]

    def default_signature(self, tool_family: str) -> ToolSignature | None:
        capability = self._capabilities.get(tool_family)
        if capability is None:
            return None
        return self.get(tool_family, capability.signature_id)

    def family_for_tool(self, tool_name: str) -> ToolFamilyCapability | None:
        """Family whose prefix is the longest match for ``tool_name``."""
        best: ToolFamilyCapability | None = None
        for capability in self._capabilities.values():
            prefix = capability.prefix
            if not prefix or not tool_name.startswith(prefix):
                continue
            if best is None or len(prefix) > len(best.prefix or ""):
                best = capability
        return best

    # -----------------------------------------------------------------------
    # Detection
    # -----------------------------------------------------------------------

    def detect_by_tool_name(self, tool_name: str | None) -> ToolSignature | None:
        if not tool_name:
            return None

        capability = self.family_for_tool(tool_name)
        if capability is None:
            return self._auto_register(tool_name)

        remainder = tool_name[len(capability.prefix or ""):]
        best: ToolSignature | None = None
        best_len = -1
        for signature in self._signatures.values():
            if signature.tool_family != capability.tool_family:
                continue
            for suffix in signature.tool_suffixes:
                if _suffix_matches(remainder, suffix) and len(suffix) > best_len:
                    best, best_len = signature, len(suffix)
        return best or self.default_signature(capability.tool_family)

    def _auto_register(self, tool_name: str) -> ToolSignature | None:
        """Register a ``system_<plugin>`` family for a catalog tool nobody claims."""
        if self.catalog is None:
            return None
        plugin_id = self.catalog.plugin_for(tool_name)
        if plugin_id is None:
            return None

        names = self.catalog.names_for(plugin_id)
        prefix = derive_prefix(plugin_id, names)
        actions = {"refresh"} | {n[len(prefix):] for n in names if n.startswith(prefix) and len(n) > len(prefix)}
        tool_family = f"system_{plugin_id}"
        signature_id = f"{SYSTEM_AUTO_PREFIX}{plugin_id}"

        self.register_capability(
            ToolFamilyCapability(
                tool_family=tool_family,
                prefix=prefix,
                fallback_tool_name=names[0] if names else None,
                action_suffixes=tuple(sorted(actions - {"refresh"})),
                signature_id=signature_id,
                description=f"Tools provided by the {plugin_id.replace('_', ' ')} plugin",
                built_in=False,
            )
        )
        signature = self.register(
            ToolSignature(
                tool_family=tool_family,
                signature_id=signature_id,
                template_id="system_toolkit",
                supported_actions=frozenset(actions),
                coverage_status="partial",
            )
        )
        logger.info(
            f"Auto-registered family '{tool_family}' for tool '{tool_name}' "
            f"(prefix={prefix}, actions={len(actions)})"
        )
        return signature

    def detect_by_data_shape(self, data: Any) -> ToolSignature | None:
        rule = match_shape(data)
        if rule is not None:
            signature = self.get(rule.tool_family, rule.signature_id)
            if signature is not None:
                return signature

        for hint in self._hints.values():
            if hint_matches(hint.required_keys, data):
                signature = self.get(hint.tool_family, hint.signature_id)
                if signature is not None:
                    return signature
        return None

    def matches_data_hint(self, tool_family: str, signature_id: str, data: Any) -> bool:
        hint = self._hints.get((tool_family, signature_id))
        return hint is not None and hint_matches(hint.required_keys, data)

    # -----------------------------------------------------------------------
    # Templates & actions
    # -----------------------------------------------------------------------

    @staticmethod
    def is_action_covered(signature: ToolSignature, action: str) -> bool:
        return action in signature.supported_actions

    @staticmethod
    def normalize(signature: ToolSignature, raw: Any) -> dict[str, Any]:
        return normalize_data(signature, raw)

    def get_template_code(self, signature: ToolSignature) -> str:
        """Deterministic presentation source; generated code wins over built-ins."""
        generated = self._template_code.get(signature.signature_id)
        if generated is not None:
            return generated
        return template_code_for(signature)

    def prefix_for_tool(self, tool_name: str) -> str | None:
        capability = self.family_for_tool(tool_name)
        if capability is not None:
            return capability.prefix
        if self.catalog is None:
            return None
        plugin_id = self.catalog.plugin_for(tool_name)
        if plugin_id is None:
            return None
        return derive_prefix(plugin_id, self.catalog.names_for(plugin_id))

    def get_action_descriptions(self, tool_name: str) -> str | None:
        """Prompt text listing the actions a generated UI may call for this tool."""
        if self.catalog is None:
            return None
        prefix = self.prefix_for_tool(tool_name)
        if prefix is None:
            return None
        tools: list[ToolInfo] = self.catalog.resolve_prefix(prefix)
        if not tools:
            return None

        lines = ['- "refresh" — Re-fetch the current data from the server. No payload needed.']
        for info in tools:
            action = info.name[len(prefix):] if info.name.startswith(prefix) else info.name
            lines.append(f'- "{action}" — {_first_sentence(info.description)}. {_format_params(info.parameters)}')

        text = "AVAILABLE TOOL ACTIONS — use these EXACT names with onAction():\n" + "\n".join(lines)
        if any("account_name" in (info.parameters.get("properties") or {}) for info in tools):
            text += (
                "\n- For actions requiring account_name, read it from the data prop: "
                "data.account_name, data.accountName, data.account, or data.name."
            )
        return text
