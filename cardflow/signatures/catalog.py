"""Tool family catalog — hardcoded signature and family definitions.

The only place where built-in tool families, their name prefixes and
their template signatures are defined. Runtime-discovered families are
added to a ``SignatureRegistry`` instance, never to these constants.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

CoverageStatus = Literal["covered", "partial"]


@dataclass(frozen=True)
class ToolSignature:
    """Classification record pairing a tool family with one template variant."""

    tool_family: str
    signature_id: str
    template_id: str
    supported_actions: frozenset[str] = frozenset({"refresh"})
    coverage_status: CoverageStatus = "covered"
    tool_suffixes: tuple[str, ...] = ()  # tool-name remainders this variant claims
    row_aliases: tuple[str, ...] = ()    # preferred keys holding the row collection
    summary_field: str | None = None     # scalar derived from the row count

    @property
    def key(self) -> tuple[str, str]:
        return (self.tool_family, self.signature_id)


@dataclass(frozen=True)
class ToolFamilyCapability:
    """A tool family the assistant can enhance cards into."""

    tool_family: str
    prefix: str | None
    fallback_tool_name: str | None
    action_suffixes: tuple[str, ...]
    signature_id: str
    description: str
    built_in: bool = True


@dataclass(frozen=True)
class DataHint:
    """Key fingerprint confirming a payload belongs to a signature."""

    tool_family: str
    signature_id: str
    required_keys: tuple[str, ...] = field(default_factory=tuple)


# Keys every tool output wrapper carries; they never discriminate between tools.
GENERIC_WRAPPER_KEYS: frozenset[str] = frozenset({"tool"})


# ---------------------------------------------------------------------------
# Built-in families
# ---------------------------------------------------------------------------

BUILTIN_CAPABILITIES: tuple[ToolFamilyCapability, ...] = (
    ToolFamilyCapability(
        tool_family="alpharank",
        prefix="alpharank_",
        fallback_tool_name="alpharank_latest_predictions",
        action_suffixes=("latest_predictions", "market_regime", "daily_routine", "portfolio_checkin", "ticker_detail"),
        signature_id="ranked_predictions_table",
        description="Stock market analysis: ranked predictions, market regime, daily pipeline, portfolio health",
    ),
    ToolFamilyCapability(
        tool_family="filesystem",
        prefix="enso_fs_",
        fallback_tool_name="enso_fs_list_directory",
        action_suffixes=("list_directory", "read_text_file", "stat_path", "search_paths"),
        signature_id="directory_listing",
        description="Files and directories: listing folder contents, reading files, file stats, searching paths",
    ),
    ToolFamilyCapability(
        tool_family="code_workspace",
        prefix="enso_ws_",
        fallback_tool_name="enso_ws_list_repos",
        action_suffixes=("list_repos", "detect_dev_tools", "project_overview"),
        signature_id="workspace_inventory",
        description="Software projects and repositories: listing repos, project structure, dev tools",
    ),
    ToolFamilyCapability(
        tool_family="multimedia",
        prefix="enso_media_",
        fallback_tool_name="enso_media_scan_library",
        action_suffixes=("scan_library", "inspect_file", "group_by_type"),
        signature_id="media_gallery",
        description="Photos, videos, and media files: scanning libraries, inspecting metadata, grouping by type",
    ),
    ToolFamilyCapability(
        tool_family="travel_planner",
        prefix="enso_travel_",
        fallback_tool_name="enso_travel_plan_trip",
        action_suffixes=("plan_trip", "optimize_day", "budget_breakdown"),
        signature_id="itinerary_board",
        description="Travel planning: trip itineraries, day-by-day plans, activities, budget breakdowns",
    ),
    ToolFamilyCapability(
        tool_family="meal_planner",
        prefix="enso_meal_",
        fallback_tool_name="enso_meal_plan_week",
        action_suffixes=("plan_week", "grocery_list", "swap_meal"),
        signature_id="weekly_meal_plan",
        description="Meal planning: weekly plans, dietary preferences, grocery lists, recipe suggestions",
    ),
    ToolFamilyCapability(
        tool_family="plugin_discovery",
        prefix="enso_plugins_",
        fallback_tool_name="enso_plugins_list",
        action_suffixes=("list", "search_plugins", "inspect_plugin"),
        signature_id="plugin_catalog_list",
        description="Installed plugins and the tools they expose",
    ),
    ToolFamilyCapability(
        tool_family="tool_inspector",
        prefix="enso_tool_",
        fallback_tool_name=None,
        action_suffixes=("rerun", "inspect_result"),
        signature_id="tool_run_summary",
        description="Single tool invocations and their raw results",
    ),
    ToolFamilyCapability(
        tool_family="general",
        prefix=None,
        fallback_tool_name=None,
        action_suffixes=(),
        signature_id="smart_text_card",
        description="Free-form assistant answers with light structure",
    ),
)

BUILTIN_FAMILIES: frozenset[str] = frozenset(c.tool_family for c in BUILTIN_CAPABILITIES)


BUILTIN_SIGNATURES: tuple[ToolSignature, ...] = (
    # alpharank
    ToolSignature(
        tool_family="alpharank",
        signature_id="ranked_predictions_table",
        template_id="alpharank_predictions",
        supported_actions=frozenset({"refresh", "latest_predictions", "predictions", "market_regime", "daily_routine", "ticker_detail"}),
        tool_suffixes=("predictions", "latest_predictions"),
        row_aliases=("picks", "predictions"),
        summary_field="totalStocksScanned",
    ),
    ToolSignature(
        tool_family="alpharank",
        signature_id="market_regime_snapshot",
        template_id="alpharank_regime",
        supported_actions=frozenset({"refresh", "market_regime", "latest_predictions"}),
        tool_suffixes=("market_regime",),
        row_aliases=("signals", "indicators"),
    ),
    ToolSignature(
        tool_family="alpharank",
        signature_id="portfolio_health",
        template_id="alpharank_portfolio",
        supported_actions=frozenset({"refresh", "portfolio_checkin", "ticker_detail"}),
        tool_suffixes=("portfolio_checkin", "portfolio"),
        row_aliases=("positions", "holdings"),
        summary_field="totalPositions",
    ),
    ToolSignature(
        tool_family="alpharank",
        signature_id="routine_execution_report",
        template_id="alpharank_routine",
        supported_actions=frozenset({"refresh", "daily_routine", "latest_predictions"}),
        tool_suffixes=("daily_routine",),
        row_aliases=("steps", "stages"),
    ),
    ToolSignature(
        tool_family="alpharank",
        signature_id="ticker_detail",
        template_id="alpharank_ticker",
        supported_actions=frozenset({"refresh", "ticker_detail", "latest_predictions"}),
        tool_suffixes=("ticker_detail",),
        row_aliases=("history", "signals"),
    ),
    # filesystem
    ToolSignature(
        tool_family="filesystem",
        signature_id="directory_listing",
        template_id="filesystem_browser",
        supported_actions=frozenset({"refresh", "list_directory", "read_text_file", "stat_path", "search_paths"}),
        tool_suffixes=("list_directory", "search_paths"),
        row_aliases=("items", "files", "entries", "matches"),
        summary_field="total",
    ),
    ToolSignature(
        tool_family="filesystem",
        signature_id="file_details",
        template_id="filesystem_details",
        supported_actions=frozenset({"refresh", "list_directory", "read_text_file", "stat_path"}),
        tool_suffixes=("stat_path", "read_text_file"),
        row_aliases=("lines", "entries"),
    ),
    # code_workspace
    ToolSignature(
        tool_family="code_workspace",
        signature_id="workspace_inventory",
        template_id="workspace_studio",
        supported_actions=frozenset({"refresh", "list_repos", "detect_dev_tools", "project_overview"}),
        tool_suffixes=("list_repos", "detect_dev_tools", "project_overview"),
        row_aliases=("repos", "projects"),
        summary_field="totalRepos",
    ),
    # multimedia
    ToolSignature(
        tool_family="multimedia",
        signature_id="media_gallery",
        template_id="media_explorer",
        supported_actions=frozenset({"refresh", "scan_library", "inspect_file", "group_by_type"}),
        tool_suffixes=("scan_library", "inspect_file", "group_by_type"),
        row_aliases=("media", "items", "files"),
        summary_field="totalMedia",
    ),
    # travel_planner
    ToolSignature(
        tool_family="travel_planner",
        signature_id="itinerary_board",
        template_id="travel_planner",
        supported_actions=frozenset({"refresh", "plan_trip", "optimize_day", "budget_breakdown"}),
        tool_suffixes=("plan_trip", "optimize_day", "budget_breakdown"),
        row_aliases=("itinerary", "days"),
        summary_field="totalDays",
    ),
    # meal_planner
    ToolSignature(
        tool_family="meal_planner",
        signature_id="weekly_meal_plan",
        template_id="meal_planner",
        supported_actions=frozenset({"refresh", "plan_week", "grocery_list", "swap_meal"}),
        tool_suffixes=("plan_week", "grocery_list", "swap_meal"),
        row_aliases=("days", "meals"),
        summary_field="totalDays",
    ),
    # tooling
    ToolSignature(
        tool_family="plugin_discovery",
        signature_id="plugin_catalog_list",
        template_id="plugin_catalog",
        supported_actions=frozenset({"refresh", "search_plugins", "inspect_plugin"}),
        tool_suffixes=("list", "search_plugins", "inspect_plugin"),
        row_aliases=("plugins",),
        summary_field="totalPlugins",
    ),
    ToolSignature(
        tool_family="tool_inspector",
        signature_id="tool_run_summary",
        template_id="tool_inspector",
        supported_actions=frozenset({"refresh", "rerun", "inspect_result"}),
        tool_suffixes=("rerun", "inspect_result"),
        row_aliases=("results", "records"),
    ),
    ToolSignature(
        tool_family="general",
        signature_id="smart_text_card",
        template_id="smart_text",
        supported_actions=frozenset({"refresh"}),
        coverage_status="partial",
    ),
)
