"""Configuration loader — reads config.yaml, validates with Pydantic.

Tool families and their signatures are hardcoded in signatures/catalog.py;
config only chooses which of them to feature and how the session behaves.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, field_validator, model_validator

from cardflow.llm import DEFAULT_MODEL

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CARDFLOW_CONFIG"


class CardflowConfig(BaseModel):
    """Top-level server configuration."""

    mode: Literal["im", "ui", "full"] = "full"
    enhance_timeout_seconds: float = 45.0
    terminal_tool_id: str = "claude-code"
    model: str = DEFAULT_MODEL
    project_roots: list[str] = []
    featured_families: list[str] = []

    # Auth & CORS
    api_key: str | None = None
    allowed_origins: list[str] = ["*"]

    @field_validator("enhance_timeout_seconds")
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("enhance_timeout_seconds must be greater than zero")
        return v

    @field_validator("terminal_tool_id")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("terminal_tool_id must not be empty")
        return v

    @model_validator(mode="after")
    def validate_references(self) -> CardflowConfig:
        from cardflow.signatures.catalog import BUILTIN_FAMILIES

        for family in self.featured_families:
            if family not in BUILTIN_FAMILIES:
                raise ValueError(
                    f"featured_families references unknown tool family '{family}'. "
                    f"Available: {sorted(BUILTIN_FAMILIES)}"
                )
        return self


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: CardflowConfig | None = None
_config_path: str = "config.yaml"


def default_config_path() -> str:
    return os.environ.get(CONFIG_ENV_VAR, "config.yaml")


def load_config(path: str | None = None) -> CardflowConfig:
    """Read config.yaml from disk, validate, and cache."""
    global _config, _config_path
    _config_path = path or default_config_path()

    config_file = Path(_config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file.resolve()}")

    raw = yaml.safe_load(config_file.read_text()) or {}
    _config = CardflowConfig(**raw)

    logger.info(
        f"Loaded config: "
        f"mode={_config.mode}, featured_families={len(_config.featured_families)}"
    )
    return _config


def get_config() -> CardflowConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded — call load_config() first")
    return _config


def reload_config() -> CardflowConfig:
    """Re-read config from disk. Called by /reload endpoint."""
    logger.info(f"Reloading config from {_config_path}")
    return load_config(_config_path)
