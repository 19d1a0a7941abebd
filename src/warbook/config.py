"""Lightweight configuration for the Warbook engine."""

from __future__ import annotations

import logging
from dataclasses import replace
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from warbook.domain.enums import RuleScope
from warbook.domain.rules_config import DEFAULT_RULES, RulesConfig


class Settings(BaseSettings):
    """Engine settings, read from the environment (``WARBOOK_*``) or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="WARBOOK_", env_file=".env", env_file_encoding="utf-8"
    )

    data_dir: Path = Field(default=Path("games"), description="Where game snapshots live")
    trace_enabled: bool = Field(
        default=True, description="Record explanation traces for every action"
    )
    log_level: str = Field(default="INFO", description="Level for the warbook loggers")
    precedence_scope_order: list[RuleScope] = Field(
        default_factory=lambda: list(DEFAULT_RULES.precedence.scope_order),
        description="Rule scopes from most to least specific when modifiers compete",
    )
    favour_acting_side: bool = Field(
        default=True,
        description="Break exclusive-modifier ties in favour of the acting side",
    )
    dice_seed: str | None = Field(
        default=None, description="Fixed seed for session dice; derived from the game id if unset"
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings


def rules_from_settings(settings: Settings, base: RulesConfig = DEFAULT_RULES) -> RulesConfig:
    """Apply the precedence overrides from ``settings`` to ``base``."""

    policy = replace(
        base.precedence,
        scope_order=tuple(settings.precedence_scope_order),
        favour_acting_side=settings.favour_acting_side,
    )
    return base.with_precedence(policy)


def configure_logging(settings: Settings) -> None:
    logging.getLogger("warbook").setLevel(settings.log_level.upper())
