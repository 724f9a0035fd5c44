"""Runtime settings for scribe.

One validated, cached settings object holds the engine defaults that are
not part of any single component's constructor: logging, the default node
concurrency used by :class:`~scribe.orchestration.scribe.Scribe`, and whether
graph runs wait for fan-out to settle.

Fields
──────
log_level                 : structlog level
log_format                : ``json`` or ``console``
debug                     : verbose logging of hook dispatch
default_node_concurrency  : batch size for nodes created without one (None = unbounded)
graph_wait_for_completion : ``Graph.run_for`` also awaits ``Graph.join()``

All fields can be set via ``SCRIBE_*`` environment variables or a ``.env``
file, e.g. ``SCRIBE_DEFAULT_NODE_CONCURRENCY=4``.

Tags:
    settings, configuration, pydantic, scribe-core
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScribeSettings(BaseSettings):
    """Engine-wide configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SCRIBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")
    debug: bool = Field(default=False)

    # ── Engine defaults ──────────────────────────────────────────
    default_node_concurrency: int | None = Field(
        default=None,
        description="Maximum contexts a node runs at once (None = whole queue)",
    )
    graph_wait_for_completion: bool = Field(default=False)

    @field_validator("default_node_concurrency")
    @classmethod
    def _positive_concurrency(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("default_node_concurrency must be >= 1")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value


# ── Settings factory with caching ────────────────────────────────────────

_settings: ScribeSettings | None = None


def get_settings(*, _force_reload: bool = False) -> ScribeSettings:
    """Load, validate, and cache :class:`ScribeSettings`."""
    global _settings
    if _settings is None or _force_reload:
        _settings = ScribeSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (used by tests)."""
    global _settings
    _settings = None


__all__ = ["ScribeSettings", "get_settings", "reset_settings"]
