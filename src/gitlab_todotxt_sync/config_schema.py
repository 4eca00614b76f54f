"""Unified configuration schema for gitlab_todotxt_sync.

Defines Pydantic models for the config file structure with dedicated
sections for the GitLab connection, the todo file, sync policies and
logging.  Also accepts the flat JSON layout used by earlier releases::

    {"gitlab_host": "...", "gitlab_token": "...", "todo_file": "...",
     "context_tag": "gitlab", "no_escape_meta": false,
     "done_todo_policy": "mark"}

Usage:
    from gitlab_todotxt_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    fallbacks = to_fallbacks(unified)
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class GitLabConfig(BaseModel):
    """GitLab connection settings.

    All fields are optional so env vars and CLI args can supply them.
    """

    url: str | None = Field(default=None, description="GitLab instance URL")
    token: str | None = Field(
        default=None, description="Personal access token", repr=False
    )
    per_page: int = Field(
        default=100, ge=1, le=100, description="Todos per API page (1-100)"
    )
    insecure: bool = Field(
        default=False,
        description="Disable TLS verification (development only)",
    )

    model_config = {"frozen": True}


class TodoFileConfig(BaseModel):
    """Local todo.txt settings."""

    file: str | None = Field(default=None, description="Path to todo.txt")
    context_tag: str | None = Field(
        default=None,
        description="Context added to synced todos; scopes matching when set",
    )
    escape_meta: bool = Field(
        default=True,
        description="Escape tag-shaped tokens in GitLab text",
    )

    model_config = {"frozen": True}


class SyncPolicyConfig(BaseModel):
    """Reconciliation policies."""

    on_missing_remote: Literal["retain", "mark_completed"] = "retain"
    done_policy: Literal["add", "mark", "ignore"] = "add"

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` is always valid.
    """

    gitlab: GitLabConfig = Field(default_factory=GitLabConfig)
    todo: TodoFileConfig = Field(default_factory=TodoFileConfig)
    sync: SyncPolicyConfig = Field(default_factory=SyncPolicyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------

_LEGACY_KEYS = frozenset(
    {
        "gitlab_host",
        "gitlab_token",
        "todo_file",
        "context_tag",
        "no_escape_meta",
        "done_todo_policy",
        "username",
    }
)


def _from_legacy(raw: dict[str, Any]) -> dict[str, Any]:
    """Map the flat legacy JSON layout onto the sectioned layout."""
    logger.debug("Converting legacy flat config layout")
    todo: dict[str, Any] = {}
    if "todo_file" in raw:
        todo["file"] = raw["todo_file"]
    # Legacy files defaulted to "@gitlab"; an explicit null disables it.
    todo["context_tag"] = raw.get("context_tag", "gitlab")
    if "no_escape_meta" in raw:
        todo["escape_meta"] = not raw["no_escape_meta"]

    gitlab: dict[str, Any] = {}
    if "gitlab_host" in raw:
        gitlab["url"] = raw["gitlab_host"]
    if "gitlab_token" in raw:
        gitlab["token"] = raw["gitlab_token"]

    converted: dict[str, Any] = {
        k: v for k, v in raw.items() if k not in _LEGACY_KEYS
    }
    converted["gitlab"] = {**gitlab, **converted.get("gitlab", {})}
    converted["todo"] = {**todo, **converted.get("todo", {})}
    if "done_todo_policy" in raw:
        converted["sync"] = {
            "done_policy": raw["done_todo_policy"],
            **converted.get("sync", {}),
        }
    return converted


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged raw config dict.

    Missing sections get defaults; the legacy flat layout is converted.

    Raises:
        pydantic.ValidationError: If a value has the wrong type or range.
    """
    if not raw_data:
        return UnifiedConfig()
    if raw_data.keys() & _LEGACY_KEYS:
        raw_data = _from_legacy(raw_data)
    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into the fallback dict ``load_config()`` takes.

    ``None`` values are dropped so they never shadow built-in defaults.
    """
    flat = {
        "url": unified.gitlab.url,
        "token": unified.gitlab.token,
        "per_page": unified.gitlab.per_page,
        "insecure": unified.gitlab.insecure,
        "todo_file": unified.todo.file,
        "context_tag": unified.todo.context_tag,
        "escape_meta": unified.todo.escape_meta,
        "on_missing_remote": unified.sync.on_missing_remote,
        "done_policy": unified.sync.done_policy,
    }
    return {k: v for k, v in flat.items() if v is not None}
