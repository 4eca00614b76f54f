"""Run configuration for a sync.

Reads settings from CLI args, environment variables, .env files, and
config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > config files > Built-in defaults

Environment variables:
    GITLAB_URL: GitLab instance URL (required unless a snapshot is used)
    GITLAB_TOKEN: Personal access token (required unless a snapshot is used)
    GITLAB_TODOS_JSON: Read todos from this JSON file instead of the API
    TODOTXT_FILE: Path to todo.txt (optional, default: ~/.todo/todo.txt)
    TODOTXT_CONTEXT_TAG: Context tag for synced todos (optional, empty = none)
    TODOTXT_SYNC_ON_MISSING: retain | mark_completed (optional, default: retain)
    TODOTXT_SYNC_DONE_POLICY: add | mark | ignore (optional, default: add)
    GITLAB_INSECURE: Skip TLS verification (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from .sync.reconciler import check_policies

logger = logging.getLogger(__name__)

DEFAULT_TODO_FILE = "~/.todo/todo.txt"


@dataclass(frozen=True)
class Config:
    gitlab_url: str = ""
    gitlab_token: str = field(default="", repr=False)
    todo_file: Path = field(
        default_factory=lambda: Path(DEFAULT_TODO_FILE).expanduser()
    )
    context_tag: str | None = None
    escape_meta: bool = True
    on_missing_remote: str = "retain"
    done_policy: str = "add"
    per_page: int = 100
    insecure: bool = False
    snapshot_file: Path | None = None
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the URL or token is missing or malformed, or a
            policy value is unknown.
    """
    check_policies(config.on_missing_remote, config.done_policy)

    if not (1 <= config.per_page <= 100):
        raise ValueError(
            f"Invalid per_page {config.per_page}: must be a number between 1 and 100"
        )

    if config.context_tag is not None and (
        not config.context_tag or len(config.context_tag.split()) != 1
    ):
        raise ValueError(
            f"Invalid context tag '{config.context_tag}': must be a single word"
        )

    if config.snapshot_file is not None:
        # Offline run: no GitLab connection needed
        return

    if not config.gitlab_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid GitLab URL '{config.gitlab_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.gitlab_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid GitLab URL '{config.gitlab_url}': URL must include a hostname"
        )

    if not config.gitlab_token.strip():
        raise ValueError(
            "GitLab token cannot be empty. Set GITLAB_TOKEN environment variable."
        )

    if config.insecure:
        logger.warning(
            "WARNING: TLS verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _normalize_context_tag(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().lstrip("@")
    return value or None


def load_config(
    url: str | None = None,
    token: str | None = None,
    todo_file: str | None = None,
    context_tag: str | None = None,
    on_missing_remote: str | None = None,
    done_policy: str | None = None,
    snapshot_file: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    fallbacks: dict[str, Any] | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override GitLab URL.
        token: Override access token.
        todo_file: Override todo.txt path.
        context_tag: Override context tag (``""`` disables it).
        on_missing_remote: Override the missing-remote policy.
        done_policy: Override the done policy.
        snapshot_file: Read todos from this JSON file instead of GitLab.
        insecure: Skip TLS verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        fallbacks: Flat dict from ``config_schema.to_fallbacks()``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config is missing or invalid after
            checking all sources.
    """
    fb = fallbacks or {}

    def pick(cli: Any, env_key: str, fb_key: str, default: Any = None) -> Any:
        if cli is not None:
            return cli
        env_val = os.getenv(env_key)
        if env_val is not None:
            return env_val
        return fb.get(fb_key, default)

    # --- String fields: CLI > env > file > default ---

    snapshot = pick(snapshot_file, "GITLAB_TODOS_JSON", "snapshot_file")
    gitlab_url = (pick(url, "GITLAB_URL", "url", "") or "").strip()
    gitlab_token = (pick(token, "GITLAB_TOKEN", "token", "") or "").strip()

    if not snapshot:
        if not gitlab_url:
            raise ValueError(
                "GitLab URL not found. Set GITLAB_URL environment variable, "
                "pass --url CLI argument, or add 'gitlab.url' to the config file."
            )
        if not gitlab_token:
            raise ValueError(
                "GitLab token not found. Set GITLAB_TOKEN environment variable, "
                "pass --token CLI argument, or add 'gitlab.token' to the config file."
            )

    todo_path = pick(todo_file, "TODOTXT_FILE", "todo_file", DEFAULT_TODO_FILE)

    # --- Boolean fields: CLI > env > file > default ---

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("GITLAB_INSECURE")
        final_insecure = (
            env_insecure
            if env_insecure is not None
            else bool(fb.get("insecure", False))
        )

    config = Config(
        gitlab_url=gitlab_url.removesuffix("/"),
        gitlab_token=gitlab_token,
        todo_file=Path(todo_path).expanduser(),
        context_tag=_normalize_context_tag(
            pick(context_tag, "TODOTXT_CONTEXT_TAG", "context_tag")
        ),
        escape_meta=bool(fb.get("escape_meta", True)),
        on_missing_remote=pick(
            on_missing_remote, "TODOTXT_SYNC_ON_MISSING", "on_missing_remote", "retain"
        ),
        done_policy=pick(
            done_policy, "TODOTXT_SYNC_DONE_POLICY", "done_policy", "add"
        ),
        per_page=int(fb.get("per_page", 100)),
        insecure=final_insecure,
        snapshot_file=Path(snapshot).expanduser() if snapshot else None,
        debug=debug,
    )

    validate_config(config)

    return config
