"""
Hierarchical configuration loader for gitlab_todotxt_sync.

Provides convention-based config file discovery, env var interpolation,
and hierarchical merge with "project wins" semantics.  Files are parsed
with PyYAML, so the JSON config written for earlier releases
(``~/.config/gitlab-todotxt-sync/config.json``) loads unchanged.

Usage:
    from gitlab_todotxt_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

APP_DIR = "gitlab-todotxt-sync"
PROJECT_DIR = ".todotxt_sync"
CONFIG_ENV_VAR = "TODOTXT_SYNC_CONFIG"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * Literal ``${`` with no closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Walk a nested dict/list and interpolate env vars in all strings."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. Convention-based file discovery
# ---------------------------------------------------------------------------


def _user_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / APP_DIR


def discover_config_files(explicit: Path | None = None) -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. *explicit* (``--config``), or the ``TODOTXT_SYNC_CONFIG`` env var.
        2. ``.todotxt_sync/config.yml`` in CWD (project-level)
        3. ``.todotxt_sync/config.yaml`` in CWD
        4. ``$XDG_CONFIG_HOME/gitlab-todotxt-sync/config.yml``
        5. ``$XDG_CONFIG_HOME/gitlab-todotxt-sync/config.json`` (legacy)

    Only paths that exist on disk are returned.

    Raises:
        FileNotFoundError: If an explicitly requested file does not exist.
    """
    candidates: list[Path] = []

    requested = explicit
    if requested is None and os.environ.get(CONFIG_ENV_VAR):
        requested = Path(os.environ[CONFIG_ENV_VAR])
    if requested is not None:
        requested = requested.expanduser().resolve()
        if not requested.exists():
            raise FileNotFoundError(f"Config file not found: {requested}")
        candidates.append(requested)

    cwd = Path.cwd()
    candidates.append(cwd / PROJECT_DIR / "config.yml")
    candidates.append(cwd / PROJECT_DIR / "config.yaml")

    user_dir = _user_config_dir()
    candidates.append(user_dir / "config.yml")
    candidates.append(user_dir / "config.json")

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# 3. Hierarchical merge
# ---------------------------------------------------------------------------


def load_config_file(path: Path) -> dict[str, Any]:
    """Load one YAML or JSON config file.

    Returns an empty dict for an empty file or a non-mapping root.
    """
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "Config file %s has non-dict root (%s), skipping",
            path,
            type(data).__name__,
        )
        return {}
    return data


def load_hierarchical_config(explicit: Path | None = None) -> dict[str, Any]:
    """Load and merge all discovered config files.

    Merge strategy ("project wins"):
        Files are loaded from lowest precedence to highest.  Each file's
        top-level keys **replace** (not deep-merge) those from earlier files.

    After merging, env var interpolation is applied to all string values.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files(explicit)

    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_config_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise
        merged.update(data)

    return _interpolate_recursive(merged)
