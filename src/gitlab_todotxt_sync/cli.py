"""Command-line entry point: ``gitlab-todotxt-sync``."""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .config import Config, load_config
from .config_loader import load_hierarchical_config
from .config_schema import build_config, to_fallbacks
from .core.client import GitLabClient, SnapshotClient, TodoSource
from .errors import TodoSyncError
from .logger import setup_logging
from .sync.engine import SyncEngine
from .sync.reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitlab-todotxt-sync",
        description="Sync your GitLab todos into a todo.txt file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync with settings from .env / config file
  gitlab-todotxt-sync

  # Preview the changes without touching the file
  gitlab-todotxt-sync --dry-run

  # Complete local todos GitLab no longer lists
  gitlab-todotxt-sync --on-missing-remote mark_completed

  # Offline run from a saved API response
  gitlab-todotxt-sync --snapshot todos.json --todo-file /tmp/todo.txt

Only one sync may run against a given todo file at a time; wrap the
command in flock(1) or similar if runs can overlap.
        """,
    )
    parser.add_argument(
        "--config",
        help="Config file (YAML or JSON); overrides TODOTXT_SYNC_CONFIG",
    )
    parser.add_argument(
        "--url",
        help="GitLab instance URL (takes precedence over GITLAB_URL and config files)",
    )
    parser.add_argument(
        "--token",
        help="GitLab access token (visible in process list -- prefer GITLAB_TOKEN)",
    )
    parser.add_argument("--todo-file", help="Path to todo.txt")
    parser.add_argument(
        "--context-tag",
        help="Context tag for synced todos ('' to disable)",
    )
    parser.add_argument(
        "--on-missing-remote",
        choices=["retain", "mark_completed"],
        help="What to do with open todos GitLab stopped listing (default: retain)",
    )
    parser.add_argument(
        "--done-policy",
        choices=["add", "mark", "ignore"],
        help="How to treat todos already done on GitLab (default: add)",
    )
    parser.add_argument(
        "--snapshot",
        help="Read todos from a JSON file instead of the GitLab API",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip TLS certificate verification (use only for development)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without writing the file",
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also append logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"gitlab-todotxt-sync version {__version__}",
    )
    return parser


def make_client(config: Config) -> TodoSource:
    """Build the todo source for *config*."""
    if config.snapshot_file is not None:
        return SnapshotClient(config.snapshot_file)
    return GitLabClient(
        config.gitlab_url,
        config.gitlab_token,
        per_page=config.per_page,
        insecure=config.insecure,
    )


def main(argv: list[str] | None = None) -> int:
    """Run one sync and return the process exit code."""
    args = build_parser().parse_args(argv)

    # .env first, so ${VAR} interpolation in config files can use it
    load_dotenv()

    try:
        raw = load_hierarchical_config(Path(args.config) if args.config else None)
        unified = build_config(raw)
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        _stderr_print(f"Invalid configuration: {exc}")
        return EXIT_FAILURE

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format,
        level=unified.logging.level,
    )

    try:
        config = load_config(
            url=args.url,
            token=args.token,
            todo_file=args.todo_file,
            context_tag=args.context_tag,
            on_missing_remote=args.on_missing_remote,
            done_policy=args.done_policy,
            snapshot_file=args.snapshot,
            insecure=args.insecure,
            debug=args.debug,
            fallbacks=to_fallbacks(unified),
        )
    except ValueError as exc:
        _stderr_print(f"Invalid configuration: {exc}")
        return EXIT_FAILURE

    engine = SyncEngine(make_client(config), config)
    try:
        report = engine.run(dry_run=args.dry_run)
    except TodoSyncError as exc:
        logger.error("Sync failed, %s left untouched: %s", config.todo_file, exc)
        return EXIT_FAILURE

    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    elif args.dry_run:
        print(format_dry_run_preview(report))
    else:
        print(format_sync_report(report))

    if report.warnings:
        logger.warning("%d todos skipped or kept verbatim", len(report.warnings))
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        sys.exit(EXIT_INTERRUPTED)


if __name__ == "__main__":
    run()
