"""Sync engine that runs one GitLab → todo.txt sync.

The ``SyncEngine`` ties the pieces together:

1. Fetch the complete remote snapshot from the todo source.
2. Normalise raw todos into records (bad records are skipped and
   reported).
3. Read and parse the local todo file.
4. Reconcile remote records into the local ones.
5. Serialize and, if anything changed, write the file atomically.
6. Build and return a ``SyncReport``.

Per-record problems never abort the run.  ``FetchError`` and ``IoError``
propagate to the caller before anything is written, so a failed fetch
can never look like every remote todo was removed.

The engine assumes exclusive access to the todo file for the duration
of ``run()``; serialising concurrent runs is the caller's job.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING

from ..file_handler import read_todo_file, write_file_atomic
from .codec import parse, serialize
from .models import SyncReport
from .normalizer import normalize_all
from .reconciler import check_policies, reconcile
from .reporter import generate_diff

if TYPE_CHECKING:
    from ..config import Config
    from ..core.client import TodoSource

logger = logging.getLogger(__name__)


class SyncEngine:
    """Run syncs for one configuration.

    Args:
        client: Source of the remote todo snapshot.
        config: Immutable run configuration.
    """

    def __init__(self, client: TodoSource, config: Config) -> None:
        check_policies(config.on_missing_remote, config.done_policy)
        self.client = client
        self.config = config

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self, dry_run: bool = False, today: date | None = None) -> SyncReport:
        """Execute one sync.

        Args:
            dry_run: Compute the merge but do not write the file.
            today: Date used for completions without a remote date.

        Returns:
            A ``SyncReport`` describing what was (or would be) done.

        Raises:
            FetchError: The remote snapshot could not be fetched.
            IoError: The todo file could not be read or written.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        config = self.config
        todo_file = config.todo_file

        # Step 1: complete remote snapshot, or nothing at all
        raw_todos = self.client.fetch_todos(
            include_done=config.done_policy != "ignore"
        )

        # Step 2: normalise
        remote, skipped = normalize_all(
            raw_todos,
            context_tag=config.context_tag,
            escape=config.escape_meta,
        )
        if config.done_policy == "ignore":
            remote = [r for r in remote if not r.completed]

        # Step 3: local file
        old_content = read_todo_file(todo_file)
        local = parse(old_content)
        logger.info("Read %d existing todos from %s", len(local), todo_file)

        # Step 4: reconcile
        merged = reconcile(
            local,
            remote,
            on_missing_remote=config.on_missing_remote,
            done_policy=config.done_policy,
            context_tag=config.context_tag,
            today=today,
        )

        # Step 5: serialize and write
        new_content = serialize(merged.records)
        diff = generate_diff(
            old_content,
            new_content,
            label_old=f"a/{todo_file.name}",
            label_new=f"b/{todo_file.name}",
        )

        written = False
        bytes_written = 0
        if dry_run:
            logger.info("Dry run: %s left untouched", todo_file)
        elif new_content == old_content:
            logger.info("No changes for %s", todo_file)
        else:
            bytes_written = write_file_atomic(todo_file, new_content)
            written = True
            logger.info(
                "Wrote %d todos to %s (%d bytes)",
                len(merged.records),
                todo_file,
                bytes_written,
            )

        return SyncReport(
            todo_file=str(todo_file),
            dry_run=dry_run,
            results=merged.results + skipped,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
            written=written,
            bytes_written=bytes_written,
            record_count=len(merged.records),
            diff=diff,
        )
