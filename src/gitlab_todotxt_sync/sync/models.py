"""Data contracts for the todo.txt sync engine.

- ``TodoRecord``: one todo.txt task, parsed from a local line or
  normalised from a remote todo.
- ``Tag`` / ``TagKind``: project, context and ``key:value`` tokens found
  in a description.
- ``SyncAction``: what reconciliation decided for one record.
- ``SyncResult``: outcome for one record.
- ``SyncReport``: aggregate results for a full sync run.
- ``ReconcileResult``: merged records plus per-record results.

``TodoRecord`` is a frozen dataclass so that ``raw_line`` can be left out
of equality; the report models are frozen Pydantic models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from pydantic import BaseModel

ID_TAG = "id"


class TagKind(str, Enum):
    """Kinds of inline description tags."""

    PROJECT = "project"
    CONTEXT = "context"
    DATA = "data"


@dataclass(frozen=True)
class Tag:
    """A single tag token.

    Attributes:
        kind: Project (``+foo``), context (``@foo``) or data (``key:value``).
        key: Tag name; the data key for ``DATA`` tags.
        value: Data value for ``DATA`` tags, ``None`` otherwise.
    """

    kind: TagKind
    key: str
    value: str | None = None

    def __str__(self) -> str:
        if self.kind == TagKind.PROJECT:
            return f"+{self.key}"
        if self.kind == TagKind.CONTEXT:
            return f"@{self.key}"
        return f"{self.key}:{self.value}"


@dataclass(frozen=True)
class TodoRecord:
    """A todo.txt task.

    Attributes:
        description: Task text, tags inline.
        completed: Whether the task is done.
        priority: Single uppercase letter, or ``None``.
        creation_date: Optional creation date.
        completion_date: Optional completion date.
        external_id: Remote identifier (the ``id:`` tag), ``None`` for
            purely local tasks.
        passthrough: The line could not be parsed and is kept verbatim.
        raw_line: Original text line; written back unchanged while the
            record is unmodified.  Not part of equality.
        parse_error: Why a pass-through line failed to parse.  Not part
            of equality.
    """

    description: str
    completed: bool = False
    priority: str | None = None
    creation_date: date | None = None
    completion_date: date | None = None
    external_id: str | None = None
    passthrough: bool = False
    raw_line: str | None = field(default=None, compare=False, repr=False)
    parse_error: str | None = field(default=None, compare=False)

    @property
    def tags(self) -> tuple[Tag, ...]:
        """Tags in the order they appear in the description."""
        if self.passthrough:
            return ()
        from .codec import find_tags

        return tuple(find_tags(self.description))

    @property
    def tag_set(self) -> frozenset[Tag]:
        return frozenset(self.tags)

    def has_context(self, context: str) -> bool:
        return Tag(TagKind.CONTEXT, context) in self.tag_set

    def get_data(self, key: str) -> str | None:
        """Return the value of the first ``key:value`` tag named *key*."""
        for tag in self.tags:
            if tag.kind == TagKind.DATA and tag.key == key:
                return tag.value
        return None


class SyncAction(str, Enum):
    """Reconciliation outcome for one record."""

    RETAIN = "retain"
    CREATE = "create"
    COMPLETE = "complete"
    REOPEN = "reopen"
    RETAIN_MISSING = "retain_missing"
    COMPLETE_MISSING = "complete_missing"
    SKIP = "skip"
    DROP_DUPLICATE = "drop_duplicate"
    LOCAL_ONLY = "local_only"
    PASSTHROUGH = "passthrough"


# Actions that change the file content.
CHANGING_ACTIONS = frozenset(
    {
        SyncAction.CREATE,
        SyncAction.COMPLETE,
        SyncAction.REOPEN,
        SyncAction.COMPLETE_MISSING,
        SyncAction.DROP_DUPLICATE,
    }
)


class SyncResult(BaseModel):
    """Result for one record.

    Attributes:
        external_id: Remote identifier, if any.
        action: What reconciliation did.
        description: Task description (or the raw line for pass-throughs).
        success: ``False`` for skipped or warned records.
        error: Reason for a warning or skip.
    """

    external_id: str | None = None
    action: SyncAction
    description: str = ""
    success: bool = True
    error: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a full sync run.

    Attributes:
        todo_file: Path of the local todo.txt file.
        dry_run: Whether this was a dry run (nothing written).
        results: Per-record results.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
        written: Whether the file was rewritten.
        bytes_written: Size of the written file.
        record_count: Number of records in the merged output.
        diff: Unified diff between the old and new file content.
    """

    todo_file: str
    dry_run: bool = False
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None
    written: bool = False
    bytes_written: int = 0
    record_count: int = 0
    diff: str = ""

    model_config = {"frozen": True}

    def by_action(self, action: SyncAction) -> list[SyncResult]:
        return [r for r in self.results if r.action == action]

    @property
    def created(self) -> list[SyncResult]:
        """Results where action is CREATE."""
        return self.by_action(SyncAction.CREATE)

    @property
    def completed(self) -> list[SyncResult]:
        """Results completed by the remote or by the missing-remote policy."""
        return [
            r
            for r in self.results
            if r.action in (SyncAction.COMPLETE, SyncAction.COMPLETE_MISSING)
        ]

    @property
    def reopened(self) -> list[SyncResult]:
        """Results where action is REOPEN."""
        return self.by_action(SyncAction.REOPEN)

    @property
    def retained(self) -> list[SyncResult]:
        """Matched records left untouched."""
        return self.by_action(SyncAction.RETAIN)

    @property
    def missing(self) -> list[SyncResult]:
        """Records the remote no longer lists, kept unchanged."""
        return self.by_action(SyncAction.RETAIN_MISSING)

    @property
    def local_only(self) -> list[SyncResult]:
        return self.by_action(SyncAction.LOCAL_ONLY)

    @property
    def warnings(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def changed(self) -> bool:
        return any(r.action in CHANGING_ACTIONS for r in self.results)

    def summary(self) -> str:
        """Format a short multi-line summary with counts by action."""
        lines = [
            f"Sync report for '{self.todo_file}'"
            + (" (dry run)" if self.dry_run else ""),
            f"  Created:    {len(self.created)}",
            f"  Completed:  {len(self.completed)}",
            f"  Reopened:   {len(self.reopened)}",
            f"  Retained:   {len(self.retained)}",
            f"  Missing:    {len(self.missing)}",
            f"  Local only: {len(self.local_only)}",
            f"  Warnings:   {len(self.warnings)}",
            f"  Total:      {len(self.results)}",
        ]
        return "\n".join(lines)


@dataclass
class ReconcileResult:
    """Output of one reconciliation.

    Attributes:
        records: Merged records in file order.
        results: One result per decision, local records first.
    """

    records: list[TodoRecord]
    results: list[SyncResult] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(r.action in CHANGING_ACTIONS for r in self.results)
