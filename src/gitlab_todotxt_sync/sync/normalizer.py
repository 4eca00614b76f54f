"""Turn raw GitLab todos into ``TodoRecord`` values.

A GitLab todo looks like::

    {
        "id": 102,
        "state": "pending",
        "action_name": "assigned",
        "target_type": "Issue",
        "body": "Fix the login page",
        "project": {"path_with_namespace": "acme/web"},
        "created_at": "2024-01-01T09:30:00.000Z",
        "updated_at": "2024-01-02T10:00:00.000Z",
        ...
    }

and becomes::

    2024-01-01 [Issue:assigned] Fix the login page +acme/web id:102

Normalisation is deterministic: the same raw record always produces the
same record, which keeps repeated syncs idempotent.  Remote text is
escaped so it can never introduce tags, in particular a foreign ``id:``.
Ids that would not read back intact from an ``id:`` tag, such as
``PROJ-12.``, are rejected.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from pydantic import BaseModel, ValidationError

from ..errors import NormalizationError
from .codec import escape_meta, find_tags
from .models import ID_TAG, SyncAction, SyncResult, Tag, TagKind, TodoRecord

logger = logging.getLogger(__name__)

DONE_STATES = frozenset({"done", "closed", "completed"})


class _EntityRef(BaseModel):
    """Nested project / group / author / target object."""

    path_with_namespace: str | None = None
    full_path: str | None = None
    username: str | None = None
    title: str | None = None

    model_config = {"extra": "ignore", "frozen": True}


class RemoteTodo(BaseModel):
    """One raw remote todo as returned by the GitLab todos API.

    Only ``id`` is required in practice; every other field is optional so
    that other issue trackers' payloads (``title`` + ``completed``) fit too.
    """

    id: int | str | None = None
    state: str | None = None
    completed: bool | None = None
    title: str | None = None
    body: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    action_name: str | None = None
    target_type: str | None = None
    target_url: str | None = None
    project: _EntityRef | None = None
    group: _EntityRef | None = None
    author: _EntityRef | None = None
    target: _EntityRef | None = None

    model_config = {"extra": "ignore", "frozen": True}

    @property
    def is_done(self) -> bool:
        if self.completed is not None:
            return self.completed
        return (self.state or "").lower() in DONE_STATES

    @property
    def text(self) -> str:
        """Title or body, collapsed onto one line."""
        raw = (
            self.title
            or (self.target.title if self.target else None)
            or self.body
            or ""
        )
        return " ".join(raw.split())

    @property
    def project_path(self) -> str | None:
        for ref in (self.project, self.group):
            if ref is None:
                continue
            path = ref.path_with_namespace or ref.full_path
            if path:
                return "-".join(path.split())
        return None


def _raw_id(raw: Any) -> str | None:
    if isinstance(raw, Mapping) and raw.get("id") is not None:
        return str(raw["id"])
    return None


def _parse_date(raw: str | None, field: str, record_id: str) -> date | None:
    """Extract the calendar date of an ISO 8601 timestamp."""
    if not raw:
        return None
    try:
        return date.fromisoformat(raw.split("T", 1)[0].strip())
    except ValueError:
        raise NormalizationError(
            f"Couldn't parse {field} '{raw}'", record_id
        ) from None


def normalize(
    raw: Mapping[str, Any] | RemoteTodo,
    *,
    context_tag: str | None = None,
    escape: bool = True,
) -> TodoRecord:
    """Normalise one raw remote todo.

    Args:
        raw: The raw record (a mapping or an already validated ``RemoteTodo``).
        context_tag: Context appended to the description (``@context_tag``).
        escape: Escape all tag-shaped tokens in the remote text.  When
            ``False`` only ``id:`` tokens are escaped.

    Returns:
        A record with ``external_id`` set and ``raw_line`` unset.

    Raises:
        NormalizationError: If the record has no usable id, fails
            validation, or carries an unparseable timestamp.
    """
    if isinstance(raw, RemoteTodo):
        todo = raw
    else:
        try:
            todo = RemoteTodo.model_validate(raw)
        except ValidationError as exc:
            raise NormalizationError(
                f"Invalid remote todo: {exc.error_count()} validation error(s)",
                _raw_id(raw),
            ) from exc

    if todo.id is None or not str(todo.id).strip():
        raise NormalizationError("Remote todo has no id")
    external_id = str(todo.id).strip()
    if len(external_id.split()) != 1:
        raise NormalizationError(
            f"Remote id '{external_id}' contains whitespace", external_id
        )
    id_tag = f"{ID_TAG}:{external_id}"
    if list(find_tags(id_tag)) != [Tag(TagKind.DATA, ID_TAG, external_id)]:
        raise NormalizationError(
            f"Remote id '{external_id}' does not read back from '{id_tag}'",
            external_id,
        )

    text = todo.text
    text = escape_meta(text) if escape else escape_meta(text, keys={ID_TAG})

    parts: list[str] = []
    if todo.target_type and todo.action_name:
        parts.append(f"[{todo.target_type}:{todo.action_name}]")
    if text:
        parts.append(text)
    project = todo.project_path
    if project:
        parts.append(f"+{project}")
    parts.append(id_tag)
    if context_tag:
        parts.append(f"@{context_tag}")

    completed = todo.is_done
    return TodoRecord(
        description=" ".join(parts),
        completed=completed,
        creation_date=_parse_date(todo.created_at, "created_at", external_id),
        completion_date=(
            _parse_date(todo.updated_at, "updated_at", external_id)
            if completed
            else None
        ),
        external_id=external_id,
    )


def normalize_all(
    raws: Iterable[Mapping[str, Any]],
    *,
    context_tag: str | None = None,
    escape: bool = True,
) -> tuple[list[TodoRecord], list[SyncResult]]:
    """Normalise a whole remote snapshot.

    Records that fail normalisation, and repeats of an id already seen,
    are skipped and reported rather than aborting the batch.

    Returns:
        ``(records, skipped)`` with records in feed order.
    """
    records: list[TodoRecord] = []
    skipped: list[SyncResult] = []
    seen: set[str] = set()

    for raw in raws:
        try:
            record = normalize(raw, context_tag=context_tag, escape=escape)
        except NormalizationError as exc:
            logger.warning("Skipping remote todo %s: %s", exc.record_id, exc)
            skipped.append(
                SyncResult(
                    external_id=exc.record_id,
                    action=SyncAction.SKIP,
                    success=False,
                    error=str(exc),
                )
            )
            continue

        if record.external_id in seen:
            logger.warning(
                "Duplicate remote todo id %s ignored", record.external_id
            )
            skipped.append(
                SyncResult(
                    external_id=record.external_id,
                    action=SyncAction.SKIP,
                    description=record.description,
                    success=False,
                    error="duplicate remote id",
                )
            )
            continue

        seen.add(record.external_id)  # type: ignore[arg-type]
        records.append(record)

    logger.info(
        "Normalised %d remote todos (%d skipped)", len(records), len(skipped)
    )
    return records, skipped
