"""Merge a remote todo snapshot into the local todo.txt records.

The remote is authoritative for completion state; the local file is
authoritative for content.  Once a remote todo has a local line, its
description, tags and priority belong to the user and are never
overwritten: only the completion state moves.

Decision table (``reconcile_one``)::

    local      remote      action
    -----      ------      ------
    open       open        RETAIN
    done       done        RETAIN
    open       done        COMPLETE
    done       open        REOPEN
    None       open        CREATE
    None       done        CREATE (done_policy=add) / SKIP
    done       None        RETAIN_MISSING
    open       None        RETAIN_MISSING / COMPLETE_MISSING
                           (on_missing_remote=mark_completed)

``reconcile`` applies the table to a whole file.  Local records keep
their relative order; new records are appended in remote feed order.
Everything here is pure: no file or network access.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date

from .models import ReconcileResult, SyncAction, SyncResult, TodoRecord

logger = logging.getLogger(__name__)

ON_MISSING_REMOTE_CHOICES = ("retain", "mark_completed")
DONE_POLICY_CHOICES = ("add", "mark", "ignore")


def check_policies(on_missing_remote: str, done_policy: str) -> None:
    """Raise ``ValueError`` for an unknown policy value."""
    if on_missing_remote not in ON_MISSING_REMOTE_CHOICES:
        raise ValueError(
            f"Unknown on_missing_remote policy: '{on_missing_remote}'. "
            f"Valid policies: {list(ON_MISSING_REMOTE_CHOICES)}"
        )
    if done_policy not in DONE_POLICY_CHOICES:
        raise ValueError(
            f"Unknown done policy: '{done_policy}'. "
            f"Valid policies: {list(DONE_POLICY_CHOICES)}"
        )


def reconcile_one(
    local: TodoRecord | None,
    remote: TodoRecord | None,
    *,
    on_missing_remote: str = "retain",
    done_policy: str = "add",
) -> SyncAction:
    """Decide what to do with one local/remote pair.

    Args:
        local: The matched local record, or ``None``.
        remote: The remote record with the same id, or ``None``.
        on_missing_remote: ``"retain"`` or ``"mark_completed"``.
        done_policy: ``"add"``, ``"mark"`` or ``"ignore"``.

    Raises:
        ValueError: If both sides are ``None`` or a policy is unknown.
    """
    check_policies(on_missing_remote, done_policy)

    if local is None and remote is None:
        raise ValueError("Nothing to reconcile: both sides are None")

    if local is None:
        if remote.completed and done_policy != "add":  # type: ignore[union-attr]
            return SyncAction.SKIP
        return SyncAction.CREATE

    if remote is None:
        if not local.completed and on_missing_remote == "mark_completed":
            return SyncAction.COMPLETE_MISSING
        return SyncAction.RETAIN_MISSING

    if local.completed == remote.completed:
        return SyncAction.RETAIN
    if remote.completed:
        return SyncAction.COMPLETE
    return SyncAction.REOPEN


def apply_action(
    action: SyncAction,
    local: TodoRecord | None,
    remote: TodoRecord | None,
    today: date,
) -> TodoRecord | None:
    """Build the output record for *action*.

    Returns ``None`` when the pair produces no line (``SKIP``,
    ``DROP_DUPLICATE``).  Modified records lose their ``raw_line`` so
    they are rendered afresh.

    Raises:
        ValueError: If *action* needs a record that was not given.
    """
    if action in (SyncAction.SKIP, SyncAction.DROP_DUPLICATE):
        return None

    if action == SyncAction.CREATE:
        if remote is None:
            raise ValueError("CREATE needs a remote record")
        if remote.completed and remote.completion_date is None:
            return replace(remote, completion_date=today, priority=None)
        return remote

    if local is None:
        raise ValueError(f"{action.value} needs a local record")

    if action == SyncAction.COMPLETE:
        completion = (
            remote.completion_date if remote and remote.completion_date else today
        )
        return replace(
            local,
            completed=True,
            completion_date=completion,
            priority=None,
            raw_line=None,
        )

    if action == SyncAction.COMPLETE_MISSING:
        return replace(
            local,
            completed=True,
            completion_date=today,
            priority=None,
            raw_line=None,
        )

    if action == SyncAction.REOPEN:
        return replace(
            local, completed=False, completion_date=None, raw_line=None
        )

    # RETAIN, RETAIN_MISSING, LOCAL_ONLY, PASSTHROUGH
    return local


def _in_scope(record: TodoRecord, context_tag: str | None) -> bool:
    """Whether the engine may touch *record*."""
    if record.passthrough or record.external_id is None:
        return False
    if context_tag is not None and not record.has_context(context_tag):
        return False
    return True


def _result(
    action: SyncAction, record: TodoRecord, error: str | None = None
) -> SyncResult:
    return SyncResult(
        external_id=record.external_id,
        action=action,
        description=record.description,
        success=error is None,
        error=error,
    )


def reconcile(
    local: Sequence[TodoRecord],
    remote: Iterable[TodoRecord],
    *,
    on_missing_remote: str = "retain",
    done_policy: str = "add",
    context_tag: str | None = None,
    today: date | None = None,
) -> ReconcileResult:
    """Merge *remote* into *local*.

    Args:
        local: Records parsed from the local file, in file order.
        remote: Normalised remote records; each has an ``external_id``.
        on_missing_remote: What to do with open local records the remote
            no longer lists: ``"retain"`` (default) or ``"mark_completed"``.
        done_policy: Whether completed remote todos with no local line
            are added (``"add"``, default) or skipped (``"mark"``,
            ``"ignore"``).
        context_tag: When set, only local records carrying
            ``@context_tag`` take part in matching; all others are kept
            verbatim.  A remote id that one of those kept lines already
            carries is reported as ``SKIP`` instead of being added again.
        today: Date stamped on completions that carry no date of their
            own.  Defaults to ``date.today()``.

    Returns:
        The merged records and one ``SyncResult`` per decision.

    Raises:
        ValueError: If a policy is unknown or a remote record has no id.
    """
    check_policies(on_missing_remote, done_policy)
    today = today or date.today()

    remote_by_id: dict[str, TodoRecord] = {}
    remote_order: list[str] = []
    for record in remote:
        if record.external_id is None:
            raise ValueError(f"Remote record without id: {record.description!r}")
        if record.external_id in remote_by_id:
            logger.warning("Duplicate remote id %s ignored", record.external_id)
            continue
        remote_by_id[record.external_id] = record
        remote_order.append(record.external_id)

    merged: list[TodoRecord] = []
    results: list[SyncResult] = []
    seen_local: set[str] = set()
    foreign_ids: set[str] = set()

    for record in local:
        if not _in_scope(record, context_tag):
            if record.passthrough:
                reason = record.parse_error or "unparseable line"
                results.append(
                    _result(SyncAction.PASSTHROUGH, record, reason)
                )
            else:
                results.append(_result(SyncAction.LOCAL_ONLY, record))
                if record.external_id is not None:
                    foreign_ids.add(record.external_id)
            merged.append(record)
            continue

        external_id: str = record.external_id  # type: ignore[assignment]
        if external_id in seen_local:
            logger.warning(
                "Dropping duplicate local line for id %s: %s",
                external_id,
                record.raw_line or record.description,
            )
            results.append(
                _result(
                    SyncAction.DROP_DUPLICATE,
                    record,
                    f"duplicate of an earlier line with id:{external_id}",
                )
            )
            continue
        seen_local.add(external_id)

        remote_record = remote_by_id.get(external_id)
        action = reconcile_one(
            record,
            remote_record,
            on_missing_remote=on_missing_remote,
            done_policy=done_policy,
        )
        output = apply_action(action, record, remote_record, today)
        if action != SyncAction.RETAIN:
            logger.debug("%s id:%s", action.value, external_id)
        results.append(_result(action, output or record))
        if output is not None:
            merged.append(output)

    for external_id in remote_order:
        if external_id in seen_local:
            continue
        remote_record = remote_by_id[external_id]
        if external_id in foreign_ids:
            logger.warning(
                "Not adding id %s: a line without @%s already uses it",
                external_id,
                context_tag,
            )
            results.append(
                _result(
                    SyncAction.SKIP,
                    remote_record,
                    f"id:{external_id} already used by a line without @{context_tag}",
                )
            )
            continue
        action = reconcile_one(
            None,
            remote_record,
            on_missing_remote=on_missing_remote,
            done_policy=done_policy,
        )
        output = apply_action(action, None, remote_record, today)
        results.append(_result(action, output or remote_record))
        if output is not None:
            merged.append(output)

    logger.info(
        "Reconciled %d local and %d remote todos into %d lines",
        len(local),
        len(remote_by_id),
        len(merged),
    )
    return ReconcileResult(records=merged, results=results)
