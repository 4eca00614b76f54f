"""GitLab → todo.txt sync engine.

Architecture
------------
One-way sync with **remote-authoritative completion and
local-authoritative content**: a remote todo is matched to its local
line by the ``id:`` tag; from then on only its completion state follows
the remote, while the description, tags and priority stay as the user
left them.

Modules:

- ``models``     -- ``TodoRecord``, ``Tag``, ``SyncAction``, ``SyncResult``,
  ``SyncReport``, ``ReconcileResult``: core data contracts.
- ``codec``      -- todo.txt parsing and serialisation.
- ``normalizer`` -- raw GitLab todo → ``TodoRecord``.
- ``reconciler`` -- the merge: ``reconcile_one`` and ``reconcile``.
- ``engine``     -- ``SyncEngine``: fetch, merge, write for one run.
- ``reporter``   -- human-readable and JSON report formatting.

Usage example
-------------
::

    from gitlab_todotxt_sync.config import load_config
    from gitlab_todotxt_sync.core.client import GitLabClient
    from gitlab_todotxt_sync.sync import (
        SyncEngine,
        format_dry_run_preview,
        format_sync_report,
    )

    config = load_config()
    client = GitLabClient(config.gitlab_url, config.gitlab_token)
    engine = SyncEngine(client, config)

    preview = engine.run(dry_run=True)
    print(format_dry_run_preview(preview))

    report = engine.run()
    print(format_sync_report(report))
"""

from .codec import parse, serialize
from .engine import SyncEngine
from .models import (
    ReconcileResult,
    SyncAction,
    SyncReport,
    SyncResult,
    Tag,
    TagKind,
    TodoRecord,
)
from .normalizer import normalize, normalize_all
from .reconciler import reconcile, reconcile_one
from .reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

__all__ = [
    "ReconcileResult",
    "SyncAction",
    "SyncEngine",
    "SyncReport",
    "SyncResult",
    "Tag",
    "TagKind",
    "TodoRecord",
    "format_dry_run_preview",
    "format_sync_report",
    "normalize",
    "normalize_all",
    "parse",
    "reconcile",
    "reconcile_one",
    "report_to_json",
    "serialize",
]
