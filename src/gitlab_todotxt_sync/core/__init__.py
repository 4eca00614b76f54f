"""Remote todo sources."""

from .client import GitLabClient, SnapshotClient, TodoSource

__all__ = ["GitLabClient", "SnapshotClient", "TodoSource"]
