"""Shared pytest fixtures for gitlab-todotxt-sync tests."""

from typing import Any

import pytest
from dotenv import load_dotenv

from gitlab_todotxt_sync.config import Config
from gitlab_todotxt_sync.errors import FetchError

load_dotenv()

_ENV_VARS = (
    "GITLAB_URL",
    "GITLAB_TOKEN",
    "GITLAB_TODOS_JSON",
    "GITLAB_INSECURE",
    "TODOTXT_FILE",
    "TODOTXT_CONTEXT_TAG",
    "TODOTXT_SYNC_ON_MISSING",
    "TODOTXT_SYNC_DONE_POLICY",
    "TODOTXT_SYNC_CONFIG",
    "LOG_LEVEL",
    "LOG_FILE",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every env var the config layer reads."""
    for key in _ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class FakeClient:
    """In-memory todo source.

    Returns *todos* on every fetch, or raises *error* when one is given.
    """

    def __init__(
        self,
        todos: list[dict[str, Any]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.todos = todos or []
        self.error = error
        self.calls: list[bool] = []

    def fetch_todos(self, include_done: bool = True) -> list[dict[str, Any]]:
        self.calls.append(include_done)
        if self.error is not None:
            raise self.error
        return list(self.todos)


@pytest.fixture
def fake_client():
    return FakeClient


@pytest.fixture
def failing_client():
    return FakeClient(error=FetchError("GitLab rejected the access token (HTTP 401)"))


@pytest.fixture
def todo_file(tmp_path):
    return tmp_path / "todo.txt"


@pytest.fixture
def make_config(todo_file):
    """Build a Config pointing at the temporary todo file."""

    def _make(**overrides: Any) -> Config:
        values: dict[str, Any] = {
            "gitlab_url": "https://gitlab.example.com",
            "gitlab_token": "glpat-test",
            "todo_file": todo_file,
        }
        values.update(overrides)
        return Config(**values)

    return _make
