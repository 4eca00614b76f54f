import json
import logging
from pathlib import Path
from typing import Any, Protocol

import requests

from ..errors import FetchError
from ..sync.normalizer import DONE_STATES

logger = logging.getLogger(__name__)

API_BASE = "api/v4"
STATE_PENDING = "pending"
STATE_DONE = "done"


class TodoSource(Protocol):
    """Anything that can return the complete remote todo snapshot."""

    def fetch_todos(self, include_done: bool = True) -> list[dict[str, Any]]:
        """Return every remote todo, or raise ``FetchError``.

        Implementations never return a partial list.
        """
        ...  # pragma: no cover


class GitLabClient:
    """Read-only client for the GitLab todos API.

    Args:
        base_url: GitLab instance URL, e.g. ``https://gitlab.com``.
        token: Personal access token with ``read_api`` scope.
        per_page: Page size (GitLab caps it at 100).
        timeout: ``(connect, read)`` timeout in seconds.
        insecure: Skip TLS verification.
        max_pages: Safety limit on pagination per state.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        per_page: int = 100,
        timeout: tuple[float, float] = (10, 60),
        insecure: bool = False,
        max_pages: int = 1000,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self.per_page = per_page
        self.timeout = timeout
        self.insecure = insecure
        self.max_pages = max_pages
        self._session: requests.Session | None = None

    def __repr__(self) -> str:
        return f"GitLabClient(base_url={self.base_url!r})"

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["PRIVATE-TOKEN"] = self._token
        session.headers["Accept"] = "application/json"
        session.verify = not self.insecure
        return session

    @property
    def todos_url(self) -> str:
        return f"{self.base_url}/{API_BASE}/todos"

    def _get_todos(self, state: str) -> list[dict[str, Any]]:
        """
        Fetch every page of todos in *state*, following ``X-Next-Page``.
        """
        todos: list[dict[str, Any]] = []
        page = "1"
        pages = 0
        while page:
            pages += 1
            if pages > self.max_pages:
                raise FetchError(
                    f"Gave up after {self.max_pages} pages of {state} todos"
                )
            response = self.session.get(
                self.todos_url,
                params={"state": state, "per_page": self.per_page, "page": page},
                timeout=self.timeout,
            )
            logger.debug("GET %s state=%s page=%s -> %s", self.todos_url, state, page, response.status_code)
            if response.status_code in (401, 403):
                raise FetchError(
                    f"GitLab rejected the access token (HTTP {response.status_code})"
                )
            response.raise_for_status()

            data = response.json()
            if not isinstance(data, list):
                raise FetchError(
                    f"Unexpected todos payload: expected a list, got {type(data).__name__}"
                )
            todos.extend(data)
            page = response.headers.get("X-Next-Page", "").strip()
        return todos

    def fetch_todos(self, include_done: bool = True) -> list[dict[str, Any]]:
        """
        Fetch the complete todo snapshot.

        Args:
            include_done: Also fetch todos marked done.

        Returns:
            Raw todo dicts, pending first.

        Raises:
            FetchError: On network, HTTP, authentication or payload errors.
        """
        states = [STATE_PENDING, STATE_DONE] if include_done else [STATE_PENDING]
        todos: list[dict[str, Any]] = []
        try:
            for state in states:
                todos.extend(self._get_todos(state))
        except requests.RequestException as exc:
            raise FetchError(f"Couldn't fetch todos from {self.base_url}: {exc}") from exc
        except ValueError as exc:
            raise FetchError(f"Invalid JSON from {self.base_url}: {exc}") from exc
        logger.info("Fetched %d todos from %s", len(todos), self.base_url)
        return todos


class SnapshotClient:
    """Serve todos from a JSON file holding a saved API response.

    Useful for offline runs and debugging; set ``GITLAB_TODOS_JSON`` or
    pass ``--snapshot``.
    """

    def __init__(self, path: Path):
        self.path = path

    def __repr__(self) -> str:
        return f"SnapshotClient(path={str(self.path)!r})"

    def fetch_todos(self, include_done: bool = True) -> list[dict[str, Any]]:
        """
        Load the snapshot.

        Raises:
            FetchError: If the file is unreadable or not a JSON list.
        """
        logger.info("Loading todos from file %s", self.path)
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise FetchError(f"Couldn't load snapshot {self.path}: {exc}") from exc

        if not isinstance(data, list):
            raise FetchError(
                f"Snapshot {self.path} must hold a JSON list, got {type(data).__name__}"
            )
        if not include_done:
            data = [
                t
                for t in data
                if not (
                    isinstance(t, dict)
                    and (
                        t.get("completed") is True
                        or str(t.get("state", "")).lower() in DONE_STATES
                    )
                )
            ]
        return data
