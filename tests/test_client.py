import json
from unittest.mock import Mock, patch

import pytest
import requests

from gitlab_todotxt_sync.core.client import GitLabClient, SnapshotClient
from gitlab_todotxt_sync.errors import FetchError


def _response(payload, status=200, next_page=""):
    response = Mock()
    response.status_code = status
    response.json.return_value = payload
    response.headers = {"X-Next-Page": next_page}
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status} Error"
        )
    else:
        response.raise_for_status.return_value = None
    return response


# GitLabClient tests
def test_todos_url_strips_trailing_slash():
    client = GitLabClient("https://gitlab.example.com/", "tok")
    assert client.todos_url == "https://gitlab.example.com/api/v4/todos"


def test_session_headers_and_verify():
    client = GitLabClient("https://gitlab.example.com", "tok")
    assert client.session.headers["PRIVATE-TOKEN"] == "tok"
    assert client.session.verify


def test_session_insecure():
    client = GitLabClient("https://gitlab.example.com", "tok", insecure=True)
    assert not client.session.verify


def test_repr_hides_token():
    assert "tok" not in repr(GitLabClient("https://gitlab.example.com", "tok"))


@patch("gitlab_todotxt_sync.core.client.requests.Session.get")
def test_fetch_todos_follows_pagination(mock_get):
    mock_get.side_effect = [
        _response([{"id": 1}], next_page="2"),
        _response([{"id": 2}]),
        _response([{"id": 3, "state": "done"}]),
    ]
    client = GitLabClient("https://gitlab.example.com", "tok", per_page=1)
    todos = client.fetch_todos()

    assert [t["id"] for t in todos] == [1, 2, 3]
    params = [c.kwargs["params"] for c in mock_get.call_args_list]
    assert params[0] == {"state": "pending", "per_page": 1, "page": "1"}
    assert params[1]["page"] == "2"
    assert params[2]["state"] == "done"


@patch("gitlab_todotxt_sync.core.client.requests.Session.get")
def test_fetch_pending_only(mock_get):
    mock_get.return_value = _response([{"id": 1}])
    client = GitLabClient("https://gitlab.example.com", "tok")
    client.fetch_todos(include_done=False)

    assert mock_get.call_count == 1
    assert mock_get.call_args.kwargs["params"]["state"] == "pending"


@patch("gitlab_todotxt_sync.core.client.requests.Session.get")
def test_auth_failure(mock_get):
    mock_get.return_value = _response({"message": "401 Unauthorized"}, status=401)
    client = GitLabClient("https://gitlab.example.com", "bad")
    with pytest.raises(FetchError, match="HTTP 401"):
        client.fetch_todos()


@patch("gitlab_todotxt_sync.core.client.requests.Session.get")
def test_server_error_is_fetch_error(mock_get):
    mock_get.return_value = _response({}, status=500)
    client = GitLabClient("https://gitlab.example.com", "tok")
    with pytest.raises(FetchError, match="Couldn't fetch"):
        client.fetch_todos()


@patch("gitlab_todotxt_sync.core.client.requests.Session.get")
def test_network_error_is_fetch_error(mock_get):
    mock_get.side_effect = requests.ConnectionError("connection refused")
    client = GitLabClient("https://gitlab.example.com", "tok")
    with pytest.raises(FetchError, match="connection refused"):
        client.fetch_todos()


@patch("gitlab_todotxt_sync.core.client.requests.Session.get")
def test_non_list_payload(mock_get):
    mock_get.return_value = _response({"todos": []})
    client = GitLabClient("https://gitlab.example.com", "tok")
    with pytest.raises(FetchError, match="expected a list"):
        client.fetch_todos()


@patch("gitlab_todotxt_sync.core.client.requests.Session.get")
def test_page_limit(mock_get):
    mock_get.return_value = _response([{"id": 1}], next_page="2")
    client = GitLabClient("https://gitlab.example.com", "tok", max_pages=3)
    with pytest.raises(FetchError, match="Gave up after 3 pages"):
        client.fetch_todos()


# SnapshotClient tests
def test_snapshot_loads_list(tmp_path):
    path = tmp_path / "todos.json"
    path.write_text(json.dumps([{"id": 1}, {"id": 2, "state": "done"}]))
    assert len(SnapshotClient(path).fetch_todos()) == 2


def test_snapshot_pending_only(tmp_path):
    path = tmp_path / "todos.json"
    path.write_text(
        json.dumps(
            [{"id": 1}, {"id": 2, "state": "done"}, {"id": 3, "completed": True}]
        )
    )
    todos = SnapshotClient(path).fetch_todos(include_done=False)
    assert [t["id"] for t in todos] == [1]


def test_snapshot_missing_file(tmp_path):
    with pytest.raises(FetchError, match="Couldn't load snapshot"):
        SnapshotClient(tmp_path / "missing.json").fetch_todos()


def test_snapshot_invalid_json(tmp_path):
    path = tmp_path / "todos.json"
    path.write_text("{not json")
    with pytest.raises(FetchError):
        SnapshotClient(path).fetch_todos()


def test_snapshot_not_a_list(tmp_path):
    path = tmp_path / "todos.json"
    path.write_text('{"id": 1}')
    with pytest.raises(FetchError, match="JSON list"):
        SnapshotClient(path).fetch_todos()
