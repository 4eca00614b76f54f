"""Tests for remote todo normalisation."""

from datetime import date

import pytest

from gitlab_todotxt_sync.errors import NormalizationError
from gitlab_todotxt_sync.sync.codec import find_tags, parse_line, render
from gitlab_todotxt_sync.sync.models import SyncAction, TagKind
from gitlab_todotxt_sync.sync.normalizer import RemoteTodo, normalize, normalize_all

GITLAB_TODO = {
    "id": 102,
    "state": "pending",
    "action_name": "assigned",
    "target_type": "Issue",
    "body": "Fix the login page",
    "project": {"id": 5, "path_with_namespace": "acme/web"},
    "author": {"username": "alice"},
    "created_at": "2024-01-01T09:30:00.000Z",
    "updated_at": "2024-01-02T10:00:00.000Z",
}


class TestNormalize:
    def test_gitlab_todo(self):
        record = normalize(GITLAB_TODO)
        assert record.external_id == "102"
        assert record.completed is False
        assert record.creation_date == date(2024, 1, 1)
        assert record.completion_date is None
        assert record.description == (
            "[Issue:assigned] Fix the login page +acme/web id:102"
        )
        assert record.raw_line is None

    def test_minimal_open_item(self):
        record = normalize({"id": 7, "title": "Write spec"})
        assert render(record) == "Write spec id:7"

    def test_done_state(self):
        record = normalize({**GITLAB_TODO, "state": "done"})
        assert record.completed is True
        assert record.completion_date == date(2024, 1, 2)

    def test_completed_flag_beats_state(self):
        record = normalize({"id": 1, "title": "t", "state": "done", "completed": False})
        assert record.completed is False

    def test_context_tag_appended(self):
        record = normalize(GITLAB_TODO, context_tag="gitlab")
        assert record.description.endswith("id:102 @gitlab")
        assert record.has_context("gitlab")

    def test_target_title_used_when_no_title(self):
        record = normalize(
            {"id": 3, "body": "long body", "target": {"title": "Short title"}}
        )
        assert record.description == "Short title id:3"

    def test_multiline_text_collapsed(self):
        record = normalize({"id": 4, "title": "line one\n\nline   two"})
        assert record.description == "line one line two id:4"

    def test_deterministic(self):
        assert normalize(GITLAB_TODO) == normalize(dict(GITLAB_TODO))
        assert render(normalize(GITLAB_TODO)) == render(normalize(GITLAB_TODO))

    def test_accepts_validated_model(self):
        todo = RemoteTodo.model_validate(GITLAB_TODO)
        assert normalize(todo) == normalize(GITLAB_TODO)


class TestNormalizeEscaping:
    def test_foreign_id_cannot_be_injected(self):
        record = normalize({"id": 8, "title": "duplicate of id:9"})
        ids = [
            t.value
            for t in find_tags(record.description)
            if t.kind == TagKind.DATA and t.key == "id"
        ]
        assert ids == ["8"]
        assert parse_line(render(record)).external_id == "8"

    def test_tags_escaped_by_default(self):
        record = normalize({"id": 8, "title": "ping @bob about +infra"})
        assert record.description == "ping \\@bob about \\+infra id:8"

    def test_no_escape_keeps_tags_but_not_ids(self):
        record = normalize(
            {"id": 8, "title": "ping @bob id:9"}, escape=False
        )
        assert record.description == "ping @bob id\\:9 id:8"

    def test_ambiguous_start_guarded(self):
        record = normalize({"id": 5, "title": "x marks the spot"})
        assert record.description == "x marks the spot id:5"
        assert render(record) == "\\x marks the spot id:5"
        parsed = parse_line(render(record))
        assert parsed.completed is False
        assert parsed.external_id == "5"
        assert parsed == record


class TestNormalizeErrors:
    def test_missing_id(self):
        with pytest.raises(NormalizationError, match="no id"):
            normalize({"title": "orphan"})

    def test_blank_id(self):
        with pytest.raises(NormalizationError):
            normalize({"id": "  ", "title": "blank"})

    def test_id_with_whitespace(self):
        with pytest.raises(NormalizationError, match="whitespace"):
            normalize({"id": "a b", "title": "spaced"})

    @pytest.mark.parametrize("remote_id", ["PROJ-12.", "...", "7!", "a\\"])
    def test_id_that_does_not_read_back(self, remote_id):
        with pytest.raises(NormalizationError, match="does not read back") as excinfo:
            normalize({"id": remote_id, "title": "odd id"})
        assert excinfo.value.record_id == remote_id

    @pytest.mark.parametrize("remote_id", ["PROJ-12", "a.b", "x:y", "7"])
    def test_punctuated_id_that_reads_back(self, remote_id):
        record = normalize({"id": remote_id, "title": "ok"})
        assert parse_line(render(record)).external_id == remote_id

    def test_bad_timestamp(self):
        with pytest.raises(NormalizationError, match="created_at") as excinfo:
            normalize({"id": 6, "title": "t", "created_at": "yesterday"})
        assert excinfo.value.record_id == "6"

    def test_invalid_payload(self):
        with pytest.raises(NormalizationError, match="validation"):
            normalize({"id": 6, "project": "not-an-object"})


class TestNormalizeAll:
    def test_bad_records_skipped_and_reported(self):
        records, skipped = normalize_all(
            [{"id": 1, "title": "ok"}, {"title": "no id"}, {"id": 2, "title": "ok"}]
        )
        assert [r.external_id for r in records] == ["1", "2"]
        assert len(skipped) == 1
        assert skipped[0].action == SyncAction.SKIP
        assert skipped[0].success is False

    def test_duplicate_remote_ids_skipped(self):
        records, skipped = normalize_all(
            [{"id": 1, "title": "first"}, {"id": 1, "title": "second"}]
        )
        assert [r.description for r in records] == ["first id:1"]
        assert skipped[0].external_id == "1"
        assert skipped[0].error == "duplicate remote id"
