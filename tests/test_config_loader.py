"""Tests for gitlab_todotxt_sync.config_loader: config file discovery and merge."""

import json
import textwrap

import pytest

from gitlab_todotxt_sync.config_loader import (
    _interpolate_recursive,
    discover_config_files,
    interpolate_env_vars,
    load_config_file,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run from an empty project dir with an empty XDG config home."""
    project = tmp_path / "project"
    project.mkdir()
    xdg = tmp_path / "xdg"
    xdg.mkdir()
    monkeypatch.chdir(project)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.delenv("TODOTXT_SYNC_CONFIG", raising=False)
    return project, xdg / "gitlab-todotxt-sync"


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("MY_TOKEN", "glpat-123")
        assert interpolate_env_vars("${MY_TOKEN}") == "glpat-123"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("cost ${oops") == "cost ${oops"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("GL_HOST", "https://gitlab.local")
        data = {"gitlab": {"url": "${GL_HOST}", "per_page": 20}, "tags": ["${GL_HOST}"]}
        assert _interpolate_recursive(data) == {
            "gitlab": {"url": "https://gitlab.local", "per_page": 20},
            "tags": ["https://gitlab.local"],
        }


# -------------------------------------------------------------------------
# Discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []

    def test_project_before_user(self, isolated):
        project, user_dir = isolated
        (project / ".todotxt_sync").mkdir()
        project_file = project / ".todotxt_sync" / "config.yml"
        project_file.write_text("todo: {}\n")
        user_dir.mkdir()
        user_file = user_dir / "config.json"
        user_file.write_text("{}")

        found = discover_config_files()
        assert found == [project_file, user_file]

    def test_explicit_path_first(self, isolated, tmp_path):
        project, _ = isolated
        explicit = tmp_path / "custom.yml"
        explicit.write_text("{}")
        (project / ".todotxt_sync").mkdir()
        (project / ".todotxt_sync" / "config.yaml").write_text("{}")

        found = discover_config_files(explicit)
        assert found[0] == explicit.resolve()
        assert len(found) == 2

    def test_env_var_path(self, isolated, tmp_path, monkeypatch):
        explicit = tmp_path / "from_env.yml"
        explicit.write_text("{}")
        monkeypatch.setenv("TODOTXT_SYNC_CONFIG", str(explicit))
        assert discover_config_files() == [explicit.resolve()]

    def test_missing_explicit_raises(self, isolated, tmp_path):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            discover_config_files(tmp_path / "nope.yml")


# -------------------------------------------------------------------------
# Loading and merging
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_zero_config_returns_empty_dict(self, isolated):
        assert load_hierarchical_config() == {}

    def test_legacy_json_loaded(self, isolated):
        _, user_dir = isolated
        user_dir.mkdir()
        (user_dir / "config.json").write_text(
            json.dumps({"gitlab_host": "https://gitlab.com", "gitlab_token": "t"})
        )
        assert load_hierarchical_config() == {
            "gitlab_host": "https://gitlab.com",
            "gitlab_token": "t",
        }

    def test_project_overrides_user_at_section_level(self, isolated):
        project, user_dir = isolated
        user_dir.mkdir()
        (user_dir / "config.yml").write_text(
            textwrap.dedent(
                """\
                gitlab:
                  url: https://gitlab.com
                sync:
                  done_policy: mark
                """
            )
        )
        (project / ".todotxt_sync").mkdir()
        (project / ".todotxt_sync" / "config.yml").write_text(
            "sync:\n  on_missing_remote: mark_completed\n"
        )

        merged = load_hierarchical_config()
        assert merged["gitlab"] == {"url": "https://gitlab.com"}
        assert merged["sync"] == {"on_missing_remote": "mark_completed"}

    def test_env_var_interpolation_after_merge(self, isolated, monkeypatch):
        project, _ = isolated
        monkeypatch.setenv("GL_TOKEN_TEST", "secret")
        (project / ".todotxt_sync").mkdir()
        (project / ".todotxt_sync" / "config.yml").write_text(
            "gitlab:\n  token: ${GL_TOKEN_TEST}\n"
        )
        assert load_hierarchical_config()["gitlab"]["token"] == "secret"

    def test_non_dict_root_skipped(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        assert load_config_file(path) == {}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_config_file(path) == {}
