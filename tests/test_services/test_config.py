"""Tests for configuration loading and merge order."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from agentteams.config import (
    Settings,
    find_project_config,
    find_project_root,
    load_settings,
)
from agentteams.exceptions import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path


def _write_config(directory: Path, data: dict[str, str]) -> None:
    config_dir = directory / ".agentteams"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "config.json").write_text(json.dumps(data), encoding="utf-8")


class TestSettings:
    def test_defaults_are_empty(self) -> None:
        settings = Settings()
        assert settings.api_url == ""
        assert settings.repository_id is None

    def test_missing_fields_lists_blank_values(self) -> None:
        settings = Settings(team_id="t", project_id=" ", api_key="k", agent_name="a", api_url="u")
        assert settings.missing_fields() == ["project_id"]

    def test_api_base_url_strips_trailing_slash(self) -> None:
        assert Settings(api_url="https://x.test/").api_base_url == "https://x.test"

    def test_reads_prefixed_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENTTEAMS_PROJECT_ID", "from-env")
        assert Settings().project_id == "from-env"


class TestFindProjectConfig:
    def test_walks_up_from_nested_directory(self, project_root: Path) -> None:
        nested = project_root / "src" / "pkg"
        nested.mkdir(parents=True)
        assert find_project_config(nested) == (project_root / ".agentteams" / "config.json").resolve()
        assert find_project_root(nested) == project_root.resolve()

    def test_none_without_sentinel(self, tmp_path: Path) -> None:
        assert find_project_config(tmp_path) is None
        assert find_project_root(tmp_path) is None

    def test_directory_without_config_file_is_not_a_root(self, tmp_path: Path) -> None:
        (tmp_path / ".agentteams").mkdir()
        assert find_project_root(tmp_path) is None


class TestLoadSettings:
    def test_project_config(self, project_root: Path, tmp_path: Path) -> None:
        settings = load_settings(project_root, home=tmp_path / "home")
        assert settings.project_id == "proj-1"
        assert settings.api_key == "key-123"

    def test_project_overrides_global(self, project_root: Path, tmp_path: Path) -> None:
        home = tmp_path / "home"
        _write_config(home, {"projectId": "global", "repositoryId": "repo-g"})
        settings = load_settings(project_root, home=home)
        assert settings.project_id == "proj-1"
        assert settings.repository_id == "repo-g"

    def test_environment_overrides_files(
        self, project_root: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("AGENTTEAMS_API_URL", "https://env.test")
        settings = load_settings(project_root, home=tmp_path / "home")
        assert settings.api_url == "https://env.test"

    def test_explicit_overrides_win(
        self, project_root: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("AGENTTEAMS_API_KEY", "env-key")
        settings = load_settings(project_root, home=tmp_path / "home", api_key="cli-key")
        assert settings.api_key == "cli-key"

    def test_empty_override_is_ignored(self, project_root: Path, tmp_path: Path) -> None:
        settings = load_settings(project_root, home=tmp_path / "home", api_key="")
        assert settings.api_key == "key-123"

    def test_global_only_configuration(self, tmp_path: Path) -> None:
        home = tmp_path / "home"
        _write_config(
            home,
            {
                "teamId": "t",
                "projectId": "p",
                "agentName": "a",
                "apiKey": "k",
                "apiUrl": "https://g.test",
            },
        )
        work = tmp_path / "work"
        work.mkdir()
        assert load_settings(work, home=home).project_id == "p"

    def test_missing_configuration_raises(self, tmp_path: Path) -> None:
        work = tmp_path / "work"
        work.mkdir()
        with pytest.raises(ConfigurationError, match="agentteams init"):
            load_settings(work, home=tmp_path / "home")

    def test_unreadable_config_is_ignored(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        work = tmp_path / "work"
        (work / ".agentteams").mkdir(parents=True)
        (work / ".agentteams" / "config.json").write_text("{broken", encoding="utf-8")
        with caplog.at_level("WARNING"), pytest.raises(ConfigurationError):
            load_settings(work, home=tmp_path / "home")
        assert "Ignoring unreadable config file" in caplog.text
