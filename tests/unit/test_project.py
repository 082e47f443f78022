"""Tests for project discovery."""

from __future__ import annotations

from pathlib import Path

import pytest

from cordova_debug import config
from cordova_debug.errors import LaunchError
from cordova_debug.project import detect_project_type, find_project_root


class TestFindProjectRoot:
    """Tests for find_project_root."""

    def test_root_itself(self, cordova_project: Path) -> None:
        assert find_project_root(cordova_project) == cordova_project.resolve()

    def test_walks_up_from_subdirectory(self, cordova_project: Path) -> None:
        nested = cordova_project / "www" / "js"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == cordova_project.resolve()

    def test_not_a_project(self, tmp_path: Path) -> None:
        with pytest.raises(LaunchError) as exc_info:
            find_project_root(tmp_path / "nowhere")
        assert exc_info.value.code == "ERR_PROJECT_NOT_FOUND"


class TestDetectProjectType:
    """Tests for detect_project_type."""

    def test_plain_cordova(self, cordova_project: Path) -> None:
        assert detect_project_type(cordova_project).ionic is False

    def test_ionic_config_json(self, ionic_project: Path) -> None:
        assert detect_project_type(ionic_project).ionic is True

    def test_legacy_ionic_project_file(self, cordova_project: Path) -> None:
        (cordova_project / "ionic.project").write_text("{}")
        assert detect_project_type(cordova_project).ionic is True


class TestSettingsHome:
    """Tests for per-user settings locations."""

    def test_env_override(self, settings_home: Path) -> None:
        assert config.settings_home() == settings_home

    def test_default_under_home(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.delenv("CORDOVA_DEBUG_HOME", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert config.settings_home() == tmp_path / ".cordova-debug"

    def test_chrome_profile_dir(self, settings_home: Path) -> None:
        assert config.chrome_user_data_dir() == settings_home / "chrome_sandbox_dir"
