"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from cordova_debug.process.runner import CommandResult, ProcessHandle

ANDROID_MANIFEST = b"""<?xml version="1.0" encoding="utf-8"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android"
          package="com.example.app"
          android:versionCode="1"
          android:versionName="0.0.1">
    <application android:label="@string/app_name" />
</manifest>
"""

CONFIG_XML = b"""<?xml version='1.0' encoding='utf-8'?>
<widget id="com.example.app" version="0.0.1" xmlns="http://www.w3.org/ns/widgets">
    <name>HelloCordova</name>
</widget>
"""


def make_result(stdout: str = "", stderr: str = "", returncode: int = 0) -> CommandResult:
    """Build a CommandResult for a mocked runner."""
    return CommandResult(command="mock", returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def mock_runner() -> MagicMock:
    """ProcessRunner double whose run/spawn/kill are awaitable."""
    runner = MagicMock()
    runner.run = AsyncMock(return_value=make_result())
    runner.spawn = AsyncMock(return_value=MagicMock(spec=ProcessHandle))
    runner.kill = AsyncMock()
    return runner


@pytest.fixture
def cordova_project(tmp_path: Path) -> Path:
    """Minimal Cordova project with an Android platform."""
    (tmp_path / "config.xml").write_bytes(CONFIG_XML)
    manifest = tmp_path / "platforms" / "android" / "AndroidManifest.xml"
    manifest.parent.mkdir(parents=True)
    manifest.write_bytes(ANDROID_MANIFEST)
    return tmp_path


@pytest.fixture
def ionic_project(cordova_project: Path) -> Path:
    """Cordova project driven by the Ionic CLI."""
    (cordova_project / "ionic.config.json").write_text('{"name": "demo"}')
    return cordova_project


@pytest.fixture
def settings_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the per-user settings directory into tmp_path."""
    home = tmp_path / "settings"
    monkeypatch.setenv("CORDOVA_DEBUG_HOME", str(home))
    return home
