"""Tests for the iOS launcher."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cordova_debug.errors import (
    LaunchError,
    artifact_not_found_error,
    command_failed_error,
    http_request_error,
)
from cordova_debug.launcher.ios import IosLauncher, select_device_port, strip_target_list
from cordova_debug.models import LaunchSpec, ProjectType, TargetKind
from cordova_debug.process.runner import CommandResult

EMULATE_LIST = """Available iOS Simulators:
** Simulators **
iPhone-15, 17.0
iPhone-15-Pro, 17.0

** Devices **
"""

PROXY_TARGETS = [
    {"deviceId": "SIMULATOR", "deviceName": "Simulator", "url": "localhost:9223"},
    {"deviceId": "00008030-001A", "deviceName": "iPhone", "url": "localhost:9224"},
]


def _tools() -> MagicMock:
    tools = MagicMock()
    tools.get_bundle_identifier = AsyncMock(return_value="io.cordova.hello")
    tools.install = AsyncMock()
    tools.start_app = AsyncMock()
    tools.get_path_on_device = AsyncMock(
        return_value="/private/var/containers/Bundle/Application/X/Hello Cordova.app"
    )
    tools.close = AsyncMock()
    return tools


def _session(runner: MagicMock) -> MagicMock:
    session = MagicMock()
    session.runner = runner
    session.tunnels = MagicMock()
    session.tunnels.start_debugserver_proxy = AsyncMock()
    session.tunnels.start_webkit_proxy = AsyncMock()
    session.http = MagicMock()
    session.http.get_json_list = AsyncMock()
    return session


def _launcher(runner: MagicMock, host: str = "darwin") -> tuple[IosLauncher, MagicMock, MagicMock]:
    session = _session(runner)
    tools = _tools()
    return IosLauncher(session, device_tools=tools, host_platform=host), session, tools


class TestHelpers:
    """Tests for module helpers."""

    def test_strip_target_list(self) -> None:
        assert strip_target_list(EMULATE_LIST) == [
            "Available iOS Simulators:",
            "iPhone-15, 17.0",
            "iPhone-15-Pro, 17.0",
        ]

    def test_select_simulator_port(self) -> None:
        assert select_device_port(PROXY_TARGETS, TargetKind.EMULATOR) == 9223

    def test_select_device_port(self) -> None:
        assert select_device_port(PROXY_TARGETS, TargetKind.DEVICE) == 9224

    def test_named_target_is_a_simulator(self) -> None:
        assert select_device_port(PROXY_TARGETS, TargetKind.NAMED) == 9223

    def test_no_simulator(self) -> None:
        with pytest.raises(LaunchError) as exc_info:
            select_device_port(PROXY_TARGETS[1:], TargetKind.EMULATOR)
        assert exc_info.value.code == "ERR_EMULATOR_NOT_FOUND"
        assert '"port"' in exc_info.value.remediation

    def test_no_device(self) -> None:
        with pytest.raises(LaunchError) as exc_info:
            select_device_port(PROXY_TARGETS[:1], TargetKind.DEVICE)
        assert exc_info.value.code == "ERR_DEVICE_NOT_FOUND"


class TestIosLaunch:
    """Tests for IosLauncher.launch."""

    @pytest.mark.asyncio
    async def test_rejects_non_mac_host(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        launcher, _, _ = _launcher(mock_runner, host="linux")
        with pytest.raises(LaunchError) as exc_info:
            await launcher.launch(LaunchSpec(platform="ios"), tmp_path, ProjectType())
        assert exc_info.value.code == "ERR_UNSUPPORTED_HOST"
        mock_runner.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_default_simulator(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        launcher, _, _ = _launcher(mock_runner)
        await launcher.launch(LaunchSpec(platform="ios"), tmp_path, ProjectType())
        assert mock_runner.run.await_args.args == ("cordova", ["emulate", "ios"], tmp_path)

    @pytest.mark.asyncio
    async def test_named_simulator(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        launcher, _, _ = _launcher(mock_runner)
        spec = LaunchSpec(platform="ios", target="iPhone-15")
        await launcher.launch(spec, tmp_path, ProjectType(ionic=True))
        assert mock_runner.run.await_args.args == (
            "ionic",
            ["emulate", "ios", "--target=iPhone-15"],
            tmp_path,
        )

    @pytest.mark.asyncio
    async def test_unknown_simulator_reports_available_targets(
        self, mock_runner: MagicMock, tmp_path: Path
    ) -> None:
        failure = command_failed_error("cordova emulate ios --target=iPhone-99", 1, "no target")
        listing = CommandResult(command="list", returncode=0, stdout=EMULATE_LIST, stderr="")
        mock_runner.run.side_effect = [failure, listing]
        launcher, _, _ = _launcher(mock_runner)

        with pytest.raises(LaunchError) as exc_info:
            await launcher.launch(
                LaunchSpec(platform="ios", target="iPhone-99"), tmp_path, ProjectType()
            )

        assert exc_info.value.code == "ERR_COMMAND_FAILED"
        assert exc_info.value.context["available_targets"] == [
            "Available iOS Simulators:",
            "iPhone-15, 17.0",
            "iPhone-15-Pro, 17.0",
        ]
        assert mock_runner.run.await_args.args[1] == ["emulate", "ios", "--list"]

    @pytest.mark.asyncio
    async def test_device_build_install_and_start(
        self, mock_runner: MagicMock, tmp_path: Path
    ) -> None:
        build_dir = tmp_path / "platforms" / "ios" / "build" / "device"
        build_dir.mkdir(parents=True)
        (build_dir / "HelloCordova.ipa").touch()
        launcher, session, tools = _launcher(mock_runner)
        spec = LaunchSpec(platform="ios", target="device")

        await launcher.launch(spec, tmp_path, ProjectType())

        assert mock_runner.run.await_args.args == ("cordova", ["build", "ios", "--device"], tmp_path)
        tools.install.assert_awaited_once_with(build_dir / "HelloCordova.ipa")
        session.tunnels.start_debugserver_proxy.assert_awaited_once_with(9221)
        tools.start_app.assert_awaited_once_with("io.cordova.hello", 9221, 5000)

    @pytest.mark.asyncio
    async def test_device_without_ipa(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        launcher, session, _ = _launcher(mock_runner)
        with pytest.raises(LaunchError) as exc_info:
            await launcher.launch(
                LaunchSpec(platform="ios", target="device"), tmp_path, ProjectType()
            )
        assert exc_info.value.code == "ERR_ARTIFACT_NOT_FOUND"
        session.tunnels.start_debugserver_proxy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_bundle_lookup_cancels_install(
        self, mock_runner: MagicMock, tmp_path: Path
    ) -> None:
        build_dir = tmp_path / "platforms" / "ios" / "build" / "device"
        build_dir.mkdir(parents=True)
        (build_dir / "HelloCordova.ipa").touch()
        launcher, session, tools = _launcher(mock_runner)
        install_state = {"installed": False, "cancelled": False}

        async def slow_install(ipa: Path) -> None:
            try:
                await asyncio.sleep(0.2)
                install_state["installed"] = True
            except asyncio.CancelledError:
                install_state["cancelled"] = True
                raise

        async def missing_bundle_id(project_root: Path) -> str:
            await asyncio.sleep(0.01)
            raise artifact_not_found_error("config.xml", str(project_root))

        tools.install = AsyncMock(side_effect=slow_install)
        tools.get_bundle_identifier = AsyncMock(side_effect=missing_bundle_id)

        with pytest.raises(LaunchError) as exc_info:
            await launcher.launch(
                LaunchSpec(platform="ios", target="device"), tmp_path, ProjectType()
            )
        await asyncio.sleep(0.3)

        assert exc_info.value.code == "ERR_ARTIFACT_NOT_FOUND"
        assert install_state == {"installed": False, "cancelled": True}
        session.tunnels.start_debugserver_proxy.assert_not_awaited()


class TestIosAttach:
    """Tests for IosLauncher.attach."""

    @staticmethod
    def _simulator_build(root: Path) -> None:
        app = root / "platforms" / "ios" / "build" / "emulator" / "Hello Cordova.app"
        app.mkdir(parents=True)

    @pytest.mark.asyncio
    async def test_simulator_webview(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        self._simulator_build(tmp_path)
        launcher, session, _ = _launcher(mock_runner)
        page = "file:///Users/dev/Library/Hello%20Cordova.app/www/index.html"

        async def get_json_list(url: str, _: str) -> list[dict[str, Any]]:
            if url == "http://localhost:9222/json":
                return PROXY_TARGETS
            return [{"url": "about:blank"}, {"url": page}]

        session.http.get_json_list.side_effect = get_json_list
        spec = LaunchSpec(platform="ios").to_attach_spec()

        endpoint = await launcher.attach(spec, tmp_path)

        session.tunnels.start_webkit_proxy.assert_awaited_once_with(9222, 9223, 9322)
        assert endpoint.port == 9223
        assert endpoint.url == page
        assert endpoint.web_root == tmp_path

    @pytest.mark.asyncio
    async def test_device_uses_installed_app_name(
        self, mock_runner: MagicMock, tmp_path: Path
    ) -> None:
        launcher, session, tools = _launcher(mock_runner)
        page = "file:///var/containers/Hello%20Cordova.app/www/index.html"

        async def get_json_list(url: str, _: str) -> list[dict[str, Any]]:
            if url == "http://localhost:9222/json":
                return PROXY_TARGETS
            return [{"url": page}]

        session.http.get_json_list.side_effect = get_json_list
        spec = LaunchSpec(platform="ios", target="device").to_attach_spec()

        endpoint = await launcher.attach(spec, tmp_path)

        tools.get_path_on_device.assert_awaited_once_with("io.cordova.hello")
        assert endpoint.port == 9224

    @pytest.mark.asyncio
    async def test_webview_never_appears(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        self._simulator_build(tmp_path)
        launcher, session, _ = _launcher(mock_runner)
        device_queries = 0

        async def get_json_list(url: str, _: str) -> list[dict[str, Any]]:
            nonlocal device_queries
            if url == "http://localhost:9222/json":
                return PROXY_TARGETS
            device_queries += 1
            return [{"url": "about:blank"}]

        session.http.get_json_list.side_effect = get_json_list
        spec = LaunchSpec(platform="ios", attach_attempts=3, attach_delay_ms=10).to_attach_spec()

        with (
            patch("cordova_debug.utils.retry.asyncio.sleep", new=AsyncMock()),
            pytest.raises(LaunchError) as exc_info,
        ):
            await launcher.attach(spec, tmp_path)
        assert exc_info.value.code == "ERR_WEBVIEW_NOT_FOUND"
        assert exc_info.value.context["attempts"] == 3
        assert device_queries == 3

    @pytest.mark.asyncio
    async def test_proxy_unreachable(self, mock_runner: MagicMock, tmp_path: Path) -> None:
        self._simulator_build(tmp_path)
        launcher, session, _ = _launcher(mock_runner)
        session.http.get_json_list.side_effect = http_request_error(
            "http://localhost:9222/json",
            "Unable to communicate with ios_webkit_debug_proxy",
            "connection refused",
        )
        spec = LaunchSpec(platform="ios", attach_attempts=2).to_attach_spec()

        with (
            patch("cordova_debug.utils.retry.asyncio.sleep", new=AsyncMock()),
            pytest.raises(LaunchError) as exc_info,
        ):
            await launcher.attach(spec, tmp_path)
        assert exc_info.value.code == "ERR_HTTP_REQUEST"
        assert session.http.get_json_list.await_count == 2

    @pytest.mark.asyncio
    async def test_cleanup_closes_debugserver(self, mock_runner: MagicMock) -> None:
        launcher, _, tools = _launcher(mock_runner)
        await launcher.cleanup()
        tools.close.assert_awaited_once()
