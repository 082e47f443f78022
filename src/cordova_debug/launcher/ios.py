"""iOS launcher - simulator emulation, device install, and webkit proxy attach."""

from __future__ import annotations

import re
import sys
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import structlog

from cordova_debug.errors import (
    LaunchError,
    device_not_found_error,
    emulator_not_found_error,
    unsupported_host_error,
    webview_not_found_error,
)
from cordova_debug.launcher.base import CORDOVA_INSTALL_HINT, PlatformLauncher, find_build_artifact
from cordova_debug.models import (
    AttachSpec,
    EndpointDescriptor,
    LaunchSpec,
    Platform,
    ProjectType,
    TargetKind,
)
from cordova_debug.tunnel.ios_device import IosDeviceTools
from cordova_debug.utils.retry import gather_or_cancel, retry_async

if TYPE_CHECKING:
    from cordova_debug.session.lifecycle import DebugSession

logger = structlog.get_logger()

SIMULATOR_DEVICE_ID = "SIMULATOR"
PROXY_PORT_HINT = 'Try specifying a different "port" parameter in the launch config.'

# Same set encodeURIComponent leaves alone
_URI_SAFE = "-_.!~*'()"
_STARRED_HEADER = re.compile(r"\*+[^*]+\*+")


def strip_target_list(listing: str) -> list[str]:
    """Drop `** Section **` banners and blank lines from `emulate ios --list` output."""
    cleaned = _STARRED_HEADER.sub("", listing)
    return [line.strip() for line in cleaned.splitlines() if line.strip()]


def select_device_port(targets: list[dict[str, Any]], kind: TargetKind) -> int:
    """Pick the per-device port ios_webkit_debug_proxy assigned to the target.

    Entries look like ``{"deviceId": "SIMULATOR", "url": "localhost:9223"}``.
    """
    if kind is TargetKind.DEVICE:
        matches = [t for t in targets if t.get("deviceId") != SIMULATOR_DEVICE_ID]
    else:
        matches = [t for t in targets if t.get("deviceId") == SIMULATOR_DEVICE_ID]

    for entry in matches:
        _, _, port = str(entry.get("url", "")).rpartition(":")
        if port.isdigit():
            return int(port)

    listing = ", ".join(str(t.get("url", "")) for t in targets)
    if kind is TargetKind.DEVICE:
        raise device_not_found_error(listing, PROXY_PORT_HINT)
    raise emulator_not_found_error(listing, PROXY_PORT_HINT)


class IosLauncher(PlatformLauncher):
    """Launches on the simulator or a device; attaches through ios_webkit_debug_proxy."""

    platform = Platform.IOS

    def __init__(
        self,
        session: DebugSession,
        device_tools: IosDeviceTools | None = None,
        host_platform: str | None = None,
    ) -> None:
        super().__init__(session)
        self._tools = device_tools or IosDeviceTools(session.runner)
        self._host = host_platform or sys.platform

    async def launch(
        self, spec: LaunchSpec, project_root: Path, project_type: ProjectType
    ) -> None:
        if self._host != "darwin":
            raise unsupported_host_error("iOS", self._host)

        if spec.target_kind is TargetKind.DEVICE:
            await self._launch_on_device(spec, project_root, project_type.cli)
        else:
            await self._launch_on_simulator(spec, project_root, project_type.cli)

    async def _launch_on_device(self, spec: LaunchSpec, project_root: Path, cli: str) -> None:
        runner = self._session.runner
        await runner.run(cli, ["build", "ios", "--device"], project_root, install_hint=CORDOVA_INSTALL_HINT)

        build_dir = project_root / "platforms" / "ios" / "build" / "device"
        ipa = await find_build_artifact(build_dir, ".ipa", "an ipa to install")
        bundle_id, _ = await gather_or_cancel(
            self._tools.get_bundle_identifier(project_root),
            self._tools.install(ipa),
        )

        await self._session.tunnels.start_debugserver_proxy(spec.ios_debug_proxy_port)
        await self._tools.start_app(
            bundle_id, spec.ios_debug_proxy_port, spec.app_step_launch_timeout_ms
        )

    async def _launch_on_simulator(self, spec: LaunchSpec, project_root: Path, cli: str) -> None:
        runner = self._session.runner
        if spec.target_kind is not TargetKind.NAMED:
            await runner.run(cli, ["emulate", "ios"], project_root, install_hint=CORDOVA_INSTALL_HINT)
            return

        try:
            await runner.run(
                cli,
                ["emulate", "ios", f"--target={spec.target}"],
                project_root,
                install_hint=CORDOVA_INSTALL_HINT,
            )
        except LaunchError as exc:
            if exc.code != "ERR_COMMAND_FAILED":
                raise
            listing = await runner.run(cli, ["emulate", "ios", "--list"], project_root, check=False)
            targets = strip_target_list(listing.output)
            logger.error("ios_target_unavailable", target=spec.target, available=targets)
            raise exc.with_context(available_targets=targets) from None

    async def attach(self, spec: AttachSpec, project_root: Path) -> EndpointDescriptor:
        await self._session.tunnels.start_webkit_proxy(
            spec.port, spec.webkit_range_min, spec.webkit_range_max
        )
        app_path = await self._resolve_app_path(spec, project_root)

        targets = await self._wait_for_proxy(spec)
        device_port = select_device_port(targets, spec.target_kind)
        logger.info("ios_target_found", port=device_port, app=app_path)

        encoded = quote(app_path, safe=_URI_SAFE)
        http = self._session.http

        async def _find_webviews() -> list[dict[str, Any]]:
            views = await http.get_json_list(
                f"http://localhost:{device_port}/json",
                "Unable to communicate with target",
            )
            return [v for v in views if encoded in str(v.get("url", ""))]

        try:
            webviews = await retry_async(
                _find_webviews,
                lambda views: len(views) > 0,
                spec.attach_attempts,
                spec.attach_delay_ms,
                "Unable to find webview",
            )
        except LaunchError as exc:
            if exc.code == "ERR_RETRY_EXHAUSTED":
                raise webview_not_found_error(app_path, spec.attach_attempts) from None
            raise

        return EndpointDescriptor(
            port=device_port,
            web_root=project_root,
            cwd=project_root,
            url=webviews[0].get("url"),
        )

    async def cleanup(self) -> None:
        await self._tools.close()

    async def _resolve_app_path(self, spec: AttachSpec, project_root: Path) -> str:
        if spec.target_kind is TargetKind.DEVICE:
            bundle_id = await self._tools.get_bundle_identifier(project_root)
            return PurePosixPath(await self._tools.get_path_on_device(bundle_id)).name
        build_dir = project_root / "platforms" / "ios" / "build" / "emulator"
        return (await find_build_artifact(build_dir, ".app", "an .app bundle")).name

    async def _wait_for_proxy(self, spec: AttachSpec) -> list[dict[str, Any]]:
        """Read the proxy's device list, giving a freshly spawned proxy time to bind."""
        http = self._session.http
        url = f"http://localhost:{spec.port}/json"
        last_error: LaunchError | None = None

        async def _query() -> list[dict[str, Any]] | None:
            nonlocal last_error
            try:
                return await http.get_json_list(url, "Unable to communicate with ios_webkit_debug_proxy")
            except LaunchError as exc:
                if exc.code != "ERR_HTTP_REQUEST":
                    raise
                last_error = exc
                return None

        try:
            return await retry_async(
                _query,
                lambda targets: targets is not None,
                spec.attach_attempts,
                spec.attach_delay_ms,
                "Unable to communicate with ios_webkit_debug_proxy",
            )
        except LaunchError as exc:
            if exc.code == "ERR_RETRY_EXHAUSTED" and last_error is not None:
                raise last_error from None
            raise
