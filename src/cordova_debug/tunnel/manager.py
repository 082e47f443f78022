"""Tunnel manager - adb port forwarding and iOS debug proxy processes."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

import structlog
from lxml import etree

from cordova_debug.errors import (
    LaunchError,
    artifact_not_found_error,
    device_not_found_error,
    emulator_not_found_error,
    malformed_output_error,
)
from cordova_debug.models import TargetKind, TunnelBinding, target_kind
from cordova_debug.process.runner import ProcessHandle, ProcessRunner
from cordova_debug.utils.retry import retry_async

logger = structlog.get_logger()

ADB_INSTALL_HINT = (
    "Unable to find adb. Please ensure it is in your PATH and restart the debugger."
)
WEBKIT_PROXY_INSTALL_HINT = "Install it with 'brew install ios-webkit-debug-proxy'."
DEBUGSERVER_PROXY_INSTALL_HINT = "Install it with 'brew install libimobiledevice'."

_DEVICE_LINE = re.compile(r"^([^\t]+)\tdevice$", re.MULTILINE)
_EMULATOR_LINE = re.compile(r"^(emulator[^\t]+)\tdevice$", re.MULTILINE)
_PS_PID = re.compile(r"^[^ ]+ +([^ ]+) ", re.MULTILINE)

_MANIFEST_PATHS = (
    Path("platforms/android/AndroidManifest.xml"),
    Path("platforms/android/app/src/main/AndroidManifest.xml"),
)

DEFAULT_PID_ATTEMPTS = 5
DEFAULT_PID_DELAY_MS = 5000


def parse_device_list(output: str, target: str) -> str:
    """Pick the device id from `adb devices` output for a target.

    Raises:
        LaunchError: ERR_DEVICE_NOT_FOUND / ERR_EMULATOR_NOT_FOUND
    """
    text = output.replace("\r", "")
    if target_kind(target) is TargetKind.DEVICE:
        match = _DEVICE_LINE.search(text)
        if not match:
            raise device_not_found_error(output)
        return match.group(1)

    match = _EMULATOR_LINE.search(text)
    if not match:
        raise emulator_not_found_error(output)
    return match.group(1)


def parse_pid(ps_output: str) -> str | None:
    """Second column of the first `ps` line, or None when nothing matched."""
    match = _PS_PID.search(ps_output.replace("\r", ""))
    return match.group(1) if match else None


class PortTunnelManager:
    """Owns the session's single adb forward and its iOS proxy processes."""

    def __init__(
        self,
        runner: ProcessRunner,
        *,
        pid_attempts: int = DEFAULT_PID_ATTEMPTS,
        pid_delay_ms: int = DEFAULT_PID_DELAY_MS,
    ) -> None:
        self._runner = runner
        self._pid_attempts = pid_attempts
        self._pid_delay_ms = pid_delay_ms
        self._binding: TunnelBinding | None = None
        self._webkit_proxy: ProcessHandle | None = None
        self._debugserver_proxy: ProcessHandle | None = None

    @property
    def binding(self) -> TunnelBinding | None:
        return self._binding

    # Android

    async def find_device(self, target: str) -> str:
        """Resolve the adb id of the device or emulator to debug."""
        result = await self._runner.run("adb", ["devices"], install_hint=ADB_INSTALL_HINT)
        try:
            device_id = parse_device_list(result.stdout, target)
        except LaunchError:
            logger.error("adb_device_not_found", target=target, listing=result.stdout)
            raise
        logger.info("adb_device_selected", device=device_id, target=target)
        return device_id

    async def read_package_name(self, project_root: Path) -> str:
        """Read the app package id from the Android manifest."""
        for relative in _MANIFEST_PATHS:
            manifest = project_root / relative
            if manifest.is_file():
                break
        else:
            raise artifact_not_found_error(
                "AndroidManifest.xml", str(project_root / "platforms" / "android")
            )

        content = await asyncio.to_thread(manifest.read_bytes)
        try:
            root = etree.fromstring(content)
        except etree.XMLSyntaxError:
            raise malformed_output_error(f"the manifest at {manifest}") from None
        package = root.get("package")
        if not package:
            raise malformed_output_error(f"the package name in {manifest}")
        return package

    async def find_app_pid(self, device_id: str, package: str) -> str:
        """Poll the device process list until the app's PID shows up."""
        args = ["-s", device_id, "shell", f"ps | grep {package}"]

        async def _query() -> str | None:
            # grep exits non-zero when nothing matches yet
            result = await self._runner.run(
                "adb", args, check=False, install_hint=ADB_INSTALL_HINT
            )
            return parse_pid(result.stdout)

        pid = await retry_async(
            _query,
            lambda found: found is not None,
            self._pid_attempts,
            self._pid_delay_ms,
            "Unable to find pid of cordova app",
        )
        assert pid is not None
        logger.info("app_pid_found", device=device_id, package=package, pid=pid)
        return pid

    async def forward(self, device_id: str, port: int, pid: str) -> TunnelBinding:
        """Forward tcp:<port> to the app webview's devtools socket."""
        if self._binding is not None:
            await self.remove_forward()

        await self._runner.run(
            "adb",
            [
                "-s",
                device_id,
                "forward",
                f"tcp:{port}",
                f"localabstract:webview_devtools_remote_{pid}",
            ],
            install_hint=ADB_INSTALL_HINT,
        )
        self._binding = TunnelBinding(device_id=device_id, local_port=port)
        logger.info("adb_forward_set", device=device_id, port=port, pid=pid)
        return self._binding

    async def remove_forward(self) -> None:
        """Remove the active forward. Best-effort: failures are only logged."""
        binding = self._binding
        if binding is None:
            return
        self._binding = None
        try:
            await self._runner.run(
                "adb",
                ["-s", binding.device_id, "forward", "--remove", f"tcp:{binding.local_port}"],
            )
            logger.info("adb_forward_removed", device=binding.device_id, port=binding.local_port)
        except Exception as exc:
            logger.warning(
                "adb_forward_remove_failed",
                device=binding.device_id,
                port=binding.local_port,
                error=str(exc),
            )

    # iOS

    async def start_webkit_proxy(self, port: int, range_min: int, range_max: int) -> ProcessHandle:
        """(Re)start ios_webkit_debug_proxy bridging devices onto local ports."""
        await self._kill_quietly(self._webkit_proxy)
        self._webkit_proxy = None
        handle = await self._runner.spawn(
            "ios_webkit_debug_proxy",
            ["-c", f"null:{port},:{range_min}-{range_max}"],
            install_hint=WEBKIT_PROXY_INSTALL_HINT,
        )
        handle.forward_output()
        self._webkit_proxy = handle
        return handle

    async def start_debugserver_proxy(self, port: int) -> ProcessHandle:
        """(Re)start idevicedebugserverproxy listening on ``port``."""
        await self._kill_quietly(self._debugserver_proxy)
        self._debugserver_proxy = None
        handle = await self._runner.spawn(
            "idevicedebugserverproxy",
            [str(port)],
            install_hint=DEBUGSERVER_PROXY_INSTALL_HINT,
        )
        handle.forward_output()
        self._debugserver_proxy = handle
        return handle

    # Teardown

    async def teardown(self) -> None:
        """Remove the forward and stop proxies, never raising."""
        proxies = (self._webkit_proxy, self._debugserver_proxy)
        self._webkit_proxy = None
        self._debugserver_proxy = None
        await self.remove_forward()
        for proxy in proxies:
            await self._kill_quietly(proxy)

    async def _kill_quietly(self, handle: ProcessHandle | None) -> None:
        if handle is None:
            return
        try:
            await self._runner.kill(handle)
        except Exception as exc:
            logger.warning("proxy_kill_failed", command=handle.command, error=str(exc))
