"""Debug session lifecycle - launch, attach, and unconditional disconnect cleanup."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

import structlog

from cordova_debug.devserver.patterns import IONIC_PATTERNS, OutputPatterns
from cordova_debug.devserver.starter import DevServerHandle, DevServerStarter
from cordova_debug.errors import unknown_platform_error
from cordova_debug.launcher.android import AndroidLauncher
from cordova_debug.launcher.base import PlatformLauncher
from cordova_debug.launcher.browser import BrowserLauncher
from cordova_debug.launcher.ios import IosLauncher
from cordova_debug.models import AttachSpec, EndpointDescriptor, LaunchSpec, Platform, TunnelBinding
from cordova_debug.net.http import HttpClient
from cordova_debug.process.runner import ProcessRunner
from cordova_debug.project import detect_project_type, find_project_root
from cordova_debug.protocol import DebugProtocol, DevToolsHandoff
from cordova_debug.tunnel.ios_device import IosDeviceTools
from cordova_debug.tunnel.manager import PortTunnelManager

logger = structlog.get_logger()


class DebugSession:
    """Owns the dev server and tunnels for one debug session.

    At most one dev server and one port forward exist at a time. Both are
    released by disconnect, including after a failed launch.
    """

    def __init__(
        self,
        protocol: DebugProtocol | None = None,
        *,
        runner: ProcessRunner | None = None,
        http: HttpClient | None = None,
        tunnels: PortTunnelManager | None = None,
        ios_tools: IosDeviceTools | None = None,
        patterns: OutputPatterns = IONIC_PATTERNS,
        host_platform: str | None = None,
    ) -> None:
        self.runner = runner or ProcessRunner()
        self.http = http or HttpClient()
        self.tunnels = tunnels or PortTunnelManager(self.runner)
        self.protocol: DebugProtocol = protocol or DevToolsHandoff(self.runner, self.http)
        self._starter = DevServerStarter(self.runner, patterns)
        self._dev_server: DevServerHandle | None = None
        self._launchers: dict[Platform, PlatformLauncher] = {
            Platform.ANDROID: AndroidLauncher(self),
            Platform.IOS: IosLauncher(self, device_tools=ios_tools, host_platform=host_platform),
            Platform.BROWSER: BrowserLauncher(self),
        }

    @property
    def dev_server(self) -> DevServerHandle | None:
        return self._dev_server

    @property
    def tunnel_binding(self) -> TunnelBinding | None:
        return self.tunnels.binding

    def launcher(self, platform: Platform) -> PlatformLauncher:
        try:
            return self._launchers[platform]
        except KeyError:
            raise unknown_platform_error(str(platform)) from None

    async def launch(self, spec: LaunchSpec) -> None:
        """Build, deploy and start the app, then attach (browser attaches itself).

        Raises:
            LaunchError: from whichever step failed; resources started by the
                failed launch are released before it propagates
        """
        launcher = self.launcher(spec.platform)
        project_root = await asyncio.to_thread(find_project_root, spec.cwd)
        project_type = await asyncio.to_thread(detect_project_type, project_root)
        spec = spec.model_copy(update={"cwd": project_root})

        # A previous launch may have left a server running
        await self.stop_dev_server()

        logger.info(
            "launching",
            platform=spec.platform.value,
            target=spec.target,
            project=str(project_root),
            ionic=project_type.ionic,
        )
        try:
            await launcher.launch(spec, project_root, project_type)
            if spec.platform is not Platform.BROWSER:
                await self.attach(spec.to_attach_spec())
        except Exception:
            await self._release_resources()
            raise
        logger.info("launch_complete", platform=spec.platform.value)

    async def attach(self, spec: AttachSpec) -> EndpointDescriptor:
        """Resolve the running app's endpoint and hand it to the protocol engine."""
        launcher = self.launcher(spec.platform)
        project_root = await asyncio.to_thread(find_project_root, spec.cwd)
        logger.info("attaching", platform=spec.platform.value, target=spec.target)

        endpoint = await launcher.attach(spec, project_root)
        await self.protocol.attach(endpoint)
        return endpoint

    async def disconnect(self) -> None:
        """Tear everything down; never raises, always clears dev server and tunnel."""
        try:
            await self.protocol.disconnect()
        except Exception as exc:
            logger.warning("protocol_disconnect_failed", error=str(exc))
        await self._release_resources()
        logger.info("session_disconnected")

    async def start_dev_server(
        self, spec: LaunchSpec, cli_args: Sequence[str], project_root: Path
    ) -> str:
        """Start the Ionic dev server and return its URL once the app is ready.

        Any running dev server is stopped first. The new handle is recorded
        before waiting, so a failed start is still killed by disconnect.
        """
        await self.stop_dev_server()
        handle = await self._starter.spawn(spec, cli_args, project_root)
        self._dev_server = handle
        return await self._starter.wait_until_ready(handle, spec)

    async def stop_dev_server(self) -> None:
        """Kill the dev server, if any. Failures are logged, never raised."""
        handle, self._dev_server = self._dev_server, None
        if handle is None:
            return
        try:
            await self._starter.stop(handle)
        except Exception as exc:
            logger.warning("dev_server_kill_failed", pid=handle.process.pid, error=str(exc))

    async def _release_resources(self) -> None:
        results = await asyncio.gather(
            self.tunnels.teardown(),
            self.stop_dev_server(),
            *(launcher.cleanup() for launcher in self._launchers.values()),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("cleanup_failed", error=str(result))
