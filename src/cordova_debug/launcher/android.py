"""Android launcher - cordova run + adb webview forwarding."""

from __future__ import annotations

import re
from pathlib import Path

import structlog

from cordova_debug.errors import build_failed_error
from cordova_debug.launcher.base import CORDOVA_INSTALL_HINT, PlatformLauncher
from cordova_debug.models import (
    AttachSpec,
    EndpointDescriptor,
    LaunchSpec,
    Platform,
    ProjectType,
    TargetKind,
    target_kind,
)
from cordova_debug.utils.retry import gather_or_cancel

logger = structlog.get_logger()

_ERROR_LINE = re.compile(r"(ERROR.*)")


def android_run_args(target: str) -> list[str]:
    """Build `run android` arguments for a device, emulator or named target."""
    kind = target_kind(target)
    args = ["run", "android", "--device" if kind is TargetKind.DEVICE else "--emulator", "--verbose"]
    if kind is TargetKind.NAMED:
        args.append(f"--target={target}")
    return args


class AndroidLauncher(PlatformLauncher):
    """Runs the app with the project CLI and forwards its webview socket."""

    platform = Platform.ANDROID

    async def launch(
        self, spec: LaunchSpec, project_root: Path, project_type: ProjectType
    ) -> None:
        args = android_run_args(spec.target)

        # Ionic deploys the app itself when live reload is on
        if project_type.ionic and not spec.no_livereload:
            args.append("--livereload")
            await self._session.start_dev_server(spec, args, project_root)
            return

        result = await self._session.runner.run(
            project_type.cli, args, project_root, install_hint=CORDOVA_INSTALL_HINT
        )
        if _ERROR_LINE.search(result.stdout):
            logger.error("android_run_failed", stdout=result.stdout, stderr=result.stderr)
            raise build_failed_error("android", result.stdout, result.stderr)
        logger.info("android_app_launched", target=spec.target)

    async def attach(self, spec: AttachSpec, project_root: Path) -> EndpointDescriptor:
        tunnels = self._session.tunnels
        device_id, package = await gather_or_cancel(
            tunnels.find_device(spec.target),
            tunnels.read_package_name(project_root),
        )
        pid = await tunnels.find_app_pid(device_id, package)
        logger.info("forwarding_debug_port", device=device_id, port=spec.port)
        await tunnels.forward(device_id, spec.port, pid)
        return EndpointDescriptor(port=spec.port, web_root=project_root, cwd=project_root)
