"""Dev server starter - spawns the Ionic live-reload server and awaits readiness."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from cordova_debug.devserver.patterns import IONIC_PATTERNS, OutputPatterns
from cordova_debug.devserver.watcher import OutputWatcher, ServeMode
from cordova_debug.errors import dev_server_exited_error
from cordova_debug.models import LaunchSpec
from cordova_debug.process.runner import ProcessHandle, ProcessRunner
from cordova_debug.utils.retry import with_timeout

logger = structlog.get_logger()

IONIC_INSTALL_HINT = "Ionic not found, please run 'npm install -g ionic' to install it globally"


@dataclass
class DevServerHandle:
    """A running dev server process and the watcher fed by its stdout."""

    process: ProcessHandle
    watcher: OutputWatcher
    pump_task: asyncio.Task[None] | None = field(default=None, repr=False)


def build_dev_server_args(spec: LaunchSpec, cli_args: Sequence[str]) -> list[str]:
    """Append the address/port overrides from the launch config."""
    args = list(cli_args)
    if spec.dev_server_address:
        args += ["--address", spec.dev_server_address]
    if spec.dev_server_port:
        args += ["--port", str(spec.dev_server_port)]
    return args


def is_livereloading(cli_args: Sequence[str]) -> bool:
    """Whether the invocation keeps the app in sync with source edits."""
    is_serve = bool(cli_args) and cli_args[0] == "serve"
    return (is_serve and "--nolivereload" not in cli_args) or "--livereload" in cli_args


class DevServerStarter:
    """Starts `ionic serve` / `ionic run --livereload` and tracks readiness."""

    def __init__(self, runner: ProcessRunner, patterns: OutputPatterns = IONIC_PATTERNS) -> None:
        self._runner = runner
        self._patterns = patterns

    async def spawn(
        self, spec: LaunchSpec, cli_args: Sequence[str], project_root: Path
    ) -> DevServerHandle:
        """Spawn the dev server and start feeding its output to a watcher.

        Raises:
            LaunchError: ERR_TOOL_MISSING if the Ionic CLI is not installed
        """
        args = build_dev_server_args(spec, cli_args)
        mode = ServeMode.SERVE if args and args[0] == "serve" else ServeMode.RUN
        process = await self._runner.spawn(
            "ionic", args, project_root, install_hint=IONIC_INSTALL_HINT
        )
        process.forward_stderr()

        handle = DevServerHandle(process=process, watcher=OutputWatcher(mode, self._patterns))
        handle.pump_task = asyncio.create_task(self._pump(handle))
        logger.info(
            "dev_server_starting",
            args=args,
            livereload=is_livereloading(args),
            pid=process.pid,
        )
        return handle

    async def wait_until_ready(self, handle: DevServerHandle, spec: LaunchSpec) -> str:
        """Wait for server-ready, then app-ready, and return the server URL.

        Raises:
            LaunchError: ERR_TIMEOUT when either bound expires, or the watcher's
                own failure (ambiguous address, early exit, missing URL)
        """
        watcher = handle.watcher
        await with_timeout(
            watcher.server_ready.wait(),
            spec.dev_server_timeout_ms,
            "Starting the Ionic dev server",
        )
        if watcher.error:
            raise watcher.error

        logger.info("dev_server_building_and_deploying")
        await with_timeout(
            watcher.app_ready.wait(),
            spec.app_ready_timeout_ms,
            "Building and deploying the app",
        )
        if watcher.error:
            raise watcher.error

        url = watcher.dev_server_url()
        logger.info("dev_server_url", url=url)
        return url

    async def stop(self, handle: DevServerHandle) -> None:
        """Kill the dev server process and stop the output pump."""
        try:
            await self._runner.kill(handle.process)
        finally:
            task = handle.pump_task
            if task and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _pump(self, handle: DevServerHandle) -> None:
        """Read stdout in arrival order; keep draining after the watcher detaches."""
        watcher = handle.watcher
        try:
            while True:
                chunk = await handle.process.read_stdout()
                if not chunk:
                    break
                if watcher.detached:
                    logger.debug("dev_server_output", text=chunk.rstrip())
                    continue
                watcher.feed(chunk)
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("dev_server_pump_error")
        watcher.fail(dev_server_exited_error(watcher.output))
