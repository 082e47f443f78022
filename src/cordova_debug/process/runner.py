"""Process runner - spawns external tools and tracks their lifecycles."""

from __future__ import annotations

import asyncio
import contextlib
import os
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from cordova_debug.errors import command_failed_error, tool_missing_error

logger = structlog.get_logger()

_READ_CHUNK = 4096


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a command that ran to completion."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """stdout followed by stderr, for error reports."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class ProcessHandle:
    """A live child process with a readable stdout stream."""

    def __init__(self, process: asyncio.subprocess.Process, command: str) -> None:
        self.process = process
        self.command = command
        self._log_tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def pid(self) -> int:
        return self.process.pid

    async def read_stdout(self) -> str:
        """Return the next stdout chunk, or an empty string at EOF."""
        if self.process.stdout is None:
            return ""
        raw = await self.process.stdout.read(_READ_CHUNK)
        return raw.decode(errors="replace")

    def forward_stderr(self) -> None:
        """Forward stderr lines to the debug log until the stream closes."""
        self._forward("stderr", self.process.stderr)

    def forward_output(self) -> None:
        """Forward both streams to the debug log so the pipes never fill up."""
        self._forward("stdout", self.process.stdout)
        self._forward("stderr", self.process.stderr)

    async def close(self) -> None:
        """Stop background readers."""
        tasks = list(self._log_tasks.values())
        self._log_tasks.clear()
        for task in tasks:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    def _forward(self, name: str, stream: asyncio.StreamReader | None) -> None:
        if stream is None or name in self._log_tasks:
            return
        self._log_tasks[name] = asyncio.create_task(self._log_stream_loop(name, stream))

    async def _log_stream_loop(self, name: str, stream: asyncio.StreamReader) -> None:
        try:
            while True:
                raw = await stream.readline()
                if not raw:
                    break
                line = raw.decode(errors="replace").rstrip()
                if line:
                    logger.debug("process_output", command=self.command, stream=name, line=line)
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("process_output_loop_error", command=self.command, stream=name)


class ProcessRunner:
    """Runs external tools: to completion, or as long-lived children."""

    def __init__(self, kill_timeout: float = 3.0) -> None:
        self._kill_timeout = kill_timeout

    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: Path | str | None = None,
        *,
        check: bool = True,
        install_hint: str = "",
    ) -> CommandResult:
        """Run a command to completion and capture its output.

        Raises:
            LaunchError: ERR_TOOL_MISSING if the executable is not on PATH,
                ERR_COMMAND_FAILED on a non-zero exit when ``check`` is set
        """
        process = await self._create(command, args, cwd, install_hint=install_hint)
        stdout_raw, stderr_raw = await process.communicate()
        result = CommandResult(
            command=_display(command, args),
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout_raw.decode(errors="replace") if stdout_raw else "",
            stderr=stderr_raw.decode(errors="replace") if stderr_raw else "",
        )
        logger.debug("command_finished", command=result.command, returncode=result.returncode)
        if check and result.returncode != 0:
            raise command_failed_error(result.command, result.returncode, result.output)
        return result

    async def spawn(
        self,
        command: str,
        args: Sequence[str],
        cwd: Path | str | None = None,
        *,
        install_hint: str = "",
    ) -> ProcessHandle:
        """Start a long-lived child process with piped stdout/stderr."""
        process = await self._create(command, args, cwd, install_hint=install_hint)
        handle = ProcessHandle(process, _display(command, args))
        logger.info("process_started", command=handle.command, pid=process.pid)
        return handle

    async def kill(self, handle: ProcessHandle) -> None:
        """Terminate a child process and reap it, escalating to SIGKILL."""
        await handle.close()
        process = handle.process
        if process.returncode is not None:
            return

        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._kill_timeout)
        except TimeoutError:
            logger.warning("process_kill", command=handle.command, pid=process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
        logger.info("process_stopped", command=handle.command, pid=process.pid)

    async def _create(
        self,
        command: str,
        args: Sequence[str],
        cwd: Path | str | None,
        *,
        install_hint: str,
    ) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                _resolve_executable(command),
                *args,
                cwd=str(cwd) if cwd is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise tool_missing_error(command, install_hint) from None


def _resolve_executable(command: str) -> str:
    # npm installs cordova/ionic as .cmd shims on Windows
    if os.name == "nt":
        shim = shutil.which(f"{command}.cmd")
        if shim:
            return shim
    return command


def _display(command: str, args: Sequence[str]) -> str:
    return " ".join([command, *args])
