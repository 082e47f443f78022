"""Tests for ProcessRunner."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cordova_debug.errors import LaunchError
from cordova_debug.process.runner import CommandResult, ProcessHandle, ProcessRunner


def _completed(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    return process


class TestRun:
    """Tests for ProcessRunner.run."""

    @pytest.mark.asyncio
    async def test_captures_output(self) -> None:
        process = _completed(b"List of devices attached\n", b"")
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)) as create:
            result = await ProcessRunner().run("adb", ["devices"], "/proj")

        assert result.stdout == "List of devices attached\n"
        assert result.command == "adb devices"
        assert create.await_args.args[:2] == ("adb", "devices")
        assert create.await_args.kwargs["cwd"] == "/proj"

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self) -> None:
        process = _completed(b"", b"error: no devices", returncode=1)
        with (
            patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)),
            pytest.raises(LaunchError) as exc_info,
        ):
            await ProcessRunner().run("adb", ["forward", "--remove", "tcp:9222"])
        assert exc_info.value.code == "ERR_COMMAND_FAILED"
        assert exc_info.value.context["returncode"] == 1
        assert "no devices" in exc_info.value.context["output"]

    @pytest.mark.asyncio
    async def test_nonzero_exit_unchecked(self) -> None:
        process = _completed(b"", b"", returncode=1)
        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=process)):
            result = await ProcessRunner().run("adb", ["shell", "ps | grep x"], check=False)
        assert result.returncode == 1

    @pytest.mark.asyncio
    async def test_missing_tool(self) -> None:
        with (
            patch(
                "asyncio.create_subprocess_exec",
                new=AsyncMock(side_effect=FileNotFoundError("ionic")),
            ),
            pytest.raises(LaunchError) as exc_info,
        ):
            await ProcessRunner().run("ionic", ["serve"], install_hint="npm install -g ionic")
        assert exc_info.value.code == "ERR_TOOL_MISSING"
        assert exc_info.value.remediation == "npm install -g ionic"


class TestCommandResult:
    """Tests for CommandResult."""

    def test_output_joins_streams(self) -> None:
        result = CommandResult(command="x", returncode=0, stdout="out", stderr="err")
        assert result.output == "out\nerr"

    def test_output_skips_empty(self) -> None:
        result = CommandResult(command="x", returncode=0, stdout="", stderr="err")
        assert result.output == "err"


class TestKill:
    """Tests for ProcessRunner.kill."""

    @pytest.mark.asyncio
    async def test_terminates_running_process(self) -> None:
        process = MagicMock()
        process.returncode = None
        process.wait = AsyncMock(return_value=0)
        handle = ProcessHandle(process, "ionic serve")

        await ProcessRunner().kill(handle)

        process.terminate.assert_called_once()
        process.kill.assert_not_called()

    @pytest.mark.asyncio
    async def test_escalates_when_terminate_ignored(self) -> None:
        process = MagicMock()
        process.returncode = None
        stuck = asyncio.Event()

        async def wait() -> int:
            if not process.kill.called:
                await stuck.wait()
            return -9

        process.wait = AsyncMock(side_effect=wait)
        handle = ProcessHandle(process, "ios_webkit_debug_proxy")

        await ProcessRunner(kill_timeout=0.01).kill(handle)

        process.terminate.assert_called_once()
        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_exited_process_is_left_alone(self) -> None:
        process = MagicMock()
        process.returncode = 0
        handle = ProcessHandle(process, "adb")

        await ProcessRunner().kill(handle)

        process.terminate.assert_not_called()


class TestProcessHandle:
    """Tests for ProcessHandle stream helpers."""

    @pytest.mark.asyncio
    async def test_read_stdout_until_eof(self) -> None:
        stream = asyncio.StreamReader()
        stream.feed_data(b"Running dev server")
        stream.feed_eof()
        process = MagicMock()
        process.stdout = stream
        handle = ProcessHandle(process, "ionic serve")

        assert await handle.read_stdout() == "Running dev server"
        assert await handle.read_stdout() == ""

    @pytest.mark.asyncio
    async def test_forward_output_drains_streams(self) -> None:
        stdout = asyncio.StreamReader()
        stderr = asyncio.StreamReader()
        stdout.feed_data(b"Listing devices on :9221\n")
        stdout.feed_eof()
        stderr.feed_eof()
        process = MagicMock()
        process.stdout = stdout
        process.stderr = stderr
        handle = ProcessHandle(process, "ios_webkit_debug_proxy")

        handle.forward_output()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert stdout.at_eof()
        await handle.close()
