"""iOS device helpers - bundle ids, on-device paths, and app start via debugserver."""

from __future__ import annotations

import asyncio
import contextlib
import plistlib
from pathlib import Path
from typing import Any
from xml.parsers.expat import ExpatError

import structlog
from lxml import etree

from cordova_debug.errors import (
    LaunchError,
    app_not_installed_error,
    app_start_failed_error,
    artifact_not_found_error,
    malformed_output_error,
)
from cordova_debug.process.runner import ProcessRunner

logger = structlog.get_logger()

IDEVICEINSTALLER_INSTALL_HINT = (
    "Unable to find ideviceinstaller. Install it with 'brew install ideviceinstaller' "
    "and make sure it is in your PATH."
)


def gdb_packet(payload: str) -> bytes:
    """Frame a GDB remote serial protocol packet: $payload#checksum."""
    checksum = sum(payload.encode()) % 256
    return f"${payload}#{checksum:02x}".encode()


async def read_gdb_packet(reader: asyncio.StreamReader) -> str:
    """Read one packet payload, skipping leading acks."""
    data = await reader.readuntil(b"#")
    await reader.readexactly(2)
    start = data.find(b"$")
    if start < 0:
        raise malformed_output_error("a debugserver reply", data.decode(errors="replace"))
    return data[start + 1 : -1].decode(errors="replace")


class IosDeviceTools:
    """Wraps libimobiledevice tools and the debugserver launch handshake."""

    def __init__(self, runner: ProcessRunner) -> None:
        self._runner = runner
        self._connection: asyncio.StreamWriter | None = None

    async def get_bundle_identifier(self, project_root: Path) -> str:
        """Resolve the app bundle id from the generated Info.plist or config.xml."""
        ios_dir = project_root / "platforms" / "ios"
        for xcodeproj in sorted(ios_dir.glob("*.xcodeproj")):
            name = xcodeproj.stem
            info_plist = ios_dir / name / f"{name}-Info.plist"
            if not info_plist.is_file():
                continue
            try:
                info = plistlib.loads(await asyncio.to_thread(info_plist.read_bytes))
            except (plistlib.InvalidFileException, ExpatError):
                raise malformed_output_error(f"the bundle identifier in {info_plist}") from None
            bundle_id = info.get("CFBundleIdentifier")
            # Newer Xcode templates defer to the build setting
            if isinstance(bundle_id, str) and bundle_id and "$(" not in bundle_id:
                return bundle_id

        config_xml = project_root / "config.xml"
        if not config_xml.is_file():
            raise artifact_not_found_error("config.xml", str(project_root))
        try:
            root = etree.fromstring(await asyncio.to_thread(config_xml.read_bytes))
        except etree.XMLSyntaxError:
            raise malformed_output_error(f"the bundle identifier in {config_xml}") from None
        bundle_id = root.get("ios-CFBundleIdentifier") or root.get("id")
        if not bundle_id:
            raise malformed_output_error(f"the bundle identifier in {config_xml}")
        return bundle_id

    async def get_path_on_device(self, bundle_id: str) -> str:
        """Return the installed app's executable path on the device."""
        result = await self._runner.run(
            "ideviceinstaller",
            ["-l", "-o", "xml"],
            install_hint=IDEVICEINSTALLER_INSTALL_HINT,
        )
        try:
            apps: Any = plistlib.loads(result.stdout.encode())
        except (plistlib.InvalidFileException, ExpatError):
            raise malformed_output_error("the installed app list", result.stdout) from None
        if not isinstance(apps, list):
            raise malformed_output_error("the installed app list", result.stdout)

        for app in apps:
            if not isinstance(app, dict) or app.get("CFBundleIdentifier") != bundle_id:
                continue
            path, executable = app.get("Path"), app.get("CFBundleExecutable")
            if not path or not executable:
                raise malformed_output_error(f"the install path of {bundle_id}", result.stdout)
            return f"{path}/{executable}"
        raise app_not_installed_error(bundle_id)

    async def install(self, ipa_path: Path) -> None:
        """Install an .ipa on the connected device."""
        logger.info("ios_app_installing", ipa=str(ipa_path))
        await self._runner.run(
            "ideviceinstaller",
            ["-i", str(ipa_path)],
            install_hint=IDEVICEINSTALLER_INSTALL_HINT,
        )

    async def start_app(self, bundle_id: str, proxy_port: int, step_timeout_ms: int) -> None:
        """Launch the app through idevicedebugserverproxy and leave it running.

        Each handshake step must be answered within ``step_timeout_ms``. After
        the final continue, silence for one step means the app is running.

        Raises:
            LaunchError: ERR_APP_START_FAILED if any step is refused, times out,
                or the app stops straight away
        """
        executable = await self.get_path_on_device(bundle_id)
        step = step_timeout_ms / 1000

        try:
            reader, writer = await asyncio.open_connection("localhost", proxy_port)
        except OSError as exc:
            raise app_start_failed_error(
                bundle_id, f"cannot connect to debugserver proxy on port {proxy_port}"
            ) from exc

        try:
            encoded = executable.encode().hex()
            await self._expect_ok(reader, writer, f"A{len(encoded)},0,{encoded}", step, bundle_id)
            await self._expect_ok(reader, writer, "qLaunchSuccess", step, bundle_id)

            writer.write(gdb_packet("vCont;c"))
            await writer.drain()
            try:
                reply = await asyncio.wait_for(read_gdb_packet(reader), timeout=step)
            except TimeoutError:
                self._connection = writer
                logger.info("ios_app_started", bundle_id=bundle_id, path=executable)
                return
            raise app_start_failed_error(bundle_id, f"app stopped right after launch ({reply})")
        except LaunchError:
            await self._close_writer(writer)
            raise
        except (OSError, asyncio.IncompleteReadError, asyncio.LimitOverrunError) as exc:
            await self._close_writer(writer)
            raise app_start_failed_error(bundle_id, f"debugserver connection lost: {exc}") from exc

    async def close(self) -> None:
        """Drop the debugserver connection held open for a started app."""
        writer = self._connection
        self._connection = None
        if writer is not None:
            await self._close_writer(writer)

    async def _expect_ok(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        payload: str,
        step: float,
        bundle_id: str,
    ) -> None:
        writer.write(gdb_packet(payload))
        await writer.drain()
        try:
            reply = await asyncio.wait_for(read_gdb_packet(reader), timeout=step)
        except TimeoutError:
            raise app_start_failed_error(
                bundle_id, f"no debugserver reply to {payload[:16]} within {int(step * 1000)} ms"
            ) from None
        writer.write(b"+")
        if reply != "OK":
            raise app_start_failed_error(bundle_id, f"debugserver replied {reply!r}")

    @staticmethod
    async def _close_writer(writer: asyncio.StreamWriter) -> None:
        writer.close()
        with contextlib.suppress(Exception):
            await writer.wait_closed()
