"""Debug protocol boundary - hands endpoints to a DevTools-speaking client."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Protocol

import structlog

from cordova_debug.errors import LaunchError
from cordova_debug.models import EndpointDescriptor
from cordova_debug.net.http import HttpClient
from cordova_debug.process.runner import ProcessHandle, ProcessRunner
from cordova_debug.utils.retry import retry_async

logger = structlog.get_logger()

CHROME_CANDIDATES = ("google-chrome", "chromium", "chromium-browser", "chrome")
MAC_CHROME = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
BROWSER_ATTACH_ATTEMPTS = 10
BROWSER_ATTACH_DELAY_MS = 500


class DebugProtocol(Protocol):
    """What a session needs from the debugger engine."""

    async def attach(self, endpoint: EndpointDescriptor) -> None: ...

    async def launch_browser(
        self, url: str, user_data_dir: Path, port: int, web_root: Path
    ) -> None: ...

    async def disconnect(self) -> None: ...


class DevToolsHandoff:
    """Default engine: resolves DevTools targets and hands them to the operator.

    It confirms the endpoint answers the DevTools target list and logs the
    websocket URL to connect a front end to. Protocol frames are never parsed.
    """

    def __init__(self, runner: ProcessRunner, http: HttpClient) -> None:
        self._runner = runner
        self._http = http
        self._browser: ProcessHandle | None = None
        self.endpoint: EndpointDescriptor | None = None
        self.debugger_url: str | None = None

    async def attach(self, endpoint: EndpointDescriptor) -> None:
        """Pick the target page at the endpoint and record its websocket URL."""
        targets = await self._http.get_json_list(
            f"http://localhost:{endpoint.port}/json",
            "Unable to communicate with the debug endpoint",
        )
        chosen = next(
            (t for t in targets if endpoint.url and t.get("url") == endpoint.url),
            targets[0] if targets else None,
        )
        self.endpoint = endpoint
        self.debugger_url = chosen.get("webSocketDebuggerUrl") if chosen else None
        logger.info(
            "debugger_attached",
            port=endpoint.port,
            url=endpoint.url,
            web_root=str(endpoint.web_root),
            websocket=self.debugger_url,
        )

    async def launch_browser(
        self, url: str, user_data_dir: Path, port: int, web_root: Path
    ) -> None:
        """Start a sandboxed Chrome on ``url`` with remote debugging on ``port``."""
        user_data_dir.mkdir(parents=True, exist_ok=True)
        args = [
            f"--remote-debugging-port={port}",
            "--no-first-run",
            "--no-default-browser-check",
            f"--user-data-dir={user_data_dir}",
            url,
        ]
        last_error: LaunchError | None = None
        for candidate in (*CHROME_CANDIDATES, MAC_CHROME):
            try:
                self._browser = await self._runner.spawn(candidate, args)
            except LaunchError as exc:
                if exc.code != "ERR_TOOL_MISSING":
                    raise
                last_error = exc
                continue
            self._browser.forward_output()
            logger.info("browser_launched", browser=candidate, url=url, port=port)
            break
        else:
            assert last_error is not None
            raise last_error

        # Chrome needs a moment before its DevTools endpoint answers
        await retry_async(
            self._devtools_ready(port),
            bool,
            BROWSER_ATTACH_ATTEMPTS,
            BROWSER_ATTACH_DELAY_MS,
            "Chrome did not expose its DevTools endpoint",
        )
        await self.attach(EndpointDescriptor(port=port, web_root=web_root, cwd=web_root, url=url))

    def _devtools_ready(self, port: int) -> Callable[[], Awaitable[bool]]:
        async def _probe() -> bool:
            try:
                await self._http.get(f"http://localhost:{port}/json/version", "")
            except LaunchError:
                return False
            return True

        return _probe

    async def disconnect(self) -> None:
        """Forget the endpoint and close any browser this engine started."""
        self.endpoint = None
        self.debugger_url = None
        browser, self._browser = self._browser, None
        if browser is not None:
            await self._runner.kill(browser)
