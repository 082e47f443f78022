"""Output watcher - dev server readiness state machine over streamed output."""

from __future__ import annotations

import asyncio
from enum import Enum

import structlog

from cordova_debug.devserver.patterns import ANSI_ESCAPE, IONIC_PATTERNS, OutputPatterns
from cordova_debug.errors import (
    LaunchError,
    ambiguous_dev_server_address_error,
    malformed_output_error,
)

logger = structlog.get_logger()


class WatcherState(Enum):
    """Dev server startup states."""

    STARTING = "starting"
    SERVER_READY = "server_ready"
    APP_READY = "app_ready"
    FAILED = "failed"


class ServeMode(Enum):
    """What the dev server invocation does after the server is up."""

    SERVE = "serve"  # serve assets only; ready as soon as the server is
    RUN = "run"  # run/emulate: build and deploy follow the server banner


_TERMINAL = {WatcherState.APP_READY, WatcherState.FAILED}
_MAX_ESCAPE = 16


class OutputWatcher:
    """Classifies accumulated dev server output.

    Each chunk is stripped of escape sequences once and appended to the
    accumulator, then the whole text is rescanned, since markers may be split
    across chunk boundaries. The watcher sets ``server_ready`` and
    ``app_ready`` as it progresses; on failure both are set so waiters wake up
    and find ``error`` populated. Timeouts are the caller's job.
    """

    def __init__(self, mode: ServeMode, patterns: OutputPatterns = IONIC_PATTERNS) -> None:
        self.mode = mode
        self.patterns = patterns
        self.state = WatcherState.STARTING
        self.error: LaunchError | None = None
        self.server_ready = asyncio.Event()
        self.app_ready = asyncio.Event()
        self._text = ""
        self._partial_escape = ""

    @property
    def output(self) -> str:
        """Accumulated output with terminal escape sequences removed."""
        return self._text

    @property
    def detached(self) -> bool:
        """True once the watcher ignores further output."""
        return self.state in _TERMINAL

    def feed(self, chunk: str) -> WatcherState:
        """Consume one output chunk and return the resulting state."""
        if self.detached:
            return self.state
        self._append(chunk)
        text = self._text

        if self.patterns.ambiguous_address.search(text):
            candidates = self.patterns.address_candidate.findall(text)
            self._fail(ambiguous_dev_server_address_error(candidates))
            return self.state

        if self.state is WatcherState.STARTING and self.patterns.ready.search(text):
            self.state = WatcherState.SERVER_READY
            self.server_ready.set()
            logger.info("dev_server_ready")

        if self.state is WatcherState.SERVER_READY and self._app_is_ready(text):
            self.state = WatcherState.APP_READY
            self.app_ready.set()
            logger.info("dev_server_app_ready", mode=self.mode.value)

        return self.state

    def fail(self, error: LaunchError) -> None:
        """Fail from outside, e.g. when the stream ends before readiness."""
        if not self.detached:
            self._fail(error)

    def dev_server_url(self) -> str:
        """Extract the dev server base URL from the accumulated output.

        Raises:
            LaunchError: ERR_MALFORMED_OUTPUT if no URL was printed
        """
        match = self.patterns.url.search(self.output)
        if not match:
            raise malformed_output_error("the Ionic dev server address", self.output)
        return match.group(1)

    def _app_is_ready(self, text: str) -> bool:
        if self.mode is ServeMode.SERVE:
            return True
        # The run/emulate build reprints the server banner once the app is deployed.
        return len(self.patterns.ready.findall(text)) >= 2

    def _fail(self, error: LaunchError) -> None:
        self.state = WatcherState.FAILED
        self.error = error
        self.server_ready.set()
        self.app_ready.set()
        logger.warning("dev_server_failed", code=error.code)

    def _append(self, chunk: str) -> None:
        # An escape sequence cut at the chunk boundary is held back until complete
        raw = self._partial_escape + chunk
        self._partial_escape = ""
        start = raw.rfind("\x1b")
        if start >= 0 and len(raw) - start < _MAX_ESCAPE and not ANSI_ESCAPE.match(raw, start):
            raw, self._partial_escape = raw[:start], raw[start:]
        self._text += ANSI_ESCAPE.sub("", raw)
