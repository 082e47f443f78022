"""Settings locations and logging setup."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import structlog

CHROME_DATA_DIR = "chrome_sandbox_dir"


def settings_home() -> Path:
    """Directory holding per-user debugger state (browser profiles, caches)."""
    override = os.environ.get("CORDOVA_DEBUG_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".cordova-debug"


def chrome_user_data_dir() -> Path:
    """Sandboxed Chrome profile used when debugging the browser platform."""
    return settings_home() / CHROME_DATA_DIR


def configure_logging(verbose: bool = False) -> None:
    """Route structlog events to the console at INFO (or DEBUG when verbose)."""
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
