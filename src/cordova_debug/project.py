"""Project helpers - locate the Cordova project root and detect its flavor."""

from __future__ import annotations

from pathlib import Path

import structlog

from cordova_debug.errors import project_not_found_error
from cordova_debug.models import ProjectType

logger = structlog.get_logger()

CONFIG_XML = "config.xml"
IONIC_MARKERS = ("ionic.project", "ionic.config.json")


def find_project_root(cwd: Path) -> Path:
    """Walk up from ``cwd`` to the nearest directory containing config.xml.

    Raises:
        LaunchError: If no ancestor is a Cordova project
    """
    start = cwd.expanduser().resolve()
    for candidate in (start, *start.parents):
        if (candidate / CONFIG_XML).is_file():
            return candidate
    raise project_not_found_error(str(cwd))


def detect_project_type(project_root: Path) -> ProjectType:
    """Detect whether the project is driven by the Ionic CLI."""
    ionic = any((project_root / marker).is_file() for marker in IONIC_MARKERS)
    project_type = ProjectType(ionic=ionic)
    logger.debug("project_type_detected", root=str(project_root), ionic=ionic)
    return project_type
