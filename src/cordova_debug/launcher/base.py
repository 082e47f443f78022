"""Platform launcher interface shared by the Android, iOS and browser strategies."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from cordova_debug.errors import artifact_not_found_error, unknown_platform_error
from cordova_debug.models import AttachSpec, EndpointDescriptor, LaunchSpec, Platform, ProjectType

if TYPE_CHECKING:
    from cordova_debug.session.lifecycle import DebugSession

CORDOVA_INSTALL_HINT = "Install Cordova with 'npm install -g cordova' and make sure it is in your PATH."


class PlatformLauncher(ABC):
    """Launch and attach strategy for one platform.

    Launchers are stateless apart from helpers they own; session resources
    (dev server, tunnels) are reached through the owning session.
    """

    platform: Platform

    def __init__(self, session: DebugSession) -> None:
        self._session = session

    @abstractmethod
    async def launch(
        self, spec: LaunchSpec, project_root: Path, project_type: ProjectType
    ) -> None:
        """Build, deploy and start the app."""

    async def attach(self, spec: AttachSpec, project_root: Path) -> EndpointDescriptor:
        """Resolve the debug endpoint of the running app."""
        raise unknown_platform_error(self.platform.value)

    async def cleanup(self) -> None:
        """Release launcher-held resources on disconnect."""


async def find_build_artifact(directory: Path, suffix: str, kind: str) -> Path:
    """Return the first entry in ``directory`` with the given suffix.

    Raises:
        LaunchError: ERR_ARTIFACT_NOT_FOUND if the directory is missing or has no match
    """

    def _scan() -> list[Path]:
        if not directory.is_dir():
            return []
        return sorted(entry for entry in directory.iterdir() if entry.name.endswith(suffix))

    matches = await asyncio.to_thread(_scan)
    if not matches:
        raise artifact_not_found_error(kind, str(directory))
    return matches[0]
