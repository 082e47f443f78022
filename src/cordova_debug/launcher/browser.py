"""Browser launcher - ionic serve plus a sandboxed Chrome."""

from __future__ import annotations

from pathlib import Path

import structlog

from cordova_debug.config import chrome_user_data_dir
from cordova_debug.errors import unsupported_project_error
from cordova_debug.launcher.base import PlatformLauncher
from cordova_debug.models import LaunchSpec, Platform, ProjectType

logger = structlog.get_logger()


class BrowserLauncher(PlatformLauncher):
    """Serves an Ionic app locally and opens it in Chrome with remote debugging."""

    platform = Platform.BROWSER

    async def launch(
        self, spec: LaunchSpec, project_root: Path, project_type: ProjectType
    ) -> None:
        if not project_type.ionic:
            raise unsupported_project_error(
                "browser", "Browser is currently only supported for Ionic projects"
            )

        args = ["serve", "--nobrowser"]
        if spec.no_livereload:
            args.append("--nolivereload")

        try:
            url = await self._session.start_dev_server(spec, args, project_root)
            logger.info("browser_attaching", url=url, port=spec.port)
            await self._session.protocol.launch_browser(
                url, chrome_user_data_dir(), spec.port, project_root
            )
        except Exception:
            await self._session.stop_dev_server()
            raise
