"""Async HTTP GET client for local debug proxy endpoints."""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from cordova_debug.errors import http_request_error, malformed_output_error

logger = structlog.get_logger()


class HttpClient:
    """Thin httpx wrapper mapping transport failures to LaunchError."""

    def __init__(
        self, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def get(self, url: str, error_message: str) -> str:
        """GET ``url`` and return the body text.

        Raises:
            LaunchError: ERR_HTTP_REQUEST carrying ``error_message`` on failure
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.text
        except httpx.HTTPError as exc:
            logger.warning("http_get_failed", url=url, error=str(exc))
            raise http_request_error(url, error_message, str(exc)) from None

    async def get_json_list(self, url: str, error_message: str) -> list[dict[str, Any]]:
        """GET ``url`` and decode a JSON array of objects."""
        body = await self.get(url, error_message)
        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            raise malformed_output_error(f"a JSON target list from {url}", body) from None
        if not isinstance(data, list):
            raise malformed_output_error(f"a JSON target list from {url}", body)
        return [entry for entry in data if isinstance(entry, dict)]
