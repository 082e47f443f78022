"""Shared CLI helpers."""

from __future__ import annotations

import json
from typing import Any

import typer
from pydantic import ValidationError

from cordova_debug.errors import LaunchError
from cordova_debug.models import EndpointDescriptor


def format_json(data: Any) -> str:
    return json.dumps(data, indent=2, sort_keys=True, default=str)


def endpoint_to_dict(endpoint: EndpointDescriptor) -> dict[str, Any]:
    return {
        "port": endpoint.port,
        "url": endpoint.url,
        "web_root": str(endpoint.web_root),
        "cwd": str(endpoint.cwd),
    }


def render_error(error: LaunchError) -> None:
    """Print an error with its hint and exit non-zero."""
    typer.echo(f"{error.code}: {error.message}")
    if error.remediation:
        typer.echo(f"Hint: {error.remediation}")
    raise typer.Exit(code=1)


def render_validation_error(error: ValidationError) -> None:
    for issue in error.errors():
        location = ".".join(str(part) for part in issue["loc"]) or "config"
        typer.echo(f"ERR_INVALID_CONFIG: {location}: {issue['msg']}")
    raise typer.Exit(code=1)


def collect_overrides(**options: Any) -> dict[str, Any]:
    """Drop options the user did not pass so config-file values win."""
    return {name: value for name, value in options.items() if value is not None}
