"""CLI entry point using Typer."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from cordova_debug.cli.utils import (
    collect_overrides,
    endpoint_to_dict,
    format_json,
    render_error,
    render_validation_error,
)
from cordova_debug.config import configure_logging
from cordova_debug.errors import LaunchError
from cordova_debug.models import LaunchSpec
from cordova_debug.session.lifecycle import DebugSession

app = typer.Typer(
    name="cordova-debug",
    help="Launch and attach debuggers to Cordova and Ionic apps",
    no_args_is_help=True,
)


@app.command()
def version() -> None:
    """Show version information."""
    from cordova_debug import __version__

    typer.echo(f"cordova-debug v{__version__}")


async def wait_for_interrupt() -> None:
    """Block until the event loop is cancelled by Ctrl-C."""
    await asyncio.Event().wait()


async def _hold_session(
    session: DebugSession, connect: Callable[[], Awaitable[Any]], json_output: bool
) -> None:
    try:
        result = await connect()
        if json_output and result is not None:
            typer.echo(format_json(endpoint_to_dict(result)))
        typer.echo("Debugger ready. Press Ctrl-C to disconnect.")
        await wait_for_interrupt()
    finally:
        await session.disconnect()


def _load_spec(config: Path | None, overrides: dict[str, Any]) -> LaunchSpec:
    try:
        if config is not None:
            return LaunchSpec.from_file(config, **overrides)
        return LaunchSpec.model_validate(overrides)
    except ValidationError as exc:
        render_validation_error(exc)
        raise
    except LaunchError as exc:
        render_error(exc)
        raise
    except (OSError, json.JSONDecodeError) as exc:
        typer.echo(f"ERR_INVALID_CONFIG: cannot read {config}: {exc}")
        raise typer.Exit(code=1) from exc


def _run(session: DebugSession, connect: Callable[[], Awaitable[Any]], json_output: bool) -> None:
    try:
        asyncio.run(_hold_session(session, connect, json_output))
    except LaunchError as exc:
        render_error(exc)
    except KeyboardInterrupt:
        typer.echo("Disconnected")


@app.command("launch")
def launch(
    platform: str | None = typer.Option(None, "--platform", "-p", help="android, ios or browser"),
    target: str | None = typer.Option(
        None, "--target", "-t", help="'device', 'emulator' or a named target"
    ),
    cwd: Path | None = typer.Option(None, "--cwd", help="Project directory"),
    port: int | None = typer.Option(None, "--port", help="Local debug port"),
    config: Path | None = typer.Option(
        None, "--config", "-c", help="JSON launch configuration file"
    ),
    dev_server_address: str | None = typer.Option(
        None, "--dev-server-address", help="Address the Ionic dev server binds to"
    ),
    dev_server_port: int | None = typer.Option(
        None, "--dev-server-port", help="Port the Ionic dev server listens on"
    ),
    no_livereload: bool = typer.Option(False, "--no-livereload", help="Disable live reload"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Build, deploy and start the app, then attach a debugger."""
    configure_logging(verbose)
    overrides = collect_overrides(
        platform=platform,
        target=target,
        cwd=cwd,
        port=port,
        dev_server_address=dev_server_address,
        dev_server_port=dev_server_port,
        no_livereload=True if no_livereload else None,
    )
    spec = _load_spec(config, overrides)
    session = DebugSession()
    _run(session, lambda: session.launch(spec), json_output=False)


@app.command("attach")
def attach(
    platform: str | None = typer.Option(None, "--platform", "-p", help="android or ios"),
    target: str | None = typer.Option(
        None, "--target", "-t", help="'device', 'emulator' or a named target"
    ),
    cwd: Path | None = typer.Option(None, "--cwd", help="Project directory"),
    port: int | None = typer.Option(None, "--port", help="Local debug port"),
    config: Path | None = typer.Option(
        None, "--config", "-c", help="JSON launch configuration file"
    ),
    attach_attempts: int | None = typer.Option(
        None, "--attach-attempts", help="Webview lookup attempts (iOS)"
    ),
    attach_delay: int | None = typer.Option(
        None, "--attach-delay", help="Delay between webview lookups in ms (iOS)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the endpoint as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Attach a debugger to an app that is already running."""
    configure_logging(verbose)
    overrides = collect_overrides(
        platform=platform,
        target=target,
        cwd=cwd,
        port=port,
        attach_attempts=attach_attempts,
        attach_delay_ms=attach_delay,
    )
    spec = _load_spec(config, overrides).to_attach_spec()
    session = DebugSession()
    _run(session, lambda: session.attach(spec), json_output=json_output)


if __name__ == "__main__":
    app()
