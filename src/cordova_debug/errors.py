"""Error model - Actionable launch/attach errors with remediation hints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class LaunchError(Exception):
    """
    Base error with context and remediation guidance.

    Every failure in a launch or attach chain surfaces as one of these, so the
    operator sees a single message naming the tool or step that failed.
    """

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    remediation: str = ""

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "remediation": self.remediation,
        }

    def with_context(self, **extra: Any) -> LaunchError:
        """Return a copy of this error with extra context merged in."""
        return LaunchError(
            code=self.code,
            message=self.message,
            context={**self.context, **extra},
            remediation=self.remediation,
        )


# Specific error constructors for common cases


def unknown_platform_error(platform: str | None) -> LaunchError:
    """Create error for an unrecognized platform."""
    return LaunchError(
        code="ERR_UNKNOWN_PLATFORM",
        message=f"Unknown Platform: {platform}",
        context={"platform": platform},
        remediation="Use one of 'android', 'ios' or 'browser'.",
    )


def unsupported_host_error(platform: str, host: str) -> LaunchError:
    """Create error for a platform that cannot be launched from this host OS."""
    return LaunchError(
        code="ERR_UNSUPPORTED_HOST",
        message=f"Unable to launch {platform} on non-mac machines",
        context={"platform": platform, "host": host},
        remediation="iOS apps can only be launched from macOS with Xcode installed.",
    )


def unsupported_project_error(platform: str, reason: str) -> LaunchError:
    """Create error for a project flavor the platform does not support."""
    return LaunchError(
        code="ERR_UNSUPPORTED_PROJECT",
        message=reason,
        context={"platform": platform},
        remediation="Use an Ionic project, or pick the 'android' or 'ios' platform.",
    )


def project_not_found_error(cwd: str) -> LaunchError:
    """Create error for a working directory outside any Cordova project."""
    return LaunchError(
        code="ERR_PROJECT_NOT_FOUND",
        message=f"No Cordova project found at or above {cwd}",
        context={"cwd": cwd},
        remediation="Point 'cwd' at a directory containing config.xml.",
    )


def tool_missing_error(tool: str, install_hint: str = "") -> LaunchError:
    """Create error for an external executable absent from PATH."""
    remediation = install_hint or (
        f"Install {tool}, ensure it is in your PATH and restart the debugger."
    )
    return LaunchError(
        code="ERR_TOOL_MISSING",
        message=f"Unable to find {tool}. Please ensure it is in your PATH",
        context={"tool": tool},
        remediation=remediation,
    )


def command_failed_error(command: str, returncode: int | None, output: str) -> LaunchError:
    """Create error for an external command that exited unsuccessfully."""
    return LaunchError(
        code="ERR_COMMAND_FAILED",
        message=f"Command failed: {command}",
        context={"command": command, "returncode": returncode, "output": output},
        remediation="Check the command output above, fix the reported problem, then retry.",
    )


def build_failed_error(platform: str, stdout: str, stderr: str) -> LaunchError:
    """Create error for a build/run that reported an ERROR marker."""
    return LaunchError(
        code="ERR_BUILD_FAILED",
        message=f"Error running {platform}",
        context={"platform": platform, "stdout": stdout, "stderr": stderr},
        remediation="Inspect the build output and fix the reported errors.",
    )


def artifact_not_found_error(kind: str, directory: str) -> LaunchError:
    """Create error for a missing build artifact (ipa, app bundle, manifest)."""
    return LaunchError(
        code="ERR_ARTIFACT_NOT_FOUND",
        message=f"Unable to find {kind} in {directory}",
        context={"kind": kind, "directory": directory},
        remediation="Build the project for this platform first.",
    )


def device_not_found_error(listing: str = "", hint: str = "") -> LaunchError:
    """Create error for no attached physical device."""
    return LaunchError(
        code="ERR_DEVICE_NOT_FOUND",
        message="Unable to find device",
        context={"listing": listing},
        remediation=hint or "Connect a device with USB debugging enabled and retry.",
    )


def emulator_not_found_error(listing: str = "", hint: str = "") -> LaunchError:
    """Create error for no running emulator or simulator."""
    return LaunchError(
        code="ERR_EMULATOR_NOT_FOUND",
        message="Unable to find emulator",
        context={"listing": listing},
        remediation=hint or "Start an emulator and wait for it to finish booting.",
    )


def retry_exhausted_error(failure: str, attempts: int) -> LaunchError:
    """Create error for a polling operation that never became acceptable."""
    return LaunchError(
        code="ERR_RETRY_EXHAUSTED",
        message=failure,
        context={"attempts": attempts},
        remediation="Make sure the app is running, or increase the attempt count/delay.",
    )


def timeout_error(operation: str, timeout_ms: float) -> LaunchError:
    """Create error for a step that did not finish within its bound."""
    return LaunchError(
        code="ERR_TIMEOUT",
        message=f"{operation} timed out ({int(timeout_ms)} ms)",
        context={"operation": operation, "timeout_ms": timeout_ms},
        remediation="Increase the timeout or check the tool output for a stuck prompt.",
    )


def malformed_output_error(what: str, output: str = "") -> LaunchError:
    """Create error for tool output that could not be interpreted."""
    return LaunchError(
        code="ERR_MALFORMED_OUTPUT",
        message=f"Unable to determine {what}",
        context={"what": what, "output": output},
        remediation="Please try re-launching the debugger.",
    )


def ambiguous_dev_server_address_error(candidates: list[str]) -> LaunchError:
    """Create error for a dev server asking which network address to bind."""
    message = (
        "Multiple addresses available for the Ionic dev server, please specify the "
        "'devServerAddress' property in the launch config."
    )
    if candidates:
        message += "\n".join([" Available addresses:", *(f" {c}" for c in candidates)])
    return LaunchError(
        code="ERR_AMBIGUOUS_DEV_SERVER_ADDRESS",
        message=message,
        context={"candidates": candidates},
        remediation="Set 'devServerAddress' to one of the listed addresses.",
    )


def dev_server_exited_error(output: str) -> LaunchError:
    """Create error for a dev server that stopped before it became ready."""
    return LaunchError(
        code="ERR_DEV_SERVER_EXITED",
        message="The Ionic dev server exited before it was ready",
        context={"output": output},
        remediation="Run the same ionic command in a terminal to see why it exits.",
    )


def webview_not_found_error(app_path: str, attempts: int) -> LaunchError:
    """Create error for an app whose webview never appeared in the proxy."""
    return LaunchError(
        code="ERR_WEBVIEW_NOT_FOUND",
        message="Unable to find webview",
        context={"app_path": app_path, "attempts": attempts},
        remediation="Make sure the app is in the foreground, or raise 'attachAttempts'.",
    )


def app_not_installed_error(bundle_id: str) -> LaunchError:
    """Create error for a bundle id the device does not know."""
    return LaunchError(
        code="ERR_APP_NOT_INSTALLED",
        message=f"App {bundle_id} is not installed on the device",
        context={"bundle_id": bundle_id},
        remediation="Launch (rather than attach) so the app is built and installed first.",
    )


def app_start_failed_error(bundle_id: str, reason: str) -> LaunchError:
    """Create error for an iOS app the debugserver could not start."""
    return LaunchError(
        code="ERR_APP_START_FAILED",
        message=f"Failed to start {bundle_id}: {reason}",
        context={"bundle_id": bundle_id, "reason": reason},
        remediation="Unlock the device, trust this computer, then retry.",
    )


def http_request_error(url: str, message: str, reason: str) -> LaunchError:
    """Create error for a failed HTTP GET against a local proxy."""
    return LaunchError(
        code="ERR_HTTP_REQUEST",
        message=message,
        context={"url": url, "reason": reason},
        remediation="Check that the debug proxy is running and the 'port' setting is correct.",
    )
