"""Launch/attach configuration models and session value types."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cordova_debug.errors import unknown_platform_error

DEFAULT_DEBUG_PORT = 9222
DEFAULT_TARGET = "emulator"
DEFAULT_IOS_DEBUG_PROXY_PORT = 9221
DEFAULT_APP_STEP_LAUNCH_TIMEOUT_MS = 5000
DEFAULT_WEBKIT_RANGE_MIN = 9223
DEFAULT_WEBKIT_RANGE_MAX = 9322
DEFAULT_ATTACH_ATTEMPTS = 5
DEFAULT_ATTACH_DELAY_MS = 1000
DEFAULT_DEV_SERVER_TIMEOUT_MS = 10000
DEFAULT_APP_READY_TIMEOUT_MS = 120000


class Platform(Enum):
    """Supported launch platforms."""

    ANDROID = "android"
    IOS = "ios"
    BROWSER = "browser"

    @classmethod
    def parse(cls, value: str | Platform | None) -> Platform:
        """Parse a platform name case-insensitively.

        Raises:
            LaunchError: If the name is not a known platform
        """
        if isinstance(value, Platform):
            return value
        normalized = (value or "").strip().lower()
        for platform in cls:
            if platform.value == normalized:
                return platform
        raise unknown_platform_error(value)


class TargetKind(Enum):
    """How a target string is interpreted."""

    DEVICE = "device"
    EMULATOR = "emulator"
    NAMED = "named"


def target_kind(target: str) -> TargetKind:
    """Classify a target: 'device', 'emulator', or a named target id."""
    lowered = target.lower()
    if lowered == "device":
        return TargetKind.DEVICE
    if lowered == "emulator":
        return TargetKind.EMULATOR
    return TargetKind.NAMED


def _port(value: int) -> int:
    if not 1 <= value <= 65535:
        raise ValueError(f"port out of range: {value}")
    return value


class AttachSpec(BaseModel):
    """Everything an attach needs to locate the app's debug endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    platform: Platform
    target: str = DEFAULT_TARGET
    cwd: Path = Field(default_factory=Path.cwd)
    port: int = DEFAULT_DEBUG_PORT
    webkit_range_min: int = Field(DEFAULT_WEBKIT_RANGE_MIN, alias="webkitRangeMin")
    webkit_range_max: int = Field(DEFAULT_WEBKIT_RANGE_MAX, alias="webkitRangeMax")
    attach_attempts: int = Field(DEFAULT_ATTACH_ATTEMPTS, ge=1, alias="attachAttempts")
    attach_delay_ms: int = Field(DEFAULT_ATTACH_DELAY_MS, ge=0, alias="attachDelay")

    @field_validator("platform", mode="before")
    @classmethod
    def _parse_platform(cls, value: Any) -> Platform:
        return Platform.parse(value)

    @field_validator("target", mode="before")
    @classmethod
    def _default_target(cls, value: Any) -> str:
        return str(value) if value else DEFAULT_TARGET

    @field_validator("port", "webkit_range_min", "webkit_range_max")
    @classmethod
    def _check_port(cls, value: int) -> int:
        return _port(value)

    @model_validator(mode="after")
    def _check_range(self) -> AttachSpec:
        if self.webkit_range_min > self.webkit_range_max:
            raise ValueError("webkitRangeMin must not exceed webkitRangeMax")
        return self

    @property
    def target_kind(self) -> TargetKind:
        return target_kind(self.target)


class LaunchSpec(AttachSpec):
    """A launch request: attach settings plus build and dev-server options."""

    ios_debug_proxy_port: int = Field(DEFAULT_IOS_DEBUG_PROXY_PORT, alias="iosDebugProxyPort")
    app_step_launch_timeout_ms: int = Field(
        DEFAULT_APP_STEP_LAUNCH_TIMEOUT_MS, ge=0, alias="appStepLaunchTimeout"
    )
    dev_server_address: str | None = Field(None, alias="devServerAddress")
    dev_server_port: int | None = Field(None, alias="devServerPort")
    no_livereload: bool = Field(False, alias="noLivereload")
    dev_server_timeout_ms: int = Field(DEFAULT_DEV_SERVER_TIMEOUT_MS, ge=0)
    app_ready_timeout_ms: int = Field(DEFAULT_APP_READY_TIMEOUT_MS, ge=0)

    @field_validator("ios_debug_proxy_port")
    @classmethod
    def _check_proxy_port(cls, value: int) -> int:
        return _port(value)

    @field_validator("dev_server_port")
    @classmethod
    def _check_dev_server_port(cls, value: int | None) -> int | None:
        return None if value is None else _port(value)

    @classmethod
    def from_file(cls, path: Path, **overrides: Any) -> LaunchSpec:
        """Load a launch.json-style configuration object, applying overrides."""
        data = json.loads(path.read_text(encoding="utf-8"))
        for name, value in overrides.items():
            if value is None:
                continue
            # Aliases win over field names during validation
            field = cls.model_fields.get(name)
            data[field.alias if field and field.alias else name] = value
        return cls.model_validate(data)

    def to_attach_spec(self) -> AttachSpec:
        """Project this launch request onto the attach settings it shares."""
        fields = AttachSpec.model_fields.keys()
        return AttachSpec.model_validate({name: getattr(self, name) for name in fields})


@dataclass(frozen=True)
class TunnelBinding:
    """An active device port forward."""

    device_id: str
    local_port: int


@dataclass(frozen=True)
class EndpointDescriptor:
    """Normalized attach endpoint handed to the debug protocol."""

    port: int
    web_root: Path
    cwd: Path
    url: str | None = None


@dataclass(frozen=True)
class ProjectType:
    """Flavor of hybrid project found at the project root."""

    ionic: bool = False

    @property
    def cli(self) -> str:
        """The build tool that drives this project."""
        return "ionic" if self.ionic else "cordova"
