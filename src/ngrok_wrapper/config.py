"""Pydantic configuration for the ngrok process and API client."""

import os
import platform
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .installer.installer import validate_config
from .installer.platform import DEFAULT_VERSION, CONFIG_NAME, NgrokVersion, get_binary_name
from .process.logs import MARKERS, LogMarkers

DEFAULT_INSTALL_DIR = Path("~/.ngrok-wrapper").expanduser()
AUTHTOKEN_ENV = "NGROK_AUTHTOKEN"


def default_ngrok_path(version: NgrokVersion = DEFAULT_VERSION) -> Path:
    """Per-version install location, so v2 and v3 binaries never overwrite each other."""
    return DEFAULT_INSTALL_DIR / version / get_binary_name(platform.system())


def default_config_path(version: NgrokVersion = DEFAULT_VERSION) -> Path:
    """Location ngrok itself reads its config from when none is given."""
    home = Path.home()
    if version == "v2":
        return home / ".ngrok2" / CONFIG_NAME

    system = platform.system().lower()
    if "darwin" in system:
        return home / "Library" / "Application Support" / "ngrok" / CONFIG_NAME
    if "windows" in system or "cygwin" in system:
        local_app_data = os.environ.get("LOCALAPPDATA", str(home / "AppData" / "Local"))
        return Path(local_app_data) / "ngrok" / CONFIG_NAME

    config_home = os.environ.get("XDG_CONFIG_HOME", str(home / ".config"))
    return Path(config_home) / "ngrok" / CONFIG_NAME


class NgrokConfig(BaseModel):
    """Immutable settings for one supervised ngrok process."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True, extra="forbid")

    ngrok_version: NgrokVersion = Field(default=DEFAULT_VERSION, description="Major version family")
    ngrok_path: Path = Field(description="ngrok executable, installed when missing")
    config_path: Path = Field(description="ngrok.yml passed to the process")
    auth_token: str | None = Field(default=None, description="ngrok auth token")
    region: str | None = Field(default=None, description="ngrok region, e.g. us, eu")
    config_overrides: dict[str, Any] = Field(
        default_factory=dict, description="Top-level keys for a generated ngrok.yml"
    )

    startup_timeout: float = Field(default=15.0, gt=0, le=300.0, description="Seconds allowed for the version check and readiness")
    stop_grace_period: float = Field(default=5.0, gt=0, le=60.0, description="Seconds between terminate and kill")
    api_timeout: float = Field(default=4.0, gt=0, le=120.0, description="Local API request timeout")
    download_timeout: float = Field(default=60.0, gt=0, description="Binary download timeout")
    log_buffer_size: int = Field(default=100, ge=1, le=10000, description="Log lines kept for diagnostics")

    log_markers: LogMarkers | None = Field(
        default=None, description="Overrides the version's startup markers"
    )

    @model_validator(mode="before")
    @classmethod
    def fill_default_paths(cls, data: Any) -> Any:
        """Derive binary and config paths from the version when not given."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        version = data.get("ngrok_version") or DEFAULT_VERSION
        if data.get("ngrok_path") is None:
            data["ngrok_path"] = default_ngrok_path(version)
        if data.get("config_path") is None:
            data["config_path"] = default_config_path(version)
        if "auth_token" not in data:
            data["auth_token"] = os.environ.get(AUTHTOKEN_ENV)
        return data

    @field_validator("ngrok_path", "config_path")
    @classmethod
    def expand_user(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("config_overrides")
    @classmethod
    def validate_overrides(cls, v: dict[str, Any]) -> dict[str, Any]:
        validate_config(v)
        return v

    @property
    def markers(self) -> LogMarkers:
        """Startup markers in effect for this config."""
        return self.log_markers or MARKERS[self.ngrok_version]
