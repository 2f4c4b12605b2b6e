"""Download, validate and install the ngrok binary and its default config."""

import os
import shutil
import stat
import tempfile
import zipfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import requests
import yaml

from ..common.exceptions import ConfigValidationError, InstallerError
from ..common.logging import get_logger
from .platform import DEFAULT_VERSION, NgrokVersion, PlatformDescriptor, resolve_current

logger = get_logger(__name__)

ALLOWED_CONFIG_KEYS = frozenset(
    {
        "api_key",
        "authtoken",
        "console_ui",
        "console_ui_color",
        "dns_resolver_ips",
        "heartbeat_interval",
        "heartbeat_tolerance",
        "inspect_db_size",
        "log",
        "log_format",
        "log_level",
        "metadata",
        "proxy_url",
        "region",
        "remote_management",
        "root_cas",
        "server_addr",
        "update_channel",
        "update_check",
        "version",
        "web_addr",
    }
)

# Keys whose value the supervisor depends on: key -> accepted value
REQUIRED_CONFIG_VALUES = {
    "log_format": "logfmt",
    "log_level": "info",
}

DOWNLOAD_CHUNK_SIZE = 64 * 1024


def get_default_config(version: NgrokVersion = DEFAULT_VERSION) -> dict[str, Any]:
    """Baseline ngrok.yml contents for a version family."""
    if version == "v2":
        return {}
    return {"version": "2", "region": "us"}


def validate_config(overrides: Mapping[str, Any]) -> None:
    """Validate config overrides as a whole.

    Args:
        overrides: Top-level ngrok.yml keys and values

    Raises:
        ConfigValidationError: On the first disallowed key or value
    """
    for key, value in overrides.items():
        if key not in ALLOWED_CONFIG_KEYS:
            raise ConfigValidationError(
                f'"{key}" is not a supported top-level config key', key, value
            )

        normalized = str(value).strip().lower()

        if key == "web_addr" and normalized == "false":
            raise ConfigValidationError(
                '"web_addr" cannot be false, the ngrok API is required', key, value
            )

        required = REQUIRED_CONFIG_VALUES.get(key)
        if required is not None and normalized != required:
            raise ConfigValidationError(
                f'"{key}" must be "{required}" to be compatible with this wrapper',
                key,
                value,
            )


class Installer:
    """Installs the ngrok binary and writes default configuration files."""

    def __init__(
        self,
        download_timeout: float = 60.0,
        session: requests.Session | None = None,
    ):
        self.download_timeout = download_timeout
        self._session = session or requests.Session()

    def get_platform(self, version: NgrokVersion = DEFAULT_VERSION) -> PlatformDescriptor:
        """Resolve the distribution for the current platform."""
        return resolve_current(version)

    def install_binary(
        self, target_path: str | Path, version: NgrokVersion | None = None
    ) -> Path:
        """Download ngrok and atomically place it at ``target_path``.

        An existing file at ``target_path`` is always replaced.

        Args:
            target_path: Where the executable should live
            version: ngrok major version family (defaults to v3)

        Returns:
            Path of the installed executable

        Raises:
            InstallerError: On network, archive or permission failures
            UnsupportedPlatformError: If the platform has no distribution
        """
        target = Path(target_path).expanduser()
        descriptor = self.get_platform(version or DEFAULT_VERSION)

        self._prepare_target_dir(target.parent)

        logger.info(
            "Installing ngrok",
            version=descriptor.version,
            url=descriptor.url,
            target=str(target),
        )

        with tempfile.TemporaryDirectory(prefix="ngrok_install_") as temp_dir:
            archive_path = Path(temp_dir) / "ngrok.zip"
            self._download(descriptor.url, archive_path)
            self._extract(archive_path, descriptor.binary_name, target)

        logger.info("ngrok installed", target=str(target))
        return target

    def ensure_binary(
        self, target_path: str | Path, version: NgrokVersion | None = None
    ) -> Path:
        """Install ngrok only when ``target_path`` does not exist yet."""
        target = Path(target_path).expanduser()
        if target.exists():
            logger.debug("ngrok binary present", target=str(target))
            return target
        return self.install_binary(target, version)

    def install_default_config(
        self,
        config_path: str | Path,
        overrides: Mapping[str, Any] | None = None,
        version: NgrokVersion = DEFAULT_VERSION,
    ) -> Path:
        """Write a minimal ngrok.yml, merging the baseline with overrides.

        Overrides are validated before anything touches the filesystem.

        Raises:
            ConfigValidationError: If any override is disallowed
            InstallerError: If the file cannot be written
        """
        overrides = dict(overrides or {})
        validate_config(overrides)

        config = get_default_config(version)
        config.update(overrides)

        path = Path(config_path).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(config, f, default_flow_style=False)
        except OSError as e:
            raise InstallerError(f"Failed to write ngrok config {path}: {e}") from e

        logger.info("Default config installed", path=str(path), keys=sorted(config))
        return path

    def _prepare_target_dir(self, directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallerError(
                f"Cannot create install directory {directory}: {e}"
            ) from e

        if not os.access(directory, os.W_OK):
            raise InstallerError(f"No write permission for install directory {directory}")

    def _download(self, url: str, destination: Path) -> None:
        try:
            with self._session.get(url, stream=True, timeout=self.download_timeout) as response:
                response.raise_for_status()
                with open(destination, "wb") as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise InstallerError(f"Failed to download ngrok from {url}: {e}") from e
        except OSError as e:
            raise InstallerError(f"Failed to write ngrok archive: {e}") from e

        logger.debug("Archive downloaded", url=url, size=destination.stat().st_size)

    def _extract(self, archive_path: Path, binary_name: str, target: Path) -> None:
        staging = target.with_name(f".{target.name}.tmp")
        try:
            with zipfile.ZipFile(archive_path) as archive:
                corrupt = archive.testzip()
                if corrupt is not None:
                    raise InstallerError(f"Checksum mismatch for {corrupt} in ngrok archive")

                member = next(
                    (
                        name
                        for name in archive.namelist()
                        if Path(name).name == binary_name
                    ),
                    None,
                )
                if member is None:
                    raise InstallerError(f"{binary_name} not found in downloaded archive")

                with archive.open(member) as src, open(staging, "wb") as dst:
                    shutil.copyfileobj(src, dst)

            staging.chmod(staging.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            os.replace(staging, target)
        except zipfile.BadZipFile as e:
            raise InstallerError(f"Downloaded ngrok archive is invalid: {e}") from e
        except OSError as e:
            raise InstallerError(f"Failed to install ngrok to {target}: {e}") from e
        finally:
            if staging.exists():
                staging.unlink()
