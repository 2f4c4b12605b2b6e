"""Supervision of a single ngrok process.

The supervisor launches ngrok with its output redirected to a log file and
follows that file on the calling thread until the process reports that its
local API is up. Nothing runs in the background: every record written before
readiness is read in order, so a ready or error record cannot be missed.
"""

from __future__ import annotations

import os
import re
import subprocess
import tempfile
import time
from collections import deque
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import IO, TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..common.exceptions import (
    IllegalStateError,
    ProcessError,
    ProcessStartError,
    ProcessStartTimeoutError,
)
from ..common.logging import get_logger
from ..common.utils import sanitize_args, validate_non_empty_string
from ..installer import Installer
from .dialect import DIALECTS
from .logs import LogMarkers, NgrokLog, parse_log_line

if TYPE_CHECKING:
    from ..config import NgrokConfig

logger = get_logger(__name__)

POLL_INTERVAL = 0.05
# The log file is emptied once the reader has consumed this much of it
MAX_LOG_FILE_BYTES = 1 << 20
VERSION_PATTERN = re.compile(r"ngrok version\s+v?(\d+(?:\.\d+)*)")


class ProcessStatus(str, Enum):
    """Lifecycle states of the supervised process."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    CRASHED = "crashed"


class ProcessState(BaseModel):
    """Point-in-time snapshot of the supervised process."""

    model_config = ConfigDict(frozen=True)

    status: ProcessStatus = ProcessStatus.NOT_STARTED
    pid: int | None = None
    version: str | None = None
    api_url: str | None = None
    started_at: datetime | None = None
    recent_logs: tuple[str, ...] = Field(default_factory=tuple)
    error: str | None = None


def parse_version(banner: str) -> str | None:
    """Extract ``X.Y.Z`` from ``ngrok version X.Y.Z`` output."""
    match = VERSION_PATTERN.search(banner)
    return match.group(1) if match else None


class ProcessSupervisor:
    """Starts, watches and stops one ngrok process."""

    def __init__(self, config: NgrokConfig, installer: Installer | None = None):
        """Initialize the supervisor.

        Args:
            config: Process configuration
            installer: Installer used when the binary or config file is missing
        """
        self.config = config
        self._owns_installer = installer is None
        self.installer = installer or Installer(download_timeout=config.download_timeout)

        self._process: subprocess.Popen[bytes] | None = None
        self._status = ProcessStatus.NOT_STARTED
        self._version: str | None = None
        self._api_url: str | None = None
        self._started_at: datetime | None = None
        self._error: str | None = None
        self._logs: deque[str] = deque(maxlen=config.log_buffer_size)
        self._log_path: Path | None = None
        self._reader: IO[str] | None = None
        self._partial = ""

    # Snapshots

    def state(self) -> ProcessState:
        """Return a snapshot of the process state, refreshing liveness first."""
        self._refresh()
        return ProcessState(
            status=self._status,
            pid=self._process.pid if self._is_alive() and self._process else None,
            version=self._version,
            api_url=self._api_url,
            started_at=self._started_at,
            recent_logs=tuple(self._logs),
            error=self._error,
        )

    @property
    def status(self) -> ProcessStatus:
        self._refresh()
        return self._status

    @property
    def pid(self) -> int | None:
        """Get process ID if running"""
        if self._is_alive() and self._process:
            return self._process.pid
        return None

    @property
    def api_url(self) -> str:
        """Base URL of ngrok's local API.

        Raises:
            IllegalStateError: If the process is not running
        """
        self._require_running()
        assert self._api_url is not None
        return self._api_url

    def is_running(self) -> bool:
        return self.status == ProcessStatus.RUNNING

    def get_version(self) -> str:
        """Version reported by the running binary.

        Raises:
            IllegalStateError: If the process is not running
        """
        self._require_running()
        assert self._version is not None
        return self._version

    # Lifecycle

    def start(self, config: NgrokConfig | None = None) -> ProcessState:
        """Start ngrok and block until it is ready.

        Calling this while the process is running returns the current state.

        Args:
            config: Replaces the supervisor's config for this and later starts

        Returns:
            Snapshot of the running process

        Raises:
            InstallerError: If the binary cannot be installed
            ConfigValidationError: If config overrides are invalid
            ProcessStartError: If ngrok exits or logs an error before ready
            ProcessStartTimeoutError: If ngrok is not ready in time
        """
        self._refresh()
        if self._status == ProcessStatus.RUNNING:
            if config is not None and config != self.config:
                logger.warning("ngrok already running, ignoring new config", pid=self.pid)
            else:
                logger.debug("ngrok already running", pid=self.pid)
            return self.state()

        if config is not None:
            self.config = config
            self._logs = deque(maxlen=config.log_buffer_size)
            if self._owns_installer:
                self.installer = Installer(download_timeout=config.download_timeout)

        self._close_log()
        self._process = None
        self._version = None
        self._api_url = None
        self._started_at = None
        self._error = None
        self._logs.clear()
        self._status = ProcessStatus.STARTING

        try:
            binary = self.installer.ensure_binary(
                self.config.ngrok_path, self.config.ngrok_version
            )
            self._ensure_config_file()
            deadline = time.monotonic() + self.config.startup_timeout
            self._version = self._detect_version(binary, deadline)
            self._launch(binary)
            self._wait_until_ready(deadline)
        except ProcessStartTimeoutError as e:
            self._abort(ProcessStatus.STOPPED, str(e))
            raise
        except ProcessStartError as e:
            self._abort(ProcessStatus.CRASHED, str(e))
            raise
        except BaseException as e:
            self._abort(ProcessStatus.STOPPED, str(e))
            raise

        self._status = ProcessStatus.RUNNING
        self._started_at = datetime.now()
        logger.info(
            "ngrok started",
            pid=self.pid,
            version=self._version,
            api_url=self._api_url,
        )
        return self.state()

    def stop(self) -> None:
        """Terminate ngrok, killing it after the grace period.

        Does nothing when the process is not running.
        """
        if self._process is None or self._status in (
            ProcessStatus.NOT_STARTED,
            ProcessStatus.STOPPED,
        ):
            logger.debug("ngrok not running, nothing to stop")
            return

        self._status = ProcessStatus.STOPPING
        logger.info("Stopping ngrok", pid=self._process.pid)

        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=self.config.stop_grace_period)
                logger.info("ngrok terminated gracefully")
            except subprocess.TimeoutExpired:
                logger.warning(
                    "ngrok did not terminate gracefully, force killing",
                    pid=self._process.pid,
                )
                self._process.kill()
                self._process.wait()

        self._drain_logs(final=True)
        self._close_log()
        self._process = None
        self._status = ProcessStatus.STOPPED

    def set_auth_token(self, auth_token: str) -> None:
        """Save an auth token into the config file with the ngrok CLI.

        Raises:
            ProcessError: If ngrok rejects the command
        """
        auth_token = validate_non_empty_string(auth_token, "Auth token")
        binary = self.installer.ensure_binary(
            self.config.ngrok_path, self.config.ngrok_version
        )
        self._ensure_config_file()

        dialect = DIALECTS[self.config.ngrok_version]
        args = [str(binary), *dialect.authtoken_args(auth_token, str(self.config.config_path))]
        logger.info("Saving ngrok auth token", args=sanitize_args(args))

        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.config.startup_timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ProcessError(f"Failed to run ngrok: {e}") from e

        if result.returncode != 0:
            output = (result.stdout + result.stderr).strip()
            raise ProcessError(f"ngrok could not save the auth token: {output}")

    # Internals

    def _require_running(self) -> None:
        self._refresh()
        if self._status != ProcessStatus.RUNNING:
            raise IllegalStateError(f"ngrok process not started (status: {self._status.value})")

    def _is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def _refresh(self) -> None:
        self._drain_logs()
        if self._status == ProcessStatus.RUNNING and not self._is_alive():
            returncode = self._process.returncode if self._process else None
            self._error = f"ngrok exited unexpectedly with code {returncode}"
            self._status = ProcessStatus.CRASHED
            logger.error("ngrok crashed", returncode=returncode)

    def _ensure_config_file(self) -> None:
        if not self.config.config_path.exists():
            self.installer.install_default_config(
                self.config.config_path,
                self.config.config_overrides,
                self.config.ngrok_version,
            )

    def _detect_version(self, binary: Path, deadline: float) -> str:
        """Run ``ngrok --version`` within the startup deadline."""
        try:
            result = subprocess.run(
                [str(binary), "--version"],
                capture_output=True,
                text=True,
                timeout=max(deadline - time.monotonic(), 0.0),
            )
        except subprocess.TimeoutExpired as e:
            raise ProcessStartTimeoutError(self.config.startup_timeout) from e
        except OSError as e:
            raise ProcessStartError(f"Failed to run {binary}: {e}", detail=str(e)) from e

        banner = (result.stdout or result.stderr).strip()
        version = parse_version(banner)
        if version is None:
            raise ProcessStartError(
                f"Unrecognized ngrok version banner: {banner!r}",
                detail="unrecognized version",
                line=banner,
            )

        expected = self.config.ngrok_version.lstrip("v")
        if version.split(".")[0] != expected:
            raise ProcessStartError(
                f"ngrok {version} found at {binary}, but {self.config.ngrok_version} is configured",
                detail="version mismatch",
                line=banner,
            )
        return version

    def _launch(self, binary: Path) -> None:
        dialect = DIALECTS[self.config.ngrok_version]
        args = [
            str(binary),
            *dialect.start_args(
                str(self.config.config_path),
                auth_token=self.config.auth_token,
                region=self.config.region,
            ),
        ]

        fd, log_path = tempfile.mkstemp(prefix="ngrok_", suffix=".log")
        self._log_path = Path(log_path)
        logger.info("Starting ngrok", args=sanitize_args(args), log_path=log_path)

        # Append mode lets the log be emptied while ngrok keeps writing to it
        os.close(fd)
        try:
            with open(log_path, "ab") as log_out:
                self._process = subprocess.Popen(
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=log_out,
                    stderr=subprocess.STDOUT,
                )
        except OSError as e:
            raise ProcessStartError(f"Failed to start ngrok: {e}", detail=str(e)) from e

        self._reader = open(log_path, encoding="utf-8", errors="replace")

    def _wait_until_ready(self, deadline: float) -> None:
        assert self._process is not None
        markers = self.config.markers
        pending = set(markers.session_msgs)

        while True:
            exited = self._process.poll() is not None
            record = self._next_record(markers)

            if record is not None:
                self._check_error(record, markers)
                if record.msg == markers.web_service_msg and record.addr:
                    self._api_url = f"http://{record.addr}"
                if record.msg:
                    pending = {msg for msg in pending if msg not in record.msg}
                if self._api_url and not pending:
                    return
            elif exited:
                last = self._flush_partial(markers)
                if last is not None:
                    self._check_error(last, markers)
                raise ProcessStartError(
                    f"ngrok exited with code {self._process.returncode} before it was ready",
                    detail=f"exit code {self._process.returncode}",
                    line=self._logs[-1] if self._logs else None,
                    logs=tuple(self._logs),
                )
            else:
                time.sleep(POLL_INTERVAL)

            if time.monotonic() >= deadline:
                raise ProcessStartTimeoutError(self.config.startup_timeout, tuple(self._logs))

    def _check_error(self, record: NgrokLog, markers: LogMarkers) -> None:
        if record.lvl not in markers.error_levels:
            return
        detail = record.err or record.msg or record.line
        raise ProcessStartError(
            f"ngrok failed to start: {detail}",
            detail=detail,
            line=record.line,
            logs=tuple(self._logs),
        )

    def _next_record(self, markers: LogMarkers) -> NgrokLog | None:
        """Read the next complete line from the log file, if one is available."""
        if self._reader is None:
            return None

        while True:
            chunk = self._reader.readline()
            if not chunk:
                return None
            self._partial += chunk
            if not self._partial.endswith("\n"):
                return None

            line, self._partial = self._partial.strip(), ""
            if line:
                return self._record(line, markers)

    def _flush_partial(self, markers: LogMarkers) -> NgrokLog | None:
        """Parse a last line that ngrok wrote without a newline before exiting."""
        line, self._partial = self._partial.strip(), ""
        return self._record(line, markers) if line else None

    def _record(self, line: str, markers: LogMarkers) -> NgrokLog:
        record = parse_log_line(line, markers)
        self._logs.append(record.line)
        logger.debug(
            "ngrok log",
            lvl=record.lvl,
            ngrok_msg=record.msg,
            err=record.err,
        )
        return record

    def _drain_logs(self, final: bool = False) -> None:
        """Read every complete line written so far into the ring buffer.

        With ``final`` set the process is gone and a trailing unterminated
        line is kept too. Otherwise a running process's log file is emptied
        once it has grown past ``MAX_LOG_FILE_BYTES``.
        """
        markers = self.config.markers
        while self._next_record(markers) is not None:
            pass
        if final:
            self._flush_partial(markers)
        elif self._status == ProcessStatus.RUNNING:
            self._truncate_log()

    def _truncate_log(self) -> None:
        if self._reader is None or self._log_path is None:
            return
        if self._reader.tell() < MAX_LOG_FILE_BYTES:
            return
        # Lines written between the last read and the truncate are lost
        os.truncate(self._log_path, 0)
        self._reader.seek(0)
        logger.debug("Truncated ngrok log file", log_path=str(self._log_path))

    def _abort(self, status: ProcessStatus, error: str) -> None:
        """Kill a half-started process and record why the start failed."""
        if self._process is not None and self._process.poll() is None:
            logger.warning("Killing ngrok after failed start", pid=self._process.pid)
            self._process.kill()
            try:
                self._process.wait(timeout=self.config.stop_grace_period)
            except subprocess.TimeoutExpired:
                logger.error("Failed to kill ngrok", pid=self._process.pid)

        self._drain_logs(final=True)
        self._close_log()
        self._process = None
        self._status = status
        self._error = error
        logger.error("ngrok failed to start", status=status.value, error=error)

    def _close_log(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
        self._partial = ""
        if self._log_path is not None:
            try:
                self._log_path.unlink()
            except OSError as e:
                logger.warning("Failed to remove ngrok log file", error=str(e))
            self._log_path = None

    def __enter__(self) -> ProcessSupervisor:
        """Context manager entry - start ngrok and wait until it is ready."""
        logger.debug("Entering ProcessSupervisor context")
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        """Context manager exit - stop ngrok.

        Returns:
            False to propagate any exception
        """
        logger.debug("Exiting ProcessSupervisor context")
        self.stop()
        return False
