"""Custom exceptions for ngrok wrapper."""

from typing import Any


class NgrokWrapperError(Exception):
    """Base exception for all ngrok wrapper errors."""
    pass


class UnsupportedPlatformError(NgrokWrapperError):
    """Raised when no ngrok distribution exists for the running platform."""

    def __init__(self, os_name: str, arch: str, version: str):
        self.os_name = os_name
        self.arch = arch
        self.version = version
        super().__init__(
            f"Unsupported platform for ngrok {version}: os={os_name!r}, arch={arch!r}"
        )


class InstallerError(NgrokWrapperError):
    """Raised when the ngrok binary cannot be downloaded, extracted or written."""
    pass


class ConfigValidationError(NgrokWrapperError, ValueError):
    """Raised when a config override uses a disallowed key or value."""

    def __init__(self, message: str, key: str, value: Any = None):
        self.key = key
        self.value = value
        super().__init__(message)


class ProcessError(NgrokWrapperError):
    """Raised when ngrok process operations fail."""
    pass


class ProcessStartError(ProcessError):
    """Raised when ngrok exits or logs a fatal error before becoming ready."""

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        line: str | None = None,
        logs: tuple[str, ...] = (),
    ):
        self.detail = detail
        self.line = line
        self.logs = logs
        super().__init__(message)


class ProcessStartTimeoutError(ProcessStartError):
    """Raised when ngrok does not become ready within the startup timeout."""

    def __init__(self, timeout: float, logs: tuple[str, ...] = ()):
        self.timeout = timeout
        super().__init__(
            f"ngrok did not become ready within {timeout}s",
            detail="startup timeout",
            logs=logs,
        )


class IllegalStateError(NgrokWrapperError):
    """Raised when an operation needs a state the process has not reached."""
    pass


class HttpStatusError(NgrokWrapperError):
    """Raised when the ngrok API answers with a status code of 400 or above."""

    def __init__(self, status_code: int, body: str, url: str):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"HTTP {status_code} from {url}: {body}")


class ConnectionError(NgrokWrapperError):
    """Raised when the ngrok API cannot be reached."""

    def __init__(self, message: str, url: str | None = None):
        self.url = url
        super().__init__(message)


class TunnelNotFoundError(NgrokWrapperError):
    """Raised when a tunnel cannot be resolved by name or public URL."""
    pass
