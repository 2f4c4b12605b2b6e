"""Common utilities and shared functionality."""

from .exceptions import (
    ConfigValidationError,
    ConnectionError,
    HttpStatusError,
    IllegalStateError,
    InstallerError,
    NgrokWrapperError,
    ProcessError,
    ProcessStartError,
    ProcessStartTimeoutError,
    TunnelNotFoundError,
    UnsupportedPlatformError,
)
from .logging import get_logger, setup_logging
from .utils import (
    mask_sensitive_data,
    sanitize_args,
    sanitize_log_data,
    validate_non_empty_string,
)

__all__ = [
    # Exceptions
    "NgrokWrapperError",
    "UnsupportedPlatformError",
    "InstallerError",
    "ConfigValidationError",
    "ProcessError",
    "ProcessStartError",
    "ProcessStartTimeoutError",
    "IllegalStateError",
    "HttpStatusError",
    "ConnectionError",
    "TunnelNotFoundError",
    # Logging
    "get_logger",
    "setup_logging",
    # Utils
    "validate_non_empty_string",
    "mask_sensitive_data",
    "sanitize_log_data",
    "sanitize_args",
]
