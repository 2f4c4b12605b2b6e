"""ngrok wrapper - install, supervise and drive the ngrok agent from Python."""

# High-level API
from .api import connect, disconnect, get_manager, get_tunnels, kill, managed_tunnel

# Common utilities
from .common.exceptions import (
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
from .common.logging import get_logger, setup_logging
from .config import NgrokConfig

# Components
from .http import HttpClient, Parameter, Response
from .installer import Installer, PlatformDescriptor, resolve
from .process import LogMarkers, ProcessState, ProcessStatus, ProcessSupervisor
from .tunnels import Tunnel, TunnelManager, TunnelRequest

__version__ = "0.1.0"


__all__ = [
    # High-level API
    "connect",
    "disconnect",
    "get_manager",
    "get_tunnels",
    "kill",
    "managed_tunnel",
    # Configuration
    "NgrokConfig",
    # Components
    "Installer",
    "PlatformDescriptor",
    "resolve",
    "ProcessSupervisor",
    "ProcessState",
    "ProcessStatus",
    "LogMarkers",
    "HttpClient",
    "Parameter",
    "Response",
    "TunnelManager",
    "Tunnel",
    "TunnelRequest",
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
    # Utilities
    "get_logger",
    "setup_logging",
]
