"""High-level API for the ngrok wrapper.

This module provides simple functions for common tunneling tasks. Each function
takes an optional :class:`NgrokConfig`; calls whose configs point at the same ngrok
binary share one :class:`TunnelManager` and therefore one ngrok process.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .common.logging import get_logger
from .config import NgrokConfig
from .tunnels import Tunnel, TunnelManager

logger = get_logger(__name__)

_managers: dict[str, TunnelManager] = {}


def get_manager(config: NgrokConfig | None = None) -> TunnelManager:
    """Return the shared manager for ``config``, creating it on first use."""
    config = config or NgrokConfig()
    key = str(config.ngrok_path)
    manager = _managers.get(key)
    if manager is None:
        manager = TunnelManager(config)
        _managers[key] = manager
    return manager


def connect(
    addr: str | int = "80",
    proto: str = "http",
    name: str | None = None,
    *,
    config: NgrokConfig | None = None,
    **options: Any,
) -> Tunnel:
    """Open a tunnel, starting ngrok if it is not running.

    Args:
        addr: Local port, host:port or URL to expose
        proto: Tunnel protocol (http, tcp, tls)
        name: Tunnel name (generated when omitted)
        config: Process configuration
        **options: Additional tunnel options

    Returns:
        Tunnel: The created tunnel

    Example:
        >>> tunnel = connect(8000)
        >>> print(f"Your app is live at: {tunnel.public_url}")
    """
    if name is not None:
        options["name"] = name
    return get_manager(config).connect(addr=addr, proto=proto, **options)


def disconnect(public_url_or_name: str, *, config: NgrokConfig | None = None) -> None:
    """Close a tunnel by public URL or name."""
    get_manager(config).disconnect(public_url_or_name)


def get_tunnels(*, config: NgrokConfig | None = None) -> list[Tunnel]:
    """List the tunnels of the ngrok process.

    Raises:
        IllegalStateError: If ngrok has not been started by :func:`connect`
    """
    return get_manager(config).get_tunnels()


def kill(*, config: NgrokConfig | None = None) -> None:
    """Stop the ngrok process for ``config`` if it is running."""
    config = config or NgrokConfig()
    manager = _managers.pop(str(config.ngrok_path), None)
    if manager is not None:
        manager.kill()


@contextmanager
def managed_tunnel(
    addr: str | int = "80",
    proto: str = "http",
    name: str | None = None,
    *,
    config: NgrokConfig | None = None,
    **options: Any,
) -> Iterator[Tunnel]:
    """Open a tunnel for the duration of a ``with`` block.

    The tunnel is closed on exit, even if an exception occurs. The ngrok
    process keeps running for other tunnels; use :func:`kill` to stop it.

    Example:
        >>> with managed_tunnel(3000) as tunnel:
        ...     print(tunnel.public_url)
    """
    tunnel = connect(addr, proto, name, config=config, **options)
    logger.info("Managed tunnel created", public_url=tunnel.public_url, addr=tunnel.local_addr)
    try:
        yield tunnel
    finally:
        disconnect(tunnel.public_url, config=config)
        logger.info("Managed tunnel cleaned up", public_url=tunnel.public_url)
