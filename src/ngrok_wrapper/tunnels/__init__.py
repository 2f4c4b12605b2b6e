"""Tunnel management functionality."""

from .manager import TunnelManager
from .models import (
    CapturedRequest,
    CapturedRequestsResponse,
    Tunnel,
    TunnelConfigInfo,
    TunnelProto,
    TunnelRequest,
    TunnelResponse,
    TunnelsResponse,
)

__all__ = [
    "TunnelManager",
    "Tunnel",
    "TunnelRequest",
    "TunnelProto",
    "TunnelResponse",
    "TunnelsResponse",
    "TunnelConfigInfo",
    "CapturedRequest",
    "CapturedRequestsResponse",
]
