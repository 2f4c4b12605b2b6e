"""Tunnel management on top of a supervised ngrok process."""

import uuid
from collections.abc import Callable
from types import TracebackType
from typing import Any, Literal

from ..common.exceptions import TunnelNotFoundError
from ..common.logging import get_logger
from ..config import NgrokConfig
from ..http import HttpClient, Parameter
from ..process import ProcessSupervisor
from .models import (
    CapturedRequest,
    CapturedRequestsResponse,
    Tunnel,
    TunnelRequest,
    TunnelResponse,
    TunnelsResponse,
)

logger = get_logger(__name__)

TUNNELS_PATH = "/api/tunnels"
REQUESTS_PATH = "/api/requests/http"

HttpClientFactory = Callable[[str], HttpClient]


class TunnelManager:
    """Creates, lists and closes tunnels through ngrok's local API.

    The manager is a client of the ngrok process, not an authority: its cache
    holds the last snapshot each call returned and is replaced on every list.
    """

    def __init__(
        self,
        config: NgrokConfig | None = None,
        supervisor: ProcessSupervisor | None = None,
        http_client_factory: HttpClientFactory | None = None,
    ):
        """Initialize tunnel manager.

        Args:
            config: Process configuration (defaults from environment)
            supervisor: Supervisor to use instead of creating one from ``config``
            http_client_factory: Builds the API client for a base URL
        """
        self.config = config or NgrokConfig()
        self.supervisor = supervisor or ProcessSupervisor(self.config)
        self._http_client_factory = http_client_factory or self._default_http_client
        self._api: HttpClient | None = None
        self._tunnels: dict[str, Tunnel] = {}

    def _default_http_client(self, base_url: str) -> HttpClient:
        return HttpClient(base_url, timeout=self.config.api_timeout)

    @property
    def api(self) -> HttpClient:
        """API client for the running process.

        Only :meth:`connect` starts ngrok. A crashed process stays down until
        the next explicit start.

        Raises:
            IllegalStateError: If the process is not running
        """
        return self._client_for(self.supervisor.api_url)

    def _client_for(self, api_url: str) -> HttpClient:
        if self._api is None or self._api.base_url != api_url.rstrip("/"):
            self._api = self._http_client_factory(api_url)
        return self._api

    @property
    def tunnels(self) -> list[Tunnel]:
        """Cached tunnels from the last API call, without refreshing."""
        return list(self._tunnels.values())

    def connect(self, request: TunnelRequest | None = None, **options: Any) -> Tunnel:
        """Start a tunnel, starting ngrok first if it is not running.

        Args:
            request: Tunnel definition; built from ``options`` when omitted
            **options: ``name``, ``proto``, ``addr`` and other tunnel options

        Returns:
            The tunnel ngrok created
        """
        if request is None:
            proto = options.setdefault("proto", "http")
            addr = options.setdefault("addr", "80")
            options.setdefault("name", f"{proto}-{addr}-{uuid.uuid4()}")
            request = TunnelRequest(**options)

        logger.info("Opening tunnel", name=request.name, proto=request.proto.value, addr=request.addr)
        state = self.supervisor.start()
        assert state.api_url is not None
        api = self._client_for(state.api_url)
        response = api.post(TUNNELS_PATH, request, response_type=TunnelResponse)

        tunnel = Tunnel.from_response(response.body)
        self._tunnels[tunnel.name] = tunnel
        logger.info("Tunnel opened", name=tunnel.name, public_url=tunnel.public_url)
        return tunnel

    def disconnect(self, public_url_or_name: str) -> None:
        """Close a tunnel identified by its public URL or name.

        Raises:
            TunnelNotFoundError: If no such tunnel exists
        """
        if not self.supervisor.is_running():
            logger.debug("ngrok not running, nothing to disconnect")
            self._tunnels.clear()
            return

        tunnel = self._find(public_url_or_name)
        if tunnel is None:
            self.get_tunnels()
            tunnel = self._find(public_url_or_name)
        if tunnel is None:
            raise TunnelNotFoundError(f"No tunnel named or serving {public_url_or_name!r}")

        logger.info("Closing tunnel", name=tunnel.name, public_url=tunnel.public_url)
        self.api.delete(tunnel.uri, response_type=None)
        self._tunnels.pop(tunnel.name, None)

    def get_tunnels(self) -> list[Tunnel]:
        """List the process's tunnels, replacing the cache."""
        response = self.api.get(TUNNELS_PATH, response_type=TunnelsResponse)
        self._tunnels = {
            item.name: Tunnel.from_response(item) for item in response.body.tunnels
        }
        return list(self._tunnels.values())

    def refresh_metrics(self, tunnel: Tunnel) -> Tunnel:
        """Fetch current metrics for a tunnel."""
        response = self.api.get(tunnel.uri, response_type=TunnelResponse)
        updated = tunnel.with_metrics(response.body.metrics)
        self._tunnels[updated.name] = updated
        return updated

    def get_requests(self, tunnel_name: str | None = None) -> list[CapturedRequest]:
        """Requests captured by ngrok's inspector, optionally for one tunnel.

        ``tunnel_name`` is an exact match on ngrok's side.
        """
        parameters = [Parameter("tunnel_name", tunnel_name)] if tunnel_name else None
        response = self.api.get(
            REQUESTS_PATH, parameters, response_type=CapturedRequestsResponse
        )
        return list(response.body.requests)

    def replay_request(self, request_id: str, tunnel_name: str | None = None) -> None:
        """Replay a captured request, optionally through another tunnel."""
        body = {"id": request_id}
        if tunnel_name:
            body["tunnel_name"] = tunnel_name
        self.api.post(REQUESTS_PATH, body, response_type=None)

    def clear_requests(self) -> None:
        """Delete all captured requests."""
        self.api.delete(REQUESTS_PATH, response_type=None)

    def get_version(self) -> str:
        return self.supervisor.get_version()

    def set_auth_token(self, auth_token: str) -> None:
        self.supervisor.set_auth_token(auth_token)

    def kill(self) -> None:
        """Stop the ngrok process and forget its tunnels."""
        self.supervisor.stop()
        self._tunnels.clear()
        if self._api is not None:
            self._api.close()
            self._api = None

    def _find(self, public_url_or_name: str) -> Tunnel | None:
        if public_url_or_name in self._tunnels:
            return self._tunnels[public_url_or_name]
        return next(
            (t for t in self._tunnels.values() if t.public_url == public_url_or_name),
            None,
        )

    def __enter__(self) -> "TunnelManager":
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
        logger.debug("Exiting TunnelManager context")
        self.kill()
        return False
