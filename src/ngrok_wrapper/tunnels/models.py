"""Tunnel models for ngrok's local API, using Pydantic for validation."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TunnelProto(str, Enum):
    """Tunnel protocols ngrok can start."""

    HTTP = "http"
    TCP = "tcp"
    TLS = "tls"


class TunnelRequest(BaseModel):
    """Body for ``POST /api/tunnels``.

    Immutable; build it directly or with :meth:`create`, both validate.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="forbid")

    name: str = Field(min_length=1, description="Tunnel name, unique per process")
    proto: TunnelProto = Field(default=TunnelProto.HTTP, description="Tunnel protocol")
    addr: str = Field(default="80", description="Local port, host:port or URL to forward to")

    inspect: bool | None = None
    auth: str | None = Field(default=None, description="v2 basic auth, user:password")
    basic_auth: list[str] | None = Field(default=None, description="v3 basic auth credentials")
    host_header: str | None = None
    bind_tls: bool | str | None = Field(default=None, description="v2: true, false or both")
    schemes: list[str] | None = Field(default=None, description="v3: http and/or https")
    subdomain: str | None = None
    hostname: str | None = None
    domain: str | None = None
    crt: str | None = None
    key: str | None = None
    client_cas: str | None = None
    remote_addr: str | None = None
    metadata: str | None = None

    @field_validator("addr", mode="before")
    @classmethod
    def validate_addr(cls, v: Any) -> str:
        """Accept ports given as integers."""
        if isinstance(v, int):
            if not (1 <= v <= 65535):
                raise ValueError("Port must be between 1 and 65535")
            return str(v)
        return v

    @field_validator("schemes")
    @classmethod
    def validate_schemes(cls, v: list[str] | None) -> list[str] | None:
        if v is not None and not set(v) <= {"http", "https"}:
            raise ValueError("schemes may only contain 'http' and 'https'")
        return v

    @model_validator(mode="after")
    def validate_proto_options(self) -> "TunnelRequest":
        """Reject options that only make sense for another protocol."""
        if self.proto != TunnelProto.TCP and self.remote_addr is not None:
            raise ValueError("remote_addr is only valid for tcp tunnels")
        if self.proto == TunnelProto.TCP and (self.subdomain or self.hostname or self.host_header):
            raise ValueError("subdomain, hostname and host_header are not valid for tcp tunnels")
        return self

    @classmethod
    def create(
        cls, name: str, proto: str = "http", addr: str | int = "80", **options: Any
    ) -> "TunnelRequest":
        """Validated factory for the common name/proto/addr case."""
        return cls(name=name, proto=proto, addr=addr, **options)


class TunnelConfigInfo(BaseModel):
    """The ``config`` block of a tunnel in API responses."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    addr: str
    inspect: bool = False


class TunnelResponse(BaseModel):
    """A tunnel as returned by the API."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    uri: str
    public_url: str
    proto: str
    config: TunnelConfigInfo
    metrics: dict[str, Any] = Field(default_factory=dict)


class TunnelsResponse(BaseModel):
    """Body of ``GET /api/tunnels``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    tunnels: list[TunnelResponse] = Field(default_factory=list)
    uri: str = "/api/tunnels"


class CapturedRequest(BaseModel):
    """One request captured by ngrok's inspector."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    uri: str
    tunnel_name: str
    remote_addr: str | None = None
    start: str | None = None
    duration: int | None = None
    request: dict[str, Any] = Field(default_factory=dict)
    response: dict[str, Any] | None = None


class CapturedRequestsResponse(BaseModel):
    """Body of ``GET /api/requests/http``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    requests: list[CapturedRequest] = Field(default_factory=list)
    uri: str = "/api/requests/http"


class Tunnel(BaseModel):
    """Last known snapshot of a tunnel owned by the ngrok process."""

    model_config = ConfigDict(frozen=True)

    name: str
    proto: str
    local_addr: str
    public_url: str
    uri: str
    metrics: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, response: TunnelResponse) -> "Tunnel":
        return cls(
            name=response.name,
            proto=response.proto,
            local_addr=response.config.addr,
            public_url=response.public_url,
            uri=response.uri,
            metrics=response.metrics,
        )

    def with_metrics(self, metrics: dict[str, Any]) -> "Tunnel":
        """Create a copy with refreshed metrics (immutable pattern)."""
        return self.model_copy(update={"metrics": metrics})

    def __str__(self) -> str:
        return f'Tunnel: "{self.public_url}" -> "{self.local_addr}"'
