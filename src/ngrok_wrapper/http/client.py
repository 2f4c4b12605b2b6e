"""Minimal synchronous client for ngrok's local REST API."""

import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, NamedTuple, TypeVar
from urllib.parse import quote, urljoin

import requests
from pydantic import BaseModel, ValidationError

from ..common.exceptions import ConnectionError, HttpStatusError, NgrokWrapperError
from ..common.logging import get_logger
from ..common.utils import validate_non_empty_string

logger = get_logger(__name__)

B = TypeVar("B")

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain"

RequestHook = Callable[[requests.PreparedRequest, dict[str, Any]], None]


class Parameter(NamedTuple):
    """A single query string parameter."""

    name: str
    value: str


@dataclass(frozen=True)
class Response(Generic[B]):
    """Result of one API call."""

    status_code: int
    body: B
    headers: Mapping[str, str] = field(default_factory=dict)


def encode_parameters(parameters: Sequence[Parameter] | Mapping[str, str]) -> str:
    """Percent-encode each name and value on its own.

    Spaces become ``%20`` and parentheses ``%28``/``%29``, so a value such as
    ``"tunnel (1)"`` survives the round trip to ngrok's exact-match filters.
    """
    pairs = parameters.items() if isinstance(parameters, Mapping) else parameters
    return "&".join(f"{quote(str(name), safe='')}={quote(str(value), safe='')}" for name, value in pairs)


class HttpClient:
    """Blocking JSON client bound to one base URL.

    ``modify_request`` is called with the prepared request and the keyword
    arguments for ``Session.send`` just before each call, so callers can add
    headers, TLS trust (``verify``/``cert``) or timeouts without subclassing.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 4.0,
        modify_request: RequestHook | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = validate_non_empty_string(base_url, "Base URL").rstrip("/")
        self.timeout = timeout
        self.modify_request = modify_request
        self._session = session or requests.Session()

    def build_url(
        self,
        path: str,
        parameters: Sequence[Parameter] | Mapping[str, str] | None = None,
    ) -> str:
        """Join ``path`` onto the base URL and append encoded parameters.

        Absolute URLs and ngrok's own ``uri`` values (``/api/tunnels/x``) are
        both accepted.
        """
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = urljoin(f"{self.base_url}/", path.lstrip("/"))
        if parameters:
            url = f"{url}?{encode_parameters(parameters)}"
        return url

    def request(
        self,
        method: str,
        path: str,
        parameters: Sequence[Parameter] | Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
        response_type: type[B] | None = dict,  # type: ignore[assignment]
        content_type: str = JSON_CONTENT_TYPE,
    ) -> Response[B]:
        """Perform a request and decode the response body.

        Args:
            method: HTTP method
            path: Path relative to the base URL, or an absolute URL
            parameters: Query parameters
            headers: Additional request headers
            body: Pydantic model, mapping or string to send
            response_type: Pydantic model class, ``dict``, ``str`` or None
            content_type: Content type of ``body``

        Returns:
            Status code, decoded body and headers

        Raises:
            HttpStatusError: If the status code is 400 or above
            ConnectionError: If the API cannot be reached
        """
        url = self.build_url(path, parameters)
        request_headers = {"Accept": JSON_CONTENT_TYPE}
        data: str | bytes | None = None

        if body is not None:
            request_headers["Content-Type"] = content_type
            data = self._serialize(body, content_type)
        if headers:
            request_headers.update(headers)

        prepared = self._session.prepare_request(
            requests.Request(method.upper(), url, headers=request_headers, data=data)
        )
        send_kwargs: dict[str, Any] = {"timeout": self.timeout}
        if self.modify_request is not None:
            self.modify_request(prepared, send_kwargs)

        logger.debug("API request", method=prepared.method, url=prepared.url)
        try:
            raw = self._session.send(prepared, **send_kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise ConnectionError(f"ngrok API not reachable at {url}: {e}", url=url) from e

        logger.debug("API response", url=prepared.url, status_code=raw.status_code)
        if raw.status_code >= 400:
            raise HttpStatusError(raw.status_code, raw.text, url)

        return Response(
            status_code=raw.status_code,
            body=self._deserialize(raw, response_type),
            headers=dict(raw.headers),
        )

    def get(
        self,
        path: str,
        parameters: Sequence[Parameter] | Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: type[B] | None = dict,  # type: ignore[assignment]
    ) -> Response[B]:
        return self.request("GET", path, parameters, headers, response_type=response_type)

    def post(
        self,
        path: str,
        body: Any = None,
        parameters: Sequence[Parameter] | Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: type[B] | None = dict,  # type: ignore[assignment]
    ) -> Response[B]:
        return self.request("POST", path, parameters, headers, body, response_type)

    def put(
        self,
        path: str,
        body: Any = None,
        parameters: Sequence[Parameter] | Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: type[B] | None = dict,  # type: ignore[assignment]
    ) -> Response[B]:
        return self.request("PUT", path, parameters, headers, body, response_type)

    def delete(
        self,
        path: str,
        parameters: Sequence[Parameter] | Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        response_type: type[B] | None = dict,  # type: ignore[assignment]
    ) -> Response[B]:
        return self.request("DELETE", path, parameters, headers, response_type=response_type)

    def close(self) -> None:
        self._session.close()

    @staticmethod
    def _serialize(body: Any, content_type: str) -> str | bytes:
        if isinstance(body, (str, bytes)) and content_type != JSON_CONTENT_TYPE:
            return body
        if isinstance(body, BaseModel):
            return body.model_dump_json(exclude_none=True)
        return json.dumps(body)

    @staticmethod
    def _deserialize(raw: requests.Response, response_type: type[Any] | None) -> Any:
        if response_type is None or not raw.content:
            return None
        if response_type is str:
            return raw.text

        try:
            decoded = raw.json()
        except ValueError as e:
            raise NgrokWrapperError(f"Invalid JSON from {raw.url}: {raw.text[:200]}") from e

        if isinstance(response_type, type) and issubclass(response_type, BaseModel):
            try:
                return response_type.model_validate(decoded)
            except ValidationError as e:
                raise NgrokWrapperError(
                    f"Unexpected response body from {raw.url}: {e}"
                ) from e
        return decoded
