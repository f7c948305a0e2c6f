# === NAVMAP v1 ===
# {
#   "module": "HttpRelay.transport",
#   "purpose": "Pluggable transport adapter built on httpx.",
#   "sections": [
#     {
#       "id": "parse-address",
#       "name": "parse_address",
#       "anchor": "function-parse-address",
#       "kind": "function"
#     },
#     {
#       "id": "connection",
#       "name": "Connection",
#       "anchor": "class-connection",
#       "kind": "class"
#     },
#     {
#       "id": "httpconnection",
#       "name": "HttpConnection",
#       "anchor": "class-httpconnection",
#       "kind": "class"
#     },
#     {
#       "id": "httpxtransport",
#       "name": "HttpxTransport",
#       "anchor": "class-httpxtransport",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pluggable transport adapter built on ``httpx``.

The relay engine only needs a narrow surface from its transport: open a
connection to an address, configure method/headers/timeouts, send an
optional body (bytes, or an iterator of byte chunks for streamed uploads),
inspect the status, headers and declared charset, stream the response body
and disconnect.
:class:`HttpxTransport` provides that surface on top of a shared
:class:`httpx.Client`; tests swap the client's transport for
:class:`httpx.MockTransport`.

``disconnect`` is idempotent so retry code can release a connection from a
``finally`` block without tracking whether the response was already closed.
"""

from __future__ import annotations

import codecs
import threading
from typing import Iterable, Iterator, Mapping, Optional, Protocol, Union

import httpx

from .errors import UrlInvalidError
from .methods import RequestMethod

__all__ = [
    "Connection",
    "HttpConnection",
    "HttpxTransport",
    "RequestBody",
    "Transport",
    "parse_address",
]

RequestBody = Union[bytes, Iterable[bytes], None]

_SUPPORTED_SCHEMES = frozenset({"http", "https"})


def parse_address(address: object) -> httpx.URL:
    """Return ``address`` as an absolute HTTP(S) URL or raise :class:`UrlInvalidError`."""

    if not isinstance(address, str) or not address.strip():
        raise UrlInvalidError(str(address), "empty address")
    candidate = address.strip()
    try:
        url = httpx.URL(candidate)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise UrlInvalidError(candidate) from exc
    if url.scheme not in _SUPPORTED_SCHEMES:
        raise UrlInvalidError(candidate, "unsupported or missing scheme")
    if not url.host:
        raise UrlInvalidError(candidate, "missing host")
    return url


class Connection(Protocol):
    """One attempt's connection, released exactly once via :meth:`disconnect`."""

    url: httpx.URL

    def configure(
        self,
        method: RequestMethod | str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        connect_timeout: float,
        read_timeout: float,
    ) -> None:  # pragma: no cover - protocol
        ...

    def send(self, body: RequestBody = None) -> int:  # pragma: no cover - protocol
        ...

    @property
    def response_code(self) -> int:  # pragma: no cover - protocol
        ...

    @property
    def response_headers(self) -> Mapping[str, str]:  # pragma: no cover - protocol
        ...

    def iter_bytes(self, chunk_size: int) -> Iterator[bytes]:  # pragma: no cover - protocol
        ...

    @property
    def response_encoding(self) -> str:  # pragma: no cover - protocol
        ...

    def close_response(self) -> None:  # pragma: no cover - protocol
        ...

    def disconnect(self) -> None:  # pragma: no cover - protocol
        ...


class Transport(Protocol):
    def open(self, address: str) -> Connection:  # pragma: no cover - protocol
        ...


class HttpConnection:
    """Connection backed by a streamed ``httpx`` request."""

    def __init__(self, client: httpx.Client, url: httpx.URL) -> None:
        self._client = client
        self.url = url
        self._method = RequestMethod.GET
        self._headers = httpx.Headers()
        self._timeout = httpx.Timeout(10.0)
        self._response: Optional[httpx.Response] = None
        self._disconnected = False

    def configure(
        self,
        method: RequestMethod | str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        connect_timeout: float,
        read_timeout: float,
    ) -> None:
        self._method = RequestMethod.coerce(method)
        self._headers = httpx.Headers(headers or {})
        self._timeout = httpx.Timeout(
            connect=connect_timeout, read=read_timeout, write=read_timeout, pool=connect_timeout
        )

    def send(self, body: RequestBody = None) -> int:
        """Execute the request and return the status code; the body stays unread."""

        if self._disconnected:
            raise RuntimeError("connection already disconnected")
        request = self._client.build_request(
            self._method.value,
            self.url,
            headers=self._headers,
            content=body,
            timeout=self._timeout,
        )
        self._response = self._client.send(request, stream=True)
        return self._response.status_code

    def _require_response(self) -> httpx.Response:
        if self._response is None:
            raise RuntimeError("request has not been sent")
        return self._response

    @property
    def response_code(self) -> int:
        return self._require_response().status_code

    @property
    def response_headers(self) -> httpx.Headers:
        return self._require_response().headers

    def iter_bytes(self, chunk_size: int) -> Iterator[bytes]:
        return self._require_response().iter_bytes(chunk_size=chunk_size)

    @property
    def response_encoding(self) -> str:
        """Charset declared by the response, or ``utf-8`` when absent or unknown."""

        declared = self._require_response().charset_encoding
        if declared:
            try:
                return codecs.lookup(declared).name
            except LookupError:
                pass
        return "utf-8"

    def close_response(self) -> None:
        if self._response is not None:
            self._response.close()

    def disconnect(self) -> None:
        if self._disconnected:
            return
        self._disconnected = True
        self.close_response()


class HttpxTransport:
    """Open :class:`HttpConnection` objects on a shared ``httpx.Client``."""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        follow_redirects: bool = True,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=follow_redirects)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def client(self) -> httpx.Client:
        return self._client

    def open(self, address: str) -> HttpConnection:
        url = parse_address(address)
        return HttpConnection(self._client, url)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._owns_client:
            self._client.close()
