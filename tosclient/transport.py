"""HTTP transport for the TOS client.

A Transport executes a fully prepared (already signed) Request and returns
a Response whose body is streamed. It does not retry, sign, or interpret
status codes. DefaultTransport is built on httpx with a keep-alive
connection pool; any other implementation can be plugged into a Client.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterable, Iterator, Optional, Union
from urllib.parse import quote

import httpx
from h11 import LocalProtocolError as H11LocalProtocolError
from h11 import RemoteProtocolError as H11RemoteProtocolError

from tosclient.errors import HEADER_ID2, HEADER_REQUEST_ID, NetworkError
from tosclient.log import get_logger

logger = get_logger(__name__)

Body = Union[None, bytes, BinaryIO, Iterable[bytes]]

# Errors raised before the request reached the wire
_BEFORE_SEND_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


def uri_encode(value: str, encode_slash: bool = True) -> str:
    """Percent-encode everything except unreserved characters."""
    return quote(value, safe="-_.~" if encode_slash else "-_.~/")


@dataclass
class Request:
    """A prepared HTTP request."""

    method: str
    scheme: str
    host: str
    path: str = "/"
    query: list[tuple[str, str]] = field(default_factory=list)
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: Body = None

    def __post_init__(self):
        if not isinstance(self.headers, httpx.Headers):
            self.headers = httpx.Headers(self.headers)

    @property
    def url(self) -> str:
        url = f"{self.scheme}://{self.host}{uri_encode(self.path, encode_slash=False)}"
        if self.query:
            url += "?" + "&".join(
                f"{uri_encode(k)}={uri_encode(v)}" for k, v in sorted(self.query)
            )
        return url

    @property
    def is_streaming(self) -> bool:
        return self.body is not None and not isinstance(self.body, (bytes, bytearray))


class Response:
    """An HTTP response with a streaming body.

    The body must be released exactly once with close(), or by using the
    response as a context manager. close() is idempotent.

    Args:
        status_code: HTTP status.
        headers: Response headers.
        stream: Body chunks.
        on_close: Called once when the response is closed.
    """

    def __init__(
        self,
        status_code: int,
        headers: Union[httpx.Headers, dict, None] = None,
        stream: Union[bytes, Iterable[bytes]] = b"",
        on_close: Optional[Callable[[], None]] = None,
    ):
        self.status_code = status_code
        self.headers = httpx.Headers(headers or {})
        if isinstance(stream, (bytes, bytearray)):
            stream = [bytes(stream)]
        self._stream: Iterator[bytes] = iter(stream)
        self._on_close = on_close
        self.closed = False

    @property
    def request_id(self) -> str:
        return self.headers.get(HEADER_REQUEST_ID, "")

    @property
    def id2(self) -> str:
        return self.headers.get(HEADER_ID2, "")

    def iter_bytes(self) -> Iterator[bytes]:
        for chunk in self._stream:
            if chunk:
                yield chunk

    def read(self, limit: Optional[int] = None) -> bytes:
        """Read the remaining body, or at most limit bytes of it."""
        chunks = []
        size = 0
        for chunk in self.iter_bytes():
            if limit is not None and size + len(chunk) >= limit:
                chunks.append(chunk[: limit - size])
                break
            chunks.append(chunk)
            size += len(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> "Response":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False


class Transport(ABC):
    """Executes prepared requests. Implementations must be thread safe."""

    @abstractmethod
    def round_trip(self, request: Request, timeout: Optional[float] = None) -> Response:
        """Send request and return the response with an unread body.

        Args:
            request: Signed request.
            timeout: Seconds left before the caller's deadline, or None.

        Raises:
            NetworkError: On connection, TLS, DNS or socket timeout failure.
        """


@dataclass
class TransportConfig:
    """Connection pool and timeout settings for DefaultTransport.

    Timeouts are in seconds. high_latency_log_threshold is a throughput in
    KB/s below which a completed transfer is logged as slow; 0 disables it.
    """

    max_connections: int = 1024
    max_keepalive_connections: int = 1024
    keepalive_expiry: float = 60.0
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    write_timeout: float = 30.0
    pool_timeout: float = 60.0
    verify: bool = True
    proxy: Optional[str] = None
    high_latency_log_threshold: int = 100


def _bounded(value: float, remaining: Optional[float]) -> float:
    if remaining is None:
        return value
    return max(0.0, min(value, remaining))


class DefaultTransport(Transport):
    """httpx-backed transport with a pooled, keep-alive connection set.

    Args:
        config: Pool and timeout settings; defaults to TransportConfig().
        http_transport: Optional httpx transport, e.g. httpx.MockTransport.
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        http_transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config or TransportConfig()
        kwargs = {}
        if self.config.proxy:
            kwargs["proxy"] = self.config.proxy
        if http_transport is not None:
            kwargs["transport"] = http_transport

        self._client = httpx.Client(
            limits=httpx.Limits(
                max_connections=self.config.max_connections,
                max_keepalive_connections=self.config.max_keepalive_connections,
                keepalive_expiry=self.config.keepalive_expiry,
            ),
            timeout=self._timeout(None),
            verify=self.config.verify,
            follow_redirects=False,
            trust_env=False,
            **kwargs,
        )

    def _timeout(self, remaining: Optional[float]) -> httpx.Timeout:
        return httpx.Timeout(
            connect=_bounded(self.config.connect_timeout, remaining),
            read=_bounded(self.config.read_timeout, remaining),
            write=_bounded(self.config.write_timeout, remaining),
            pool=_bounded(self.config.pool_timeout, remaining),
        )

    def round_trip(self, request: Request, timeout: Optional[float] = None) -> Response:
        content = request.body
        if content is not None and hasattr(content, "read"):
            reader = content
            content = iter(lambda: reader.read(64 * 1024), b"")

        http_request = self._client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            content=content,
            timeout=self._timeout(timeout),
        )

        started = time.monotonic()
        try:
            http_response = self._client.send(http_request, stream=True)
        except _BEFORE_SEND_ERRORS as e:
            raise NetworkError(f"connect {request.host} failed: {e}", before_send=True) from e
        except (httpx.TransportError, H11LocalProtocolError, H11RemoteProtocolError) as e:
            raise NetworkError(f"{request.method} {request.host} failed: {e}") from e

        elapsed = time.monotonic() - started
        self._log_latency(request, http_response, elapsed)

        def stream() -> Iterator[bytes]:
            try:
                yield from http_response.iter_bytes()
            except (httpx.TransportError, H11RemoteProtocolError) as e:
                http_response.close()
                raise NetworkError(f"read response body failed: {e}") from e

        return Response(
            status_code=http_response.status_code,
            headers=http_response.headers,
            stream=stream(),
            on_close=http_response.close,
        )

    def _log_latency(self, request: Request, http_response: httpx.Response, elapsed: float) -> None:
        threshold = self.config.high_latency_log_threshold
        body = request.body
        if threshold <= 0 or not isinstance(body, (bytes, bytearray)) or not body:
            return
        rate = len(body) / 1024 / max(elapsed, 1e-6)
        if rate < threshold:
            logger.warning(
                "high_latency_request",
                method=request.method,
                host=request.host,
                path=request.path,
                status=http_response.status_code,
                bytes=len(body),
                elapsed=round(elapsed, 3),
                rate_kbps=round(rate, 1),
            )

    def close(self) -> None:
        self._client.close()
