"""TOS client.

A Client is an immutable composition of endpoint, region, credentials,
signer and transport. It is built once and shared freely between threads:

    client = Client(
        "tos-cn-beijing.volces.com",
        region="cn-beijing",
        credentials=StaticCredentials(access_key, secret_key),
    )
    client.head_bucket("my-bucket")

For public buckets the credentials may be omitted; requests are then sent
unsigned.

Every operation runs the same strictly ordered flow: fetch credentials,
sign, send through the transport, then either hand back the response or
translate the Service's error envelope into a typed error.
"""

import ipaddress
import json
import mimetypes
import platform
import sys
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union
from urllib.parse import urlsplit

from tosclient import __version__
from tosclient.context import Context, background, with_timeout
from tosclient.credentials import Credentials
from tosclient.errors import (
    MAX_ERROR_BODY,
    CanceledError,
    ClientInvalidArgumentError,
    ClientSerializationError,
    DeadlineExceededError,
    InvalidBucketNameError,
    InvalidEndpointError,
    NetworkError,
    parse_error_envelope,
)
from tosclient.log import get_logger
from tosclient.models import (
    ACL,
    CreateBucketOutput,
    DeleteBucketOutput,
    DeleteBucketPolicyOutput,
    GetBucketPolicyOutput,
    HeadBucketOutput,
    ListBucketsOutput,
    ListedBucket,
    Owner,
    PutBucketPolicyOutput,
    RequestInfo,
    StorageClass,
)
from tosclient.policy import Rules
from tosclient.retry import MAX_RETRY_COUNT, retry_with_backoff
from tosclient.signer import Signer, SignV4
from tosclient.transport import Body, DefaultTransport, Request, Response, Transport, TransportConfig

logger = get_logger(__name__)

HEADER_USER_AGENT = "User-Agent"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_LOCATION = "Location"
HEADER_ACL = "X-Tos-Acl"
HEADER_STORAGE_CLASS = "X-Tos-Storage-Class"
HEADER_BUCKET_REGION = "X-Tos-Bucket-Region"

DEFAULT_USER_AGENT = (
    f"tos-python-sdk/{__version__} "
    f"({sys.platform}/{platform.machine()};python{platform.python_version()})"
)

# Regional endpoints of the Service
SUPPORTED_REGIONS = {
    "cn-beijing": "tos-cn-beijing.volces.com",
    "cn-guangzhou": "tos-cn-guangzhou.volces.com",
    "cn-shanghai": "tos-cn-shanghai.volces.com",
    "cn-hongkong": "tos-cn-hongkong.volces.com",
    "ap-southeast-1": "tos-ap-southeast-1.volces.com",
}

SUPPORTED_ENDPOINTS = {endpoint: region for region, endpoint in SUPPORTED_REGIONS.items()}

# Seconds between context checks while a round trip is in flight
CANCEL_POLL_INTERVAL = 0.02

CLIENT_OPTIONS = frozenset({
    "region",
    "credentials",
    "transport",
    "transport_config",
    "request_timeout",
    "enable_crc",
    "user_agent",
    "auto_recognize_content_type",
    "max_retry_count",
    "signer",
})


@dataclass(frozen=True)
class ClientConfig:
    """Composed, read-only configuration of a Client.

    request_timeout is the default per-operation deadline in milliseconds
    (None means no deadline beyond the transport's socket timeouts).
    """

    endpoint: str
    scheme: str
    host: str
    region: str
    credentials: Optional[Credentials]
    signer: Optional[Signer]
    transport: Transport
    request_timeout: Optional[int]
    user_agent: str
    enable_crc: bool
    auto_recognize_content_type: bool
    max_retry_count: int
    path_style: bool


def normalize_endpoint(endpoint: str) -> tuple[str, str]:
    """Split an endpoint into (scheme, host), defaulting to https.

    Raises:
        InvalidEndpointError: If the endpoint is not an http(s) URL with a host.
    """
    endpoint = endpoint.strip()
    if not endpoint:
        raise InvalidEndpointError("endpoint is empty")
    if "://" not in endpoint:
        endpoint = "https://" + endpoint

    parts = urlsplit(endpoint)
    if parts.scheme not in ("http", "https"):
        raise InvalidEndpointError(f"unsupported endpoint scheme {parts.scheme!r}: {endpoint}")
    if not parts.hostname:
        raise InvalidEndpointError(f"endpoint has no host: {endpoint}")
    if parts.path not in ("", "/") or parts.query or parts.fragment:
        raise InvalidEndpointError(f"endpoint must not carry a path or query: {endpoint}")
    return parts.scheme, parts.netloc


def _is_ip_host(netloc: str) -> bool:
    host = urlsplit(f"//{netloc}").hostname or ""
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def validate_bucket_name(name: str) -> None:
    """Check the Service's bucket naming rules.

    Raises:
        InvalidBucketNameError: If the name is invalid.
    """
    if not 3 <= len(name) <= 63:
        raise InvalidBucketNameError("bucket name length must be between 3 and 63")
    for char in name:
        if not ("a" <= char <= "z" or "0" <= char <= "9" or char == "-"):
            raise InvalidBucketNameError(
                "bucket name can consist only of lowercase letters, numbers, and '-'"
            )
    if name[0] == "-" or name[-1] == "-":
        raise InvalidBucketNameError("bucket name must begin and end with a letter or number")


def _parse_time(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _enum_value(value: Union[str, Enum], enum: type[Enum], name: str) -> str:
    """Return the wire value of an enum member or a string naming one."""
    if isinstance(value, enum):
        return value.value
    if value and value not in {member.value for member in enum}:
        raise ClientInvalidArgumentError(f"invalid {name} {value!r}")
    return value


def _release_abandoned(future: Future) -> None:
    if future.exception() is None:
        future.result().close()


def _round_trip(transport: Transport, request: Request, ctx: Context) -> Response:
    """Run one transport round trip that stops waiting as soon as ctx fires.

    The transport call runs on a worker thread. When ctx fires first the
    caller gets CanceledError or DeadlineExceededError right away, and a
    response that arrives afterwards is closed so its connection goes back
    to the pool.
    """
    if not ctx.can_fire:
        return transport.round_trip(request, timeout=None)

    future: Future = Future()

    def run() -> None:
        try:
            future.set_result(transport.round_trip(request, timeout=ctx.remaining()))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=run, name="tos-round-trip", daemon=True).start()
    while True:
        try:
            return future.result(timeout=CANCEL_POLL_INTERVAL)
        except FutureTimeoutError:
            if ctx.fired():
                future.add_done_callback(_release_abandoned)
                ctx.check()


class Client:
    """Immutable TOS client.

    Args:
        endpoint: Service endpoint; "https://" is assumed when the scheme is
            missing. May be empty when region names a known region.
        region: Signing region. Derived from a known endpoint when empty.
        credentials: Credentials provider; None sends anonymous requests.
        transport: Transport to use. When omitted the client creates a
            DefaultTransport from transport_config and closes it in close().
        transport_config: Settings for the default transport.
        request_timeout: Default per-operation deadline in milliseconds.
        enable_crc: Verify payload CRC for uploads and downloads.
        user_agent: Suffix appended to the default User-Agent.
        auto_recognize_content_type: Derive Content-Type from object keys.
        max_retry_count: Retries for connection failures that happened
            before sending, between 0 and MAX_RETRY_COUNT.
        signer: Custom signer; defaults to SignV4 when credentials are set.

    Raises:
        InvalidEndpointError: If the endpoint is not an http(s) URL.
        ClientInvalidArgumentError: For unknown or out-of-range options.
    """

    def __init__(self, endpoint: str = "", **options: Any):
        unknown = set(options) - CLIENT_OPTIONS
        if unknown:
            raise ClientInvalidArgumentError(f"unknown client options: {', '.join(sorted(unknown))}")

        region = options.get("region") or ""
        if not endpoint and region in SUPPORTED_REGIONS:
            endpoint = SUPPORTED_REGIONS[region]
        scheme, host = normalize_endpoint(endpoint)
        if not region:
            region = SUPPORTED_ENDPOINTS.get(host, "")

        request_timeout = options.get("request_timeout")
        if request_timeout is not None and request_timeout <= 0:
            raise ClientInvalidArgumentError("request_timeout must be a positive number of milliseconds")

        max_retry_count = options.get("max_retry_count", 0)
        if not 0 <= max_retry_count <= MAX_RETRY_COUNT:
            raise ClientInvalidArgumentError(
                f"max_retry_count must be between 0 and {MAX_RETRY_COUNT}"
            )

        transport = options.get("transport")
        if transport is not None and options.get("transport_config") is not None:
            raise ClientInvalidArgumentError("transport and transport_config are mutually exclusive")
        self._owns_transport = transport is None
        if transport is None:
            transport = DefaultTransport(options.get("transport_config") or TransportConfig())

        credentials = options.get("credentials")
        signer = options.get("signer")
        if signer is None and credentials is not None:
            signer = SignV4(region)

        user_agent = DEFAULT_USER_AGENT
        if options.get("user_agent"):
            user_agent = f"{user_agent} {options['user_agent']}"

        self._config = ClientConfig(
            endpoint=f"{scheme}://{host}",
            scheme=scheme,
            host=host,
            region=region,
            credentials=credentials,
            signer=signer,
            transport=transport,
            request_timeout=request_timeout,
            user_agent=user_agent,
            enable_crc=options.get("enable_crc", True),
            auto_recognize_content_type=options.get("auto_recognize_content_type", True),
            max_retry_count=max_retry_count,
            path_style=_is_ip_host(host),
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def endpoint(self) -> str:
        return self._config.endpoint

    @property
    def region(self) -> str:
        return self._config.region

    def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport and isinstance(self._config.transport, DefaultTransport):
            self._config.transport.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    def content_type(self, key: str) -> str:
        if not key or not self._config.auto_recognize_content_type:
            return ""
        content_type, _ = mimetypes.guess_type(key, strict=False)
        return content_type or ""

    def new_request(
        self,
        method: str,
        bucket: str = "",
        key: str = "",
        query: Optional[list[tuple[str, str]]] = None,
        headers: Optional[dict[str, str]] = None,
        body: Body = None,
    ) -> Request:
        """Describe a request against a bucket and/or object key.

        IP endpoints use path-style addressing (/bucket/key); other hosts
        use virtual-hosted style (bucket.host/key).
        """
        host = self._config.host
        if self._config.path_style:
            path = "/" + "/".join(part for part in (bucket, key) if part)
        else:
            if bucket:
                host = f"{bucket}.{host}"
            path = "/" + key

        request = Request(
            method=method,
            scheme=self._config.scheme,
            host=host,
            path=path,
            query=list(query or []),
            body=body,
        )
        request.headers[HEADER_USER_AGENT] = self._config.user_agent
        content_type = self.content_type(key)
        if content_type:
            request.headers[HEADER_CONTENT_TYPE] = content_type
        for name, value in (headers or {}).items():
            if value:
                request.headers[name] = value
        return request

    def _context(self, ctx: Optional[Context]) -> Context:
        if ctx is not None:
            return ctx
        if self._config.request_timeout is not None:
            return with_timeout(self._config.request_timeout / 1000)
        return background()

    def _send(self, request: Request, ctx: Context) -> Response:
        def attempt() -> Response:
            ctx.check()
            return _round_trip(self._config.transport, request, ctx)

        try:
            response = retry_with_backoff(attempt, self._config.max_retry_count, ctx)
        except NetworkError as e:
            if ctx.cancelled:
                raise CanceledError() from e
            if ctx.expired():
                raise DeadlineExceededError() from e
            raise

        if ctx.fired():
            response.close()
            ctx.check()
        return response

    def do(self, request: Request, ctx: Optional[Context] = None) -> Response:
        """Sign and send request; return the response of a successful call.

        The caller owns the returned response and must close it.

        Raises:
            ServiceError: For a non-2xx/3xx response with an error envelope.
            ServiceUnparseableError: For other non-2xx/3xx responses.
            NetworkError, CanceledError, DeadlineExceededError,
            MissingRegionError, MissingCredentialsError.
        """
        ctx = self._context(ctx)
        ctx.check()

        config = self._config
        if config.signer is not None and config.credentials is not None:
            credential = config.credentials.get_credentials(ctx)
            request.headers.update(config.signer.sign_header(request, credential))

        started = time.monotonic()
        response = self._send(request, ctx)
        logger.debug(
            "request_complete",
            method=request.method,
            host=request.host,
            path=request.path,
            status=response.status_code,
            request_id=response.request_id,
            elapsed=round(time.monotonic() - started, 3),
        )

        if response.status_code < 400:
            return response

        try:
            body = response.read(MAX_ERROR_BODY)
        except NetworkError:
            body = b""
        finally:
            response.close()
        raise parse_error_envelope(response.status_code, body, response.headers)

    def _call(self, request: Request, ctx: Optional[Context]) -> tuple[RequestInfo, bytes]:
        """Run request and return its RequestInfo and fully read body."""
        with self.do(request, ctx) as response:
            body = response.read()
            info = RequestInfo(
                request_id=response.request_id,
                id2=response.id2,
                status_code=response.status_code,
                headers=dict(response.headers),
            )
        return info, body

    def head_bucket(self, bucket: str, ctx: Optional[Context] = None) -> HeadBucketOutput:
        validate_bucket_name(bucket)
        info, _ = self._call(self.new_request("HEAD", bucket), ctx)
        return HeadBucketOutput(
            request_info=info,
            region=info.headers.get(HEADER_BUCKET_REGION.lower(), ""),
            storage_class=info.headers.get(HEADER_STORAGE_CLASS.lower(), ""),
        )

    def create_bucket(
        self,
        bucket: str,
        acl: Union[str, ACL] = "",
        storage_class: Union[str, StorageClass] = "",
        ctx: Optional[Context] = None,
    ) -> CreateBucketOutput:
        validate_bucket_name(bucket)
        acl = _enum_value(acl, ACL, "acl")
        storage_class = _enum_value(storage_class, StorageClass, "storage class")

        request = self.new_request(
            "PUT",
            bucket,
            headers={HEADER_ACL: acl, HEADER_STORAGE_CLASS: storage_class},
        )
        info, _ = self._call(request, ctx)
        return CreateBucketOutput(
            request_info=info,
            location=info.headers.get(HEADER_LOCATION.lower(), ""),
        )

    def delete_bucket(self, bucket: str, ctx: Optional[Context] = None) -> DeleteBucketOutput:
        validate_bucket_name(bucket)
        info, _ = self._call(self.new_request("DELETE", bucket), ctx)
        return DeleteBucketOutput(request_info=info)

    def list_buckets(self, ctx: Optional[Context] = None) -> ListBucketsOutput:
        info, body = self._call(self.new_request("GET"), ctx)
        try:
            data = json.loads(body) if body.strip() else {}
        except ValueError as e:
            raise ClientSerializationError(
                f"decode ListBuckets response failed: {e}", info.request_id
            ) from e

        owner = data.get("Owner") or {}
        return ListBucketsOutput(
            request_info=info,
            owner=Owner(id=owner.get("ID", ""), display_name=owner.get("DisplayName", "")),
            buckets=[
                ListedBucket(
                    name=item.get("Name", ""),
                    creation_date=_parse_time(item.get("CreationDate", "")),
                    location=item.get("Location", ""),
                    extranet_endpoint=item.get("ExtranetEndpoint", ""),
                    intranet_endpoint=item.get("IntranetEndpoint", ""),
                )
                for item in data.get("Buckets") or []
            ],
        )

    def get_bucket_policy(self, bucket: str, ctx: Optional[Context] = None) -> GetBucketPolicyOutput:
        validate_bucket_name(bucket)
        request = self.new_request("GET", bucket, query=[("policy", "")])
        info, body = self._call(request, ctx)
        try:
            policy = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ClientSerializationError(
                f"decode bucket policy failed: {e}", info.request_id
            ) from e
        return GetBucketPolicyOutput(request_info=info, policy=policy)

    def put_bucket_policy(
        self,
        bucket: str,
        policy: Union[Rules, str, bytes],
        ctx: Optional[Context] = None,
    ) -> PutBucketPolicyOutput:
        validate_bucket_name(bucket)
        if isinstance(policy, Rules):
            body = policy.to_json()
        elif isinstance(policy, str):
            body = policy.encode("utf-8")
        else:
            body = bytes(policy)

        request = self.new_request("PUT", bucket, query=[("policy", "")], body=body)
        info, _ = self._call(request, ctx)
        return PutBucketPolicyOutput(request_info=info)

    def delete_bucket_policy(self, bucket: str, ctx: Optional[Context] = None) -> DeleteBucketPolicyOutput:
        validate_bucket_name(bucket)
        request = self.new_request("DELETE", bucket, query=[("policy", "")])
        info, _ = self._call(request, ctx)
        return DeleteBucketPolicyOutput(request_info=info)
