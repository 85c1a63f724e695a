"""Error taxonomy for the TOS client.

Every error raised by the client derives from TosError. The hierarchy groups
errors by kind rather than by call site:

- ClientInvalidArgumentError: bad endpoint, missing region, bad bucket name,
  missing credentials.
- ClientSerializationError: a body could not be encoded or decoded
  (includes InvalidPolicySyntax).
- NetworkError: connection, TLS, DNS, or socket timeout failures.
- CanceledError / DeadlineExceededError: the caller's Context fired.
- ServiceError: non-2xx response with a parseable service error envelope.
- ServiceUnparseableError: non-2xx response without a recognizable envelope.
"""

import json
import xml.etree.ElementTree as ET
from typing import Mapping, Optional

HEADER_REQUEST_ID = "x-tos-request-id"
HEADER_ID2 = "x-tos-id-2"
HEADER_EC = "x-tos-ec"

# Cap on how much of an error body is read
MAX_ERROR_BODY = 64 * 1024

# Length of the raw body kept on ServiceUnparseableError
SNIPPET_LENGTH = 256


class TosError(Exception):
    """Base class for all errors raised by the client."""

    def __init__(self, message: str, request_id: str = ""):
        super().__init__(message)
        self.message = message
        self.request_id = request_id

    def __str__(self) -> str:
        if self.request_id:
            return f"tos: {self.message} (RequestId={self.request_id})"
        return f"tos: {self.message}"


class ClientInvalidArgumentError(TosError):
    """Raised when the caller supplied an invalid argument or option."""


class InvalidEndpointError(ClientInvalidArgumentError):
    """Raised when the endpoint is not an http(s) URL."""


class MissingRegionError(ClientInvalidArgumentError):
    """Raised when signing needs a region and none is configured."""


class InvalidBucketNameError(ClientInvalidArgumentError):
    """Raised when a bucket name violates the naming rules."""


class MissingCredentialsError(ClientInvalidArgumentError):
    """Raised when credentials are missing or could not be refreshed."""


class ClientSerializationError(TosError):
    """Raised when a request or response body cannot be (de)serialized."""


class InvalidPolicySyntax(ClientSerializationError):
    """Raised when a policy document does not match the wire format."""


class NetworkError(TosError):
    """Raised on connection, TLS, DNS, or socket timeout failures.

    Args:
        message: Human-readable description.
        before_send: True when the failure happened before any byte of the
            request was written, which makes a retry safe.
    """

    def __init__(self, message: str, before_send: bool = False):
        super().__init__(message)
        self.before_send = before_send


class CanceledError(TosError):
    """Raised when the caller cancelled the operation's Context."""

    def __init__(self, message: str = "operation canceled"):
        super().__init__(message)


class DeadlineExceededError(TosError):
    """Raised when the operation's deadline expired."""

    def __init__(self, message: str = "deadline exceeded"):
        super().__init__(message)


class ServiceError(TosError):
    """A non-2xx response carrying the Service's error envelope."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        request_id: str = "",
        host_id: str = "",
        ec: str = "",
    ):
        super().__init__(message, request_id)
        self.status_code = status_code
        self.code = code
        self.host_id = host_id
        self.ec = ec

    def __str__(self) -> str:
        return (
            f"tos: request error: StatusCode={self.status_code}, Code={self.code}, "
            f"Message={self.message!r}, RequestId={self.request_id}, HostId={self.host_id}"
        )


class ServiceUnparseableError(TosError):
    """A non-2xx response whose body is not a recognized error envelope."""

    def __init__(self, status_code: int, snippet: str, request_id: str = ""):
        super().__init__(f"unexpected status code {status_code}", request_id)
        self.status_code = status_code
        self.snippet = snippet

    def __str__(self) -> str:
        return (
            f"tos: unexpected status code error: StatusCode={self.status_code}, "
            f"RequestId={self.request_id}, Body={self.snippet!r}"
        )


def _envelope_from_json(body: bytes) -> Optional[dict]:
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict) or not data.get("Code"):
        return None
    return data


def _local_name(tag: str) -> str:
    # ElementTree spells namespaced tags as "{uri}name"
    return tag.rsplit("}", 1)[-1]


def _envelope_from_xml(body: bytes) -> Optional[dict]:
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None
    if _local_name(root.tag) != "Error":
        return None
    data = {_local_name(child.tag): (child.text or "") for child in root}
    if not data.get("Code"):
        return None
    return data


def parse_error_envelope(
    status_code: int,
    body: bytes,
    headers: Optional[Mapping[str, str]] = None,
) -> TosError:
    """Translate a non-2xx response into a typed error.

    Both the JSON envelope and its XML equivalent are recognized. When
    the body carries no RequestId the x-tos-request-id header is used.

    Args:
        status_code: HTTP status of the response.
        body: Raw response body (at most MAX_ERROR_BODY bytes are inspected).
        headers: Response headers, looked up case-insensitively by the caller.

    Returns:
        ServiceError if the envelope was recognized, ServiceUnparseableError
        otherwise.
    """
    headers = headers or {}
    header_request_id = headers.get(HEADER_REQUEST_ID, "")
    body = body[:MAX_ERROR_BODY]

    envelope = None
    stripped = body.lstrip()
    if stripped.startswith(b"{"):
        envelope = _envelope_from_json(stripped)
    elif stripped.startswith(b"<"):
        envelope = _envelope_from_xml(stripped)

    if envelope is None:
        snippet = body[:SNIPPET_LENGTH].decode("utf-8", errors="replace")
        return ServiceUnparseableError(status_code, snippet, header_request_id)

    return ServiceError(
        status_code=status_code,
        code=str(envelope.get("Code", "")),
        message=str(envelope.get("Message", "")),
        request_id=str(envelope.get("RequestId") or header_request_id),
        host_id=str(envelope.get("HostId", "")),
        ec=str(envelope.get("EC") or headers.get(HEADER_EC, "")),
    )


def error_code(err: BaseException) -> str:
    """Return the service error code, or "" for other errors."""
    if isinstance(err, ServiceError):
        return err.code
    return ""


def status_code(err: BaseException) -> int:
    """Return the HTTP status carried by a service error, or 0."""
    if isinstance(err, (ServiceError, ServiceUnparseableError)):
        return err.status_code
    return 0


def request_id(err: BaseException) -> str:
    """Return the RequestId carried by a TosError, or ""."""
    if isinstance(err, TosError):
        return err.request_id
    return ""
