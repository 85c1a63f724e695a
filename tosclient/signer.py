"""Request signing.

SignV4 implements the Service's v4-style HMAC-SHA256 header signature:

1. A canonical request is built from the method, URI-encoded path, sorted
   query, sorted signed headers and the payload digest.
2. The string to sign combines the algorithm, request time, signing scope
   (date/region/service/request) and the SHA-256 of the canonical request.
3. The signing key is derived by chaining HMACs over the secret key, date,
   region, service name and the literal "request".

Signing is a pure function of the request, the credential and the time.
"""

import hashlib
import hmac
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from tosclient.credentials import Credential
from tosclient.errors import MissingRegionError
from tosclient.transport import Request, uri_encode

ALGORITHM = "TOS4-HMAC-SHA256"
SERVICE = "tos"
SCOPE_TERMINATOR = "request"

HEADER_AUTHORIZATION = "Authorization"
HEADER_DATE = "Date"
HEADER_X_DATE = "X-Tos-Date"
HEADER_SECURITY_TOKEN = "X-Tos-Security-Token"
HEADER_CONTENT_SHA256 = "X-Tos-Content-Sha256"

UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()

ISO8601_FORMAT = "%Y%m%dT%H%M%SZ"
DATE_FORMAT = "%Y%m%d"

# Headers signed in addition to every x-tos-* header
_SIGNED_HEADERS = {"host", "content-type", "content-md5", "date"}

_SPACES = re.compile(r"\s+")


def _hmac_sha256(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def signing_key(secret_key: str, date: str, region: str, service: str = SERVICE) -> bytes:
    """Derive the signing key for one day, region and service."""
    k_date = _hmac_sha256(secret_key.encode("utf-8"), date)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, SCOPE_TERMINATOR)


def payload_hash(request: Request) -> str:
    if request.body is None:
        return EMPTY_SHA256
    if request.is_streaming:
        return UNSIGNED_PAYLOAD
    return hashlib.sha256(request.body).hexdigest()


class Signer(ABC):
    """Computes the authentication headers for a request."""

    @abstractmethod
    def sign_header(
        self,
        request: Request,
        credential: Credential,
        now: Optional[datetime] = None,
    ) -> dict[str, str]:
        """Return the headers to add to request so the Service accepts it."""


class SignV4(Signer):
    """v4-style header signer bound to a region.

    Args:
        region: Region of the signing scope.
        service: Service name of the signing scope.
    """

    def __init__(self, region: str, service: str = SERVICE):
        self.region = region
        self.service = service

    def scope(self, date: str) -> str:
        return "/".join([date, self.region, self.service, SCOPE_TERMINATOR])

    @staticmethod
    def canonical_query(request: Request) -> str:
        return "&".join(
            f"{uri_encode(k)}={uri_encode(v)}" for k, v in sorted(request.query)
        )

    @staticmethod
    def signed_headers(headers: dict[str, str]) -> dict[str, str]:
        signed = {}
        for key, value in headers.items():
            name = key.lower()
            if name in _SIGNED_HEADERS or name.startswith("x-tos-"):
                signed[name] = _SPACES.sub(" ", value.strip())
        return dict(sorted(signed.items()))

    def canonical_request(self, request: Request, headers: dict[str, str], content_hash: str) -> str:
        signed = self.signed_headers(headers)
        return "\n".join([
            request.method.upper(),
            uri_encode(request.path or "/", encode_slash=False),
            self.canonical_query(request),
            "".join(f"{k}:{v}\n" for k, v in signed.items()),
            ";".join(signed),
            content_hash,
        ])

    def sign_header(
        self,
        request: Request,
        credential: Credential,
        now: Optional[datetime] = None,
    ) -> dict[str, str]:
        """Sign request and return the headers to attach.

        Args:
            request: The request to sign; it is not modified.
            credential: Keys to sign with.
            now: Signing time, defaults to the current UTC time.

        Returns:
            Authorization, X-Tos-Date, Date, and when applicable
            X-Tos-Security-Token and X-Tos-Content-Sha256.

        Raises:
            MissingRegionError: If the signer has no region.
        """
        if not self.region:
            raise MissingRegionError("missing region for signing")

        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        x_date = now.strftime(ISO8601_FORMAT)
        date = now.strftime(DATE_FORMAT)
        content_hash = payload_hash(request)

        added = {HEADER_X_DATE: x_date, HEADER_DATE: x_date}
        if credential.security_token:
            added[HEADER_SECURITY_TOKEN] = credential.security_token
        if content_hash != EMPTY_SHA256:
            added[HEADER_CONTENT_SHA256] = content_hash

        headers = {k: v for k, v in request.headers.items()}
        headers.update(added)
        headers["host"] = request.host

        canonical = self.canonical_request(request, headers, content_hash)
        scope = self.scope(date)
        string_to_sign = "\n".join([
            ALGORITHM,
            x_date,
            scope,
            hashlib.sha256(canonical.encode("utf-8")).hexdigest(),
        ])
        key = signing_key(credential.secret_access_key, date, self.region, self.service)
        signature = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        added[HEADER_AUTHORIZATION] = (
            f"{ALGORITHM} Credential={credential.access_key_id}/{scope},"
            f"SignedHeaders={';'.join(self.signed_headers(headers))},"
            f"Signature={signature}"
        )
        return added
