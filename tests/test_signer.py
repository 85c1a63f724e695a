"""Tests for request signing."""

import hashlib
import hmac
import io
from datetime import datetime, timezone

import pytest

from tosclient.credentials import Credential
from tosclient.errors import MissingRegionError
from tosclient.signer import (
    EMPTY_SHA256,
    UNSIGNED_PAYLOAD,
    SignV4,
    signing_key,
)
from tosclient.transport import Request

NOW = datetime(2021, 7, 21, 10, 44, 54, tzinfo=timezone.utc)
X_DATE = "20210721T104454Z"


@pytest.fixture
def credential():
    return Credential("AKIDEXAMPLE", "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY")


@pytest.fixture
def request_():
    return Request(method="GET", scheme="https", host="b.example.com", path="/", query=[("policy", "")])


class TestSigningKey:
    """Tests for signing key derivation."""

    def test_hmac_chain(self):
        """The key chains date, region, service and "request"."""
        def step(key, msg):
            return hmac.new(key, msg.encode(), hashlib.sha256).digest()

        expected = step(step(step(step(b"secret", "20210721"), "cn-beijing"), "tos"), "request")

        assert signing_key("secret", "20210721", "cn-beijing") == expected

    def test_region_changes_key(self):
        """Keys are scoped per region."""
        assert signing_key("s", "20210721", "cn-beijing") != signing_key("s", "20210721", "cn-shanghai")


class TestCanonicalRequest:
    """Tests for the canonical request."""

    def test_layout(self, request_):
        """Method, path, query, headers, signed names and payload hash."""
        signer = SignV4("cn-beijing")
        headers = {"X-Tos-Date": X_DATE, "Date": X_DATE, "host": "b.example.com"}

        canonical = signer.canonical_request(request_, headers, EMPTY_SHA256)

        assert canonical == (
            "GET\n"
            "/\n"
            "policy=\n"
            f"date:{X_DATE}\n"
            "host:b.example.com\n"
            f"x-tos-date:{X_DATE}\n"
            "\n"
            "date;host;x-tos-date\n"
            f"{EMPTY_SHA256}"
        )

    def test_query_sorted_and_encoded(self):
        """Query parameters are sorted and percent-encoded."""
        request = Request("GET", "https", "h", query=[("prefix", "a b"), ("delimiter", "/")])

        assert SignV4("r").canonical_query(request) == "delimiter=%2F&prefix=a%20b"

    def test_unsigned_headers_skipped(self):
        """Only host, content-type, content-md5, date and x-tos-* are signed."""
        signed = SignV4.signed_headers({
            "User-Agent": "ua",
            "Content-Type": "application/json",
            "X-Tos-Acl": "private",
            "Accept": "*/*",
        })

        assert list(signed) == ["content-type", "x-tos-acl"]

    def test_header_whitespace_collapsed(self):
        """Header values are trimmed and inner whitespace collapsed."""
        signed = SignV4.signed_headers({"X-Tos-Meta-Note": "  a   b  "})

        assert signed == {"x-tos-meta-note": "a b"}

    def test_path_keeps_slashes(self):
        """Object paths are encoded without escaping the separators."""
        request = Request("PUT", "https", "h", path="/dir/a b.txt")

        canonical = SignV4("r").canonical_request(request, {"host": "h"}, EMPTY_SHA256)

        assert canonical.split("\n")[1] == "/dir/a%20b.txt"


class TestSignHeader:
    """Tests for SignV4.sign_header()."""

    def test_authorization_layout(self, request_, credential):
        """The Authorization header names the scope and signed headers."""
        headers = SignV4("cn-beijing").sign_header(request_, credential, now=NOW)

        assert headers["Authorization"].startswith(
            "TOS4-HMAC-SHA256 Credential=AKIDEXAMPLE/20210721/cn-beijing/tos/request,"
            "SignedHeaders=date;host;x-tos-date,Signature="
        )
        assert headers["X-Tos-Date"] == X_DATE
        assert headers["Date"] == X_DATE

    def test_signature_value(self, request_, credential):
        """The signature is HMAC over the documented string to sign."""
        signer = SignV4("cn-beijing")
        canonical = signer.canonical_request(
            request_, {"X-Tos-Date": X_DATE, "Date": X_DATE, "host": "b.example.com"}, EMPTY_SHA256
        )
        string_to_sign = "\n".join([
            "TOS4-HMAC-SHA256",
            X_DATE,
            "20210721/cn-beijing/tos/request",
            hashlib.sha256(canonical.encode()).hexdigest(),
        ])
        key = signing_key(credential.secret_access_key, "20210721", "cn-beijing")
        expected = hmac.new(key, string_to_sign.encode(), hashlib.sha256).hexdigest()

        headers = signer.sign_header(request_, credential, now=NOW)

        assert headers["Authorization"].endswith(f"Signature={expected}")

    def test_idempotent(self, request_, credential):
        """Same request, credential and time give the same signature."""
        signer = SignV4("cn-beijing")

        first = signer.sign_header(request_, credential, now=NOW)
        second = signer.sign_header(request_, credential, now=NOW)

        assert first == second

    def test_secret_changes_signature(self, request_):
        """A different secret key gives a different signature."""
        signer = SignV4("cn-beijing")

        first = signer.sign_header(request_, Credential("AK", "secret-1"), now=NOW)
        second = signer.sign_header(request_, Credential("AK", "secret-2"), now=NOW)

        assert first["Authorization"] != second["Authorization"]

    def test_request_not_modified(self, request_, credential):
        """sign_header() returns headers instead of mutating the request."""
        SignV4("cn-beijing").sign_header(request_, credential, now=NOW)

        assert "Authorization" not in request_.headers

    def test_security_token_signed(self, request_):
        """A security token is sent and covered by the signature."""
        credential = Credential("AK", "SK", "token-1")

        headers = SignV4("cn-beijing").sign_header(request_, credential, now=NOW)

        assert headers["X-Tos-Security-Token"] == "token-1"
        assert "x-tos-security-token" in headers["Authorization"]

    def test_no_body_has_no_content_hash(self, request_, credential):
        """Requests without a body do not send a payload hash."""
        headers = SignV4("cn-beijing").sign_header(request_, credential, now=NOW)

        assert "X-Tos-Content-Sha256" not in headers

    def test_bytes_body_hashed(self, credential):
        """An in-memory body is hashed."""
        request = Request("PUT", "https", "h", query=[("policy", "")], body=b"{}")

        headers = SignV4("cn-beijing").sign_header(request, credential, now=NOW)

        assert headers["X-Tos-Content-Sha256"] == hashlib.sha256(b"{}").hexdigest()

    def test_streaming_body_unsigned(self, credential):
        """A streaming body uses UNSIGNED-PAYLOAD."""
        request = Request("PUT", "https", "h", path="/k", body=io.BytesIO(b"data"))

        headers = SignV4("cn-beijing").sign_header(request, credential, now=NOW)

        assert headers["X-Tos-Content-Sha256"] == UNSIGNED_PAYLOAD

    def test_local_time_normalized_to_utc(self, request_, credential):
        """Signing time is always expressed in UTC."""
        from datetime import timedelta

        local = NOW.astimezone(timezone(timedelta(hours=8)))

        headers = SignV4("cn-beijing").sign_header(request_, credential, now=local)

        assert headers["X-Tos-Date"] == X_DATE

    def test_missing_region(self, request_, credential):
        """Signing without a region fails."""
        with pytest.raises(MissingRegionError):
            SignV4("").sign_header(request_, credential, now=NOW)
