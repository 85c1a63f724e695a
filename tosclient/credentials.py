"""Credential providers.

A Credentials object supplies the access key, secret key and optional
security token used to sign each request. Every implementation is safe to
share between threads.

Providers:
- StaticCredentials: fixed keys that never expire.
- EnvCredentials: keys read from TOS_ACCESS_KEY / TOS_SECRET_KEY /
  TOS_SECURITY_TOKEN on every call.
- RefreshingCredentials: wraps a fetch function (for example EcsCredentials)
  and caches its result until shortly before expiry. At most one refresh
  runs at a time per instance.
"""

import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx
from botocore.credentials import DeferredRefreshableCredentials

from tosclient.context import Context, background
from tosclient.errors import MissingCredentialsError, NetworkError, TosError
from tosclient.log import get_logger

logger = get_logger(__name__)

ENV_ACCESS_KEY = "TOS_ACCESS_KEY"
ENV_SECRET_KEY = "TOS_SECRET_KEY"
ENV_SECURITY_TOKEN = "TOS_SECURITY_TOKEN"

DEFAULT_ECS_URL = "http://100.96.0.96/volcstack/latest/iam/security_credentials/{role_name}"

# Validity assumed for fetched credentials that carry no expiry
DEFAULT_VALIDITY = timedelta(hours=10)

# Refresh in the background of a call this long before expiry
DEFAULT_ADVISORY_REFRESH = 15 * 60

# Block callers for a refresh this long before expiry
DEFAULT_MANDATORY_REFRESH = 10 * 60


@dataclass(frozen=True)
class Credential:
    """One set of keys used to sign requests."""

    access_key_id: str
    secret_access_key: str
    security_token: str = ""
    expiry: Optional[datetime] = None


class Credentials(ABC):
    """Abstract credential supplier."""

    @abstractmethod
    def get_credentials(self, ctx: Optional[Context] = None) -> Credential:
        """Return the keys to sign the next request with.

        Args:
            ctx: Caller context; implementations that perform I/O must not
                block past its deadline.

        Raises:
            MissingCredentialsError: If no usable credentials are available.
            NetworkError: If a refresh endpoint could not be reached.
        """


class StaticCredentials(Credentials):
    """Fixed access key and secret key."""

    def __init__(self, access_key_id: str, secret_access_key: str, security_token: str = ""):
        self._credential = Credential(access_key_id, secret_access_key, security_token)

    def get_credentials(self, ctx: Optional[Context] = None) -> Credential:
        return self._credential


class EnvCredentials(Credentials):
    """Credentials read from the environment on every call."""

    def get_credentials(self, ctx: Optional[Context] = None) -> Credential:
        access_key = os.environ.get(ENV_ACCESS_KEY, "").strip()
        secret_key = os.environ.get(ENV_SECRET_KEY, "").strip()
        token = os.environ.get(ENV_SECURITY_TOKEN, "").strip()
        if not access_key or not secret_key:
            raise MissingCredentialsError(
                f"env credentials not found: require {ENV_ACCESS_KEY} and {ENV_SECRET_KEY}"
            )
        return Credential(access_key, secret_key, token)


FetchFunc = Callable[[Context], Credential]


class RefreshingCredentials(Credentials):
    """Cache credentials produced by a fetch function.

    The cache and the refresh lock come from botocore's
    DeferredRefreshableCredentials: nothing is fetched until the first call,
    a call inside the advisory window triggers a refresh but falls back to
    the cached keys if it fails, and a call inside the mandatory window
    waits for a fresh set.

    Args:
        fetch: Called with the caller's Context; returns a Credential.
        advisory_refresh: Seconds before expiry to start refreshing.
        mandatory_refresh: Seconds before expiry after which cached keys
            are no longer handed out.
    """

    def __init__(
        self,
        fetch: FetchFunc,
        advisory_refresh: int = DEFAULT_ADVISORY_REFRESH,
        mandatory_refresh: int = DEFAULT_MANDATORY_REFRESH,
    ):
        if mandatory_refresh > advisory_refresh:
            raise ValueError("mandatory_refresh must not exceed advisory_refresh")
        self._fetch = fetch
        self._local = threading.local()
        self._expiry: Optional[datetime] = None
        self._cached = DeferredRefreshableCredentials(
            refresh_using=self._refresh,
            method="tos-refreshing",
        )
        self._cached._advisory_refresh_timeout = advisory_refresh
        self._cached._mandatory_refresh_timeout = mandatory_refresh

    def _refresh(self) -> dict:
        ctx = getattr(self._local, "ctx", None) or background()
        ctx.check()
        try:
            credential = self._fetch(ctx)
        except TosError:
            raise
        except httpx.TransportError as e:
            raise NetworkError(f"credentials endpoint unreachable: {e}") from e
        except Exception as e:
            raise MissingCredentialsError(f"refresh credentials failed: {e}") from e

        if not credential.access_key_id or not credential.secret_access_key:
            raise MissingCredentialsError("refreshed credentials are empty")

        expiry = credential.expiry
        if expiry is None:
            expiry = datetime.now(timezone.utc) + DEFAULT_VALIDITY
        elif expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        if expiry <= datetime.now(timezone.utc):
            raise MissingCredentialsError(f"refreshed credentials already expired at {expiry.isoformat()}")
        self._expiry = expiry
        logger.debug("credentials_refreshed", expiry=expiry.isoformat())

        return {
            "access_key": credential.access_key_id,
            "secret_key": credential.secret_access_key,
            "token": credential.security_token,
            "expiry_time": expiry.isoformat(),
        }

    def get_credentials(self, ctx: Optional[Context] = None) -> Credential:
        ctx = ctx or background()
        ctx.check()
        self._local.ctx = ctx
        try:
            frozen = self._cached.get_frozen_credentials()
        except RuntimeError as e:
            # Raised by botocore when a refresh lands inside the mandatory window
            raise MissingCredentialsError(f"refresh credentials failed: {e}") from e
        finally:
            self._local.ctx = None
        return Credential(
            access_key_id=frozen.access_key,
            secret_access_key=frozen.secret_key,
            security_token=frozen.token or "",
            expiry=self._expiry,
        )


def _parse_expiry(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class EcsCredentials:
    """Fetch temporary credentials from the ECS instance metadata service.

    Instances are fetch functions for RefreshingCredentials:

        credentials = RefreshingCredentials(EcsCredentials("my-role"))

    Args:
        role_name: IAM role bound to the instance.
        url: Metadata URL; "{role_name}" is substituted, and a URL ending in
            "/" gets the role name appended.
        timeout: Upper bound in seconds for one fetch.
        client: Optional httpx.Client (mainly for tests).
    """

    def __init__(
        self,
        role_name: str,
        url: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.role_name = role_name
        self.url = url or DEFAULT_ECS_URL
        self.timeout = timeout
        self._client = client

    def resolve_url(self) -> str:
        if "{role_name}" in self.url:
            return self.url.replace("{role_name}", self.role_name)
        if self.url.endswith("/"):
            return self.url + self.role_name
        return self.url

    def __call__(self, ctx: Context) -> Credential:
        timeout = self.timeout
        remaining = ctx.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)

        client = self._client or httpx.Client()
        try:
            response = client.get(self.resolve_url(), timeout=timeout)
        finally:
            if self._client is None:
                client.close()

        if response.status_code != 200:
            raise MissingCredentialsError(
                f"ecs meta service status {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MissingCredentialsError(f"ecs meta service returned invalid JSON: {e}") from e

        access_key = data.get("AccessKeyId", "")
        secret_key = data.get("SecretAccessKey", "")
        if not access_key or not secret_key:
            raise MissingCredentialsError("ecs provider returned empty ak/sk")

        return Credential(
            access_key_id=access_key,
            secret_access_key=secret_key,
            security_token=data.get("SessionToken", ""),
            expiry=_parse_expiry(data.get("ExpiredTime", "")),
        )
