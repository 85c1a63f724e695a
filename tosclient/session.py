"""Session: shared defaults for creating clients.

A Session bakes a region, credentials and transport into a client factory.
Every client created from the same session shares the session's transport
and credentials; the clients are independent of the session afterwards.

    session = Session(
        region="cn-beijing",
        credentials=StaticCredentials(access_key, secret_key),
    )
    client = session.new_client(endpoint)
    # or, overriding a session default for one client
    client = session.new_client(endpoint, region="cn-shanghai")
"""

import threading
from typing import Any, Optional

from tosclient.client import Client
from tosclient.credentials import Credentials
from tosclient.transport import DefaultTransport, Transport, TransportConfig


class Session:
    """Holds default region, credentials and transport for new clients.

    Args:
        region: Default signing region ("" derives it from the endpoint).
        credentials: Default credentials provider (None means anonymous).
        transport: Shared transport. When omitted a DefaultTransport is
            created on the first new_client() call and shared afterwards.
    """

    def __init__(
        self,
        region: str = "",
        credentials: Optional[Credentials] = None,
        transport: Optional[Transport] = None,
    ):
        self._region = region
        self._credentials = credentials
        self._transport = transport
        self._lock = threading.Lock()

    @property
    def region(self) -> str:
        return self._region

    @property
    def credentials(self) -> Optional[Credentials]:
        return self._credentials

    def _shared_transport(self) -> Transport:
        if self._transport is None:
            with self._lock:
                if self._transport is None:
                    self._transport = DefaultTransport(TransportConfig())
        return self._transport

    def new_client(self, endpoint: str = "", **options: Any) -> Client:
        """Create a Client with the session defaults.

        Session defaults are applied first and per-call options override
        them. Passing transport_config gives the client its own transport
        instead of the shared one.

        Args:
            endpoint: Service endpoint.
            **options: Any Client option.

        Returns:
            A new Client sharing the session's transport and credentials.
        """
        defaults: dict[str, Any] = {}
        if "transport" not in options and options.get("transport_config") is None:
            defaults["transport"] = self._shared_transport()
        if self._region:
            defaults["region"] = self._region
        if self._credentials is not None:
            defaults["credentials"] = self._credentials

        return Client(endpoint, **{**defaults, **options})
