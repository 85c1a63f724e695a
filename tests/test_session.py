"""Tests for Session."""

import threading
from unittest.mock import MagicMock

from tosclient.credentials import StaticCredentials
from tosclient.session import Session
from tosclient.transport import DefaultTransport, Transport, TransportConfig


class TestSession:
    """Tests for client creation from a session."""

    def test_defaults_applied(self):
        """Clients inherit region, credentials and transport."""
        credentials = StaticCredentials("AK", "SK")
        transport = MagicMock(spec=Transport)
        session = Session(region="cn-beijing", credentials=credentials, transport=transport)

        client = session.new_client("custom.example.com")

        assert client.region == "cn-beijing"
        assert client.config.credentials is credentials
        assert client.config.transport is transport

    def test_per_call_options_override(self):
        """Options passed to new_client() win over session defaults."""
        session = Session(region="cn-beijing", transport=MagicMock(spec=Transport))
        other = MagicMock(spec=Transport)

        client = session.new_client("custom.example.com", region="cn-shanghai", transport=other)

        assert client.region == "cn-shanghai"
        assert client.config.transport is other

    def test_region_derived_without_default(self):
        """A session without a region lets the endpoint decide."""
        session = Session(transport=MagicMock(spec=Transport))

        assert session.new_client("tos-cn-guangzhou.volces.com").region == "cn-guangzhou"

    def test_anonymous_session(self):
        """A session without credentials creates anonymous clients."""
        session = Session(transport=MagicMock(spec=Transport))

        assert session.new_client("h.example.com").config.signer is None

    def test_default_transport_created_lazily(self):
        """The default transport is built on first use and shared."""
        session = Session(region="cn-beijing")
        assert session._transport is None

        first = session.new_client("h.example.com")
        second = session.new_client("h.example.com")

        assert isinstance(first.config.transport, DefaultTransport)
        assert first.config.transport is second.config.transport
        first.config.transport.close()

    def test_transport_config_gives_own_transport(self):
        """A per-call transport_config builds a private transport from it."""
        session = Session(region="cn-beijing")
        config = TransportConfig(read_timeout=5.0)

        client = session.new_client("h.example.com", transport_config=config)

        assert client.config.transport.config is config
        assert session._transport is None
        client.close()

    def test_clients_do_not_close_shared_transport(self):
        """Closing one client leaves the session transport usable."""
        session = Session()
        client = session.new_client("h.example.com")
        transport = client.config.transport
        transport.close = MagicMock()

        client.close()

        transport.close.assert_not_called()

    def test_concurrent_clients_share_transport(self):
        """Concurrent new_client() calls share one transport."""
        session = Session(region="cn-beijing")
        transports = []
        lock = threading.Lock()

        def worker():
            client = session.new_client("h.example.com")
            with lock:
                transports.append(client.config.transport)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(t) for t in transports}) == 1
        transports[0].close()
