"""Tests for logging helpers."""

import logging

import pytest

from tosclient.log import ROOT_LOGGER, configure_logging, get_logger


@pytest.fixture(autouse=True)
def reset_library_level():
    yield
    logging.getLogger(ROOT_LOGGER).setLevel(logging.NOTSET)


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_events_rendered_through_stdlib(self, caplog):
        """Events carry their name and key/value pairs."""
        configure_logging("DEBUG")

        with caplog.at_level(logging.DEBUG):
            get_logger("tosclient.test").debug("request_complete", status=200)

        assert "request_complete" in caplog.text
        assert "status=200" in caplog.text

    def test_level_filters_events(self, caplog):
        """Events below the configured level are dropped."""
        configure_logging("WARNING")

        with caplog.at_level(logging.WARNING):
            get_logger("tosclient.test").info("retry_request", attempt=1)

        assert "retry_request" not in caplog.text


class TestGetLogger:
    """Tests for get_logger function."""

    def test_silent_until_configured(self, capsys):
        """Nothing reaches stdout or stderr before the application opts in."""
        logger = get_logger("tosclient.test")

        logger.debug("request_complete", status=200)
        logger.warning("policy_validation", problem="no Action")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == ""

    def test_debug_dropped_by_default_level(self, caplog):
        """Debug events are filtered by the stdlib level before rendering."""
        get_logger("tosclient.test").debug("request_complete", status=200)

        assert "request_complete" not in caplog.text

    def test_bound_to_stdlib_logger(self, caplog):
        """Events go through the named stdlib logger."""
        with caplog.at_level(logging.WARNING, logger=ROOT_LOGGER):
            get_logger("tosclient.policy").warning("policy_validation", problem="no Action")

        assert [record.name for record in caplog.records] == ["tosclient.policy"]
        assert "no Action" in caplog.text
