"""Tests for logging configuration."""

import logging

import pytest
import structlog

from boleto_flow.config.logging import NOISY_LOGGERS, configure_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    """Restore structlog defaults after each test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def test_binds_service_context():
    """Test every event carries the service name and version."""
    configure_logging(level="INFO", format="json")

    context = structlog.contextvars.get_contextvars()

    assert context["service"] == "boleto-flow"
    assert context["version"] == "0.1.0"


def test_http_libraries_quieted_at_info():
    """Test request logs from HTTP libraries are raised to WARNING."""
    configure_logging(level="INFO", format="console")

    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
    assert logging.getLogger().level == logging.INFO


def test_http_libraries_verbose_at_debug():
    """Test DEBUG keeps library request logs."""
    configure_logging(level="DEBUG", format="console")

    assert logging.getLogger("httpx").level == logging.DEBUG
