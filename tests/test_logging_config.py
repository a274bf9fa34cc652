"""Tests for missionhub.logging_config."""

import logging

import pytest

from missionhub import logging_config
from missionhub.logging_config import LOG_FORMAT, configure_logging, get_logger, log_auth_event


@pytest.fixture(autouse=True)
def clean_root_logger(monkeypatch):
    """Reset the missionhub logger around each test."""
    logger = logging.getLogger("missionhub")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    logger.handlers.clear()
    monkeypatch.setattr(logging_config, "_configured", False)
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


def own_handlers(logger):
    """Handlers installed by configure_logging, ignoring pytest's capture handlers."""
    return [
        h for h in logger.handlers
        if type(h) is logging.StreamHandler and h.formatter and h.formatter._fmt == LOG_FORMAT
    ]


def test_get_logger_namespaces_names():
    assert get_logger("payments").name == "missionhub.payments"
    assert get_logger("missionhub.chat").name == "missionhub.chat"
    assert get_logger("missionhub").name == "missionhub"


def test_configure_logging_is_idempotent(settings):
    root = configure_logging(settings.model_copy(update={"log_level": "debug"}))
    assert root.level == logging.DEBUG
    configure_logging(settings)
    assert len(own_handlers(root)) == 1
    assert root.level == logging.getLevelName(settings.log_level.upper())


def test_auth_event_levels(caplog, clean_root_logger):
    clean_root_logger.addHandler(caplog.handler)
    clean_root_logger.setLevel(logging.INFO)
    clean_root_logger.propagate = False

    log_auth_event("login", "user-1", True, email="a@example.com")
    log_auth_event("login", None, False, reason="bad password", ip=None)

    records = [
        r for r in caplog.records
        if r.name == "missionhub.auth" and r.getMessage().startswith("AUTH login")
    ]
    ok, failed = records
    assert ok.levelno == logging.INFO
    assert ok.getMessage() == "AUTH login | user=user-1 | success=True | email=a@example.com"
    assert failed.levelno == logging.WARNING
    assert "ip=" not in failed.getMessage()
