"""Logging setup for the MissionHub backend.

All modules log through ``get_logger`` so that records land under the
``missionhub`` hierarchy and share one handler configured at startup.
"""

import logging
import sys

from .config import Settings

ROOT_LOGGER = "missionhub"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False


def configure_logging(settings: Settings) -> logging.Logger:
    """Install the stream handler on the root ``missionhub`` logger (idempotent)."""
    global _configured
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(settings.log_level.upper())
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.propagate = False
        _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under ``missionhub``."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


_auth_logger = get_logger("auth")


def log_auth_event(event: str, user_id: str | None, success: bool, **details) -> None:
    """Record an authentication outcome. Never pass credentials in ``details``."""
    extra = " | ".join(f"{k}={v}" for k, v in details.items() if v is not None)
    message = f"AUTH {event} | user={user_id} | success={success}"
    if extra:
        message = f"{message} | {extra}"
    if success:
        _auth_logger.info(message)
    else:
        _auth_logger.warning(message)
