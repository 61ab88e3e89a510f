"""Outgoing mail hooks for verification and password-reset messages."""
from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    """Protocol implemented by mail transports."""

    def send(self, *, to: str, subject: str, body: str) -> None:
        """Deliver a plain-text message."""


class LoggingMailer:
    """Default mailer used in development; writes messages to the log."""

    def send(self, *, to: str, subject: str, body: str) -> None:
        logger.info("Mail to=%s subject=%r\n%s", to, subject, body)


_mailer: Mailer = LoggingMailer()


def set_mailer(mailer: Mailer) -> None:
    """Override the global mailer instance (useful for testing)."""

    global _mailer
    _mailer = mailer


def get_mailer() -> Mailer:
    """Return the configured mailer."""

    return _mailer
