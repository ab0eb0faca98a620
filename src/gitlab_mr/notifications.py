"""Notification sink used to report user-visible outcomes."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationSink(Protocol):
    def notify(self, kind: NotificationKind, title: str, body: str) -> None: ...


_LEVELS = {
    NotificationKind.INFO: logging.INFO,
    NotificationKind.SUCCESS: logging.INFO,
    NotificationKind.WARNING: logging.WARNING,
    NotificationKind.ERROR: logging.ERROR,
}


class LoggingNotificationSink:
    """Default sink: writes every notification to the log."""

    def notify(self, kind: NotificationKind, title: str, body: str) -> None:
        logger.log(_LEVELS[kind], f"[{kind.value}] {title}: {body}")
