"""User-facing notification and navigation channels.

Both are fire-and-forget: whatever the presentation layer plugs in here is
called synchronously and any error it raises is logged and dropped.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


class Notifier(ABC):
    """Shows a short message to the user."""

    @abstractmethod
    def show(self, level: NoticeLevel, message: str) -> None:
        pass

    def notify(self, level: NoticeLevel, message: str) -> None:
        """Display a message; failures to display are never propagated"""
        try:
            self.show(level, message)
        except Exception as e:
            logger.warning(f"Notifier failed to display message: {e}")

    def success(self, message: str) -> None:
        self.notify(NoticeLevel.SUCCESS, message)

    def error(self, message: str) -> None:
        self.notify(NoticeLevel.ERROR, message)


class LoggingNotifier(Notifier):
    """Default notifier for headless use: notices go to the log."""

    def show(self, level: NoticeLevel, message: str) -> None:
        log_level = logging.WARNING if level == NoticeLevel.ERROR else logging.INFO
        logger.log(log_level, f"[{level.value}] {message}")


class RecordingNotifier(Notifier):
    """Keeps every notice in memory, in display order."""

    def __init__(self) -> None:
        self.messages: List[Tuple[NoticeLevel, str]] = []

    def show(self, level: NoticeLevel, message: str) -> None:
        self.messages.append((level, message))

    def texts(self, level: Optional[NoticeLevel] = None) -> List[str]:
        return [text for lvl, text in self.messages if level is None or lvl == level]


class Navigator(ABC):
    """Moves the user to another surface, e.g. a login page."""

    @abstractmethod
    def navigate(self, path: str) -> None:
        pass

    def redirect(self, path: str) -> None:
        try:
            self.navigate(path)
        except Exception as e:
            logger.warning(f"Navigator failed to redirect to {path}: {e}")


class LoggingNavigator(Navigator):
    def navigate(self, path: str) -> None:
        logger.info(f"Redirecting to {path}")


class RecordingNavigator(Navigator):
    def __init__(self) -> None:
        self.history: List[str] = []

    def navigate(self, path: str) -> None:
        self.history.append(path)

    @property
    def current(self):
        return self.history[-1] if self.history else None
