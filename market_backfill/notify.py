"""
Fire-and-forget operational notifications.

Delivery channels are pluggable; the default notifier writes to the log.
Notification failures are logged and never escalated.
"""

import platform

from .utils.error_handlers import safe_execute
from .utils.logging import get_logger

logger = get_logger(__name__)


class Notifier:
    """Base notifier; subclasses deliver ``message`` somewhere."""

    def send(self, message: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Writes notifications to the package log."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def send(self, message: str) -> None:
        self.logger.info(f"[notify] {message}")


def send_quietly(notifier: Notifier, message: str) -> bool:
    """Send a notification, logging instead of raising on failure."""
    result = safe_execute(
        lambda: notifier.send(message),
        error_message="Failed to send notification",
        default_return=False
    )
    return result is not False


def startup_message() -> str:
    return (
        "Market data backfill scheduler started\n"
        f"Python {platform.python_version()} OS/Arch: {platform.system()}/{platform.machine()}"
    )
