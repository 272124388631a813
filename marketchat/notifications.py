import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Surfaces a transient message to the signed-in user."""

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        ...


class LoggingNotifier:
    """Default notifier for headless use: notifications go to the log."""

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        level = logging.WARNING if variant == "destructive" else logging.INFO
        logger.log(level, f"[{variant}] {title}: {description}")
