"""Protocol for outbound chat messaging. Implementations never raise on delivery failure."""
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class MessagingPort(Protocol):
    """Send one text message to one recipient. Returns True if the channel accepted it."""

    def send(self, recipient: str, text: str) -> bool:
        ...


class LoggingMessenger:
    """Used when Twilio is not configured: logs the message instead of sending it."""

    def send(self, recipient: str, text: str) -> bool:
        logger.info("Messaging disabled; would send to %s: %s", recipient, text[:80])
        return False
