from fastapi import Request

from groupbuy.config import Settings
from groupbuy.services.messaging.base import LoggingMessenger, MessagingPort
from groupbuy.services.messaging.twilio_client import TwilioWhatsAppClient


def build_messenger(settings: Settings) -> MessagingPort:
    """Twilio when credentials are set; otherwise a logging no-op."""
    if settings.twilio_configured():
        return TwilioWhatsAppClient(settings)
    return LoggingMessenger()


def get_messenger(request: Request) -> MessagingPort:
    """FastAPI dependency: the messenger built at startup (app.state.messenger)."""
    return request.app.state.messenger


__all__ = ["LoggingMessenger", "MessagingPort", "TwilioWhatsAppClient", "build_messenger", "get_messenger"]
