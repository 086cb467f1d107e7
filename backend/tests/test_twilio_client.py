"""Tests for the Twilio WhatsApp client and messenger selection."""
from urllib.parse import parse_qs

import httpx

from groupbuy.config import Settings
from groupbuy.services.messaging import LoggingMessenger, TwilioWhatsAppClient, build_messenger

TO = "whatsapp:+15550001111"


def _settings(**overrides) -> Settings:
    fields = {
        "twilio_account_sid": "AC123",
        "twilio_auth_token": "secret",
        "twilio_messaging_service_sid": "",
        "twilio_whatsapp_from": "whatsapp:+14155238886",
    }
    fields.update(overrides)
    return Settings(**fields)


def _recording_transport(status_code=201, body=None):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json=body if body is not None else {"sid": "SM1"})

    return httpx.MockTransport(handler), requests


class TestTwilioWhatsAppClient:
    def test_posts_form_to_messages_api(self):
        transport, requests = _recording_transport()
        client = TwilioWhatsAppClient(_settings(), transport=transport)

        assert client.send(TO, "hello") is True

        [req] = requests
        assert req.method == "POST"
        assert str(req.url) == "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
        assert req.headers["authorization"].startswith("Basic ")
        form = parse_qs(req.content.decode())
        assert form == {"To": [TO], "Body": ["hello"], "From": ["whatsapp:+14155238886"]}

    def test_messaging_service_sid_wins_over_from(self):
        transport, requests = _recording_transport()
        client = TwilioWhatsAppClient(_settings(twilio_messaging_service_sid="MG9"), transport=transport)
        client.send(TO, "hello")
        form = parse_qs(requests[0].content.decode())
        assert form["MessagingServiceSid"] == ["MG9"]
        assert "From" not in form

    def test_rejected_message_returns_false(self):
        transport, _ = _recording_transport(status_code=400, body={"code": 21211, "message": "Invalid 'To'"})
        assert TwilioWhatsAppClient(_settings(), transport=transport).send(TO, "hello") is False

    def test_transport_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = TwilioWhatsAppClient(_settings(), transport=httpx.MockTransport(handler))
        assert client.send(TO, "hello") is False

    def test_not_configured_sends_nothing(self):
        transport, requests = _recording_transport()
        client = TwilioWhatsAppClient(_settings(twilio_auth_token=""), transport=transport)
        assert client.send(TO, "hello") is False
        assert requests == []


class TestBuildMessenger:
    def test_twilio_when_configured(self):
        assert isinstance(build_messenger(_settings()), TwilioWhatsAppClient)

    def test_logging_fallback(self):
        messenger = build_messenger(_settings(twilio_account_sid=" "))
        assert isinstance(messenger, LoggingMessenger)
        assert messenger.send(TO, "hello") is False
