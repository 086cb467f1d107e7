"""
Twilio WhatsApp client: lowest level, sends one message per call. No retries.
Requires TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_MESSAGING_SERVICE_SID or TWILIO_WHATSAPP_FROM.
"""
import logging

import httpx

from groupbuy.config import Settings

logger = logging.getLogger(__name__)

_MESSAGES_PATH = "/2010-04-01/Accounts/{account_sid}/Messages.json"


class TwilioWhatsAppClient:
    """Sends WhatsApp messages through Twilio's Messages API."""

    def __init__(
        self,
        settings: Settings,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport

    def _url(self) -> str:
        base = self._settings.twilio_api_base_url.rstrip("/")
        return base + _MESSAGES_PATH.format(account_sid=self._settings.twilio_account_sid)

    def _form(self, recipient: str, text: str) -> dict[str, str]:
        data = {"To": recipient, "Body": text}
        if self._settings.twilio_messaging_service_sid:
            data["MessagingServiceSid"] = self._settings.twilio_messaging_service_sid
        else:
            data["From"] = self._settings.twilio_whatsapp_from
        return data

    def send(self, recipient: str, text: str) -> bool:
        """
        POST one message. Returns True on 2xx, False otherwise (config missing or Twilio error).
        Failures are logged, never raised.
        """
        if not self._settings.twilio_configured():
            logger.debug("Twilio not configured; skipping message to %s", recipient)
            return False
        auth = (self._settings.twilio_account_sid, self._settings.twilio_auth_token)
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.post(self._url(), data=self._form(recipient, text), auth=auth)
        except httpx.HTTPError as e:
            logger.warning("event=message_send phone=%s outcome=error error=%s", recipient, e)
            return False
        if resp.is_success:
            sid = None
            try:
                sid = resp.json().get("sid")
            except ValueError:
                pass
            logger.info("event=message_send phone=%s outcome=sent sid=%s", recipient, sid)
            return True
        logger.warning(
            "event=message_send phone=%s outcome=rejected status=%s body=%s",
            recipient, resp.status_code, resp.text[:300],
        )
        return False
