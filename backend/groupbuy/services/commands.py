"""
Chat command parser: raw inbound WhatsApp fields -> normalized Command.

Pure functions only; no store or network access.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from groupbuy.config import settings
from groupbuy.core.constants import (
    COMMAND_HELP,
    COMMAND_JOIN,
    COMMAND_LIST_DEALS,
    COMMAND_MY_DEALS,
    COMMAND_UNKNOWN,
)
from groupbuy.core.errors import InvalidSender

# Exact-match slash commands. /join takes an argument and is handled separately.
_SIMPLE_COMMANDS: dict[str, str] = {
    "/start": COMMAND_HELP,
    "/help": COMMAND_HELP,
    "/deals": COMMAND_LIST_DEALS,
    "/mydeals": COMMAND_MY_DEALS,
}

_JOIN_PREFIX = "/join"


@dataclass(frozen=True)
class Command:
    kind: str
    argument: str | None
    actor_phone: str


def normalize_sender(sender: str | None, prefix: str | None = None) -> str:
    """Trim the sender id and require the channel prefix (e.g. 'whatsapp:'). Raises InvalidSender."""
    prefix = settings.whatsapp_sender_prefix if prefix is None else prefix
    normalized = (sender or "").strip()
    if not normalized or not normalized.startswith(prefix):
        raise InvalidSender(f"sender {normalized!r} lacks prefix {prefix!r}")
    return normalized


def parse_command(body: str | None, sender: str | None, *, prefix: str | None = None) -> Command:
    """
    Map message text + sender to a Command. Text is trimmed and lower-cased.
    Unrecognized text (plain words or unknown slash commands) is kind=unknown, never an error.
    """
    actor_phone = normalize_sender(sender, prefix)
    text = (body or "").strip().lower()

    kind = _SIMPLE_COMMANDS.get(text)
    if kind is not None:
        return Command(kind=kind, argument=None, actor_phone=actor_phone)

    parts = text.split()
    if parts and parts[0] == _JOIN_PREFIX:
        argument = parts[1] if len(parts) > 1 else None
        return Command(kind=COMMAND_JOIN, argument=argument, actor_phone=actor_phone)

    return Command(kind=COMMAND_UNKNOWN, argument=None, actor_phone=actor_phone)


def _first(payload: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if value:
            return str(value)
    return None


def extract_webhook_fields(content_type: str | None, payload: Mapping[str, Any] | None) -> tuple[str | None, str | None]:
    """
    Pick (Body, From) from an inbound webhook payload.
    Form-encoded and JSON bodies use Twilio's field names; anything else falls back to
    case-insensitive keys.
    """
    payload = payload or {}
    ctype = (content_type or "").lower()
    if "application/x-www-form-urlencoded" in ctype or "application/json" in ctype:
        return _first(payload, "Body"), _first(payload, "From")
    return _first(payload, "Body", "body"), _first(payload, "From", "from")
