"""
WhatsApp webhook handler: one parsed Command in, exactly one reply out.

handle() never raises. Join failures become their user_message; store errors on the read
paths become a short apology; anything unexpected is logged and answered with a generic
failure. The route decides whether the reply goes back synchronously (test mode) or
through the messaging port.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from groupbuy.config import settings
from groupbuy.core.constants import (
    COMMAND_HELP,
    COMMAND_JOIN,
    COMMAND_LIST_DEALS,
    COMMAND_MY_DEALS,
)
from groupbuy.core.errors import (
    MSG_COMMAND_FAILED,
    MSG_DEALS_FETCH_FAILED,
    MSG_MY_DEALS_FETCH_FAILED,
    JoinError,
)
from groupbuy.services.commands import Command
from groupbuy.services.deal_store import DealStore
from groupbuy.services.join_engine import JoinEngine
from groupbuy.services.messaging import MessagingPort

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "👋 Welcome to Group Deals! Use:\n"
    "/deals - View active deals\n"
    "/join <deal_number> - Join a deal (e.g., /join 1)\n"
    "/mydeals - View your deals"
)
UNKNOWN_TEXT = (
    "🤖 Unknown command. Type /help for options\n\n"
    "Available commands:\n"
    "/deals - View active deals\n"
    "/mydeals - Your deals\n"
    "/join [number] - Join a deal\n"
    "/help - Show help"
)
NO_DEALS_TEXT = "🚫 No active deals found."
NO_JOINED_DEALS_TEXT = "📭 You haven't joined any deals yet! 🛍️\n\nUse /deals to see available offers."


def format_price(value: float | None) -> str:
    if value is None:
        return "-"
    amount = float(value)
    if amount.is_integer():
        return f"{settings.currency_symbol}{int(amount)}"
    return f"{settings.currency_symbol}{amount:.2f}"


def _format_date(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%d %b %Y")


@dataclass
class WebhookOutcome:
    success: bool
    response: str
    debug: dict[str, Any] = field(default_factory=dict)


class WebhookHandler:
    """Dispatches chat commands to the join engine or the read-only deal queries."""

    def __init__(self, store: DealStore, join_engine: JoinEngine | None = None) -> None:
        self.store = store
        self.join_engine = join_engine or JoinEngine(store)

    def handle(self, command: Command) -> WebhookOutcome:
        logger.info("event=command phone=%s kind=%s arg=%s", command.actor_phone, command.kind, command.argument)
        try:
            if command.kind == COMMAND_HELP:
                outcome = WebhookOutcome(True, HELP_TEXT)
            elif command.kind == COMMAND_LIST_DEALS:
                outcome = self._list_deals()
            elif command.kind == COMMAND_JOIN:
                outcome = self._join(command)
            elif command.kind == COMMAND_MY_DEALS:
                outcome = self._my_deals(command.actor_phone)
            else:
                outcome = WebhookOutcome(True, UNKNOWN_TEXT, {"note": "Unknown command fallback"})
        except Exception as e:
            logger.exception("event=command phone=%s kind=%s outcome=error", command.actor_phone, command.kind)
            outcome = WebhookOutcome(False, MSG_COMMAND_FAILED, {"error": "Command processing failed", "details": str(e)})
        outcome.debug.setdefault("command", command.kind)
        outcome.debug.setdefault("phoneNumber", command.actor_phone)
        outcome.debug.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        return outcome

    def _list_deals(self) -> WebhookOutcome:
        try:
            deals = self.store.list_active_deals(limit=settings.deals_list_limit)
        except SQLAlchemyError as e:
            self.store.rollback()
            logger.error("event=list_deals outcome=store_error error=%s", e)
            return WebhookOutcome(False, MSG_DEALS_FETCH_FAILED, {"error": "store_unavailable"})
        if not deals:
            return WebhookOutcome(True, NO_DEALS_TEXT, {"dealCount": 0})

        lines = ["🔥 *Active Group Deals* 🔥", ""]
        for index, deal in enumerate(deals, start=1):
            lines.append(f"*{index}. {deal.product_name}*")
            lines.append(f"💰 {format_price(deal.original_price)} → {format_price(deal.group_price)}")
            lines.append(f"👥 {deal.current_participants}/{deal.max_participants} joined")
            lines.append(f"⏰ Ends: {_format_date(deal.end_time)}")
            lines.append(f"📱 Join: /join {index}")
            lines.append("")
        lines.append("Reply with /join [number] to participate! 🚀")
        return WebhookOutcome(True, "\n".join(lines), {"dealCount": len(deals)})

    def _join(self, command: Command) -> WebhookOutcome:
        try:
            joined = self.join_engine.join(command.argument, command.actor_phone)
        except JoinError as e:
            return WebhookOutcome(False, e.user_message, {"error": e.code, "dealIdentifier": command.argument})
        text = (
            f"🎉 Successfully joined {joined.deal_name}!\n"
            f"💰 Price: {format_price(joined.group_price)}\n"
            f"👥 Participants: {joined.new_count}/{joined.max_participants}"
        )
        return WebhookOutcome(
            True,
            text,
            {"dealId": joined.deal_id, "dealName": joined.deal_name, "newParticipantCount": joined.new_count},
        )

    def _my_deals(self, phone: str) -> WebhookOutcome:
        try:
            joined = self.store.list_participations(phone)
        except SQLAlchemyError as e:
            self.store.rollback()
            logger.error("event=my_deals phone=%s outcome=store_error error=%s", phone, e)
            return WebhookOutcome(False, MSG_MY_DEALS_FETCH_FAILED, {"error": "store_unavailable"})
        if not joined:
            return WebhookOutcome(True, NO_JOINED_DEALS_TEXT, {"dealCount": 0})

        lines = ["📋 *Your Deals* 📋", ""]
        for index, participant in enumerate(joined, start=1):
            deal = participant.deal
            lines.append(f"*{index}. {deal.product_name}*")
            lines.append(f"💰 Your price: {format_price(participant.amount_paid)}")
            lines.append(f"📊 Status: {deal.status}")
            lines.append(f"👥 {deal.current_participants}/{deal.min_participants} joined")
            lines.append(f"💳 Payment: {participant.payment_status}")
            lines.append("")
        return WebhookOutcome(True, "\n".join(lines).rstrip(), {"dealCount": len(joined)})


def deliver_reply(messenger: MessagingPort, recipient: str, text: str) -> bool:
    """Background send for non-test webhooks. Failure is logged only."""
    try:
        sent = messenger.send(recipient, text)
    except Exception as e:
        logger.warning("event=reply phone=%s outcome=error error=%s", recipient, e, exc_info=True)
        return False
    if not sent:
        logger.warning("event=reply phone=%s outcome=not_sent", recipient)
    return sent

