"""
Centralized error handling for chat commands, deal joins and admin API failures.
Domain errors carry the chat reply shown to the user; store errors map to HTTP codes
through a rule table so routes stay thin and new error types are easy to add.
"""
from __future__ import annotations

from typing import Callable

from fastapi import HTTPException
from sqlalchemy.exc import DBAPIError, OperationalError

# ---------------------------------------------------------------------------
# Constants: status codes and user-facing messages
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_SERVICE_UNAVAILABLE = 503  # database down, pool exhausted
STATUS_INTERNAL_ERROR = 500

MSG_INVALID_SENDER = "Invalid phone number format"
MSG_MISSING_DEAL_IDENTIFIER = "❗ Usage: /join <deal_number>\n\nUse /deals to see available offers."
MSG_INVALID_DEAL_INDEX = "❌ Invalid deal number. Send /deals to see available options."
MSG_INVALID_DEAL_FORMAT = "❌ Invalid deal format. Use /join 1 or /join <deal id>"
MSG_DEAL_NOT_FOUND = "❌ Deal not found or not active."
MSG_DEAL_FULL = "❌ Sorry, this deal is full! Check /deals for other offers."
MSG_ALREADY_JOINED = "ℹ️ You have already joined the {deal_name} deal!"
MSG_INSERT_FAILED = "❌ Failed to join deal. Please try again."
MSG_STORE_UNAVAILABLE = "❌ Something went wrong. Please try again."
MSG_COMMAND_FAILED = "❌ Command failed. Please try again."
MSG_DEALS_FETCH_FAILED = "🚫 Error fetching deals."
MSG_MY_DEALS_FETCH_FAILED = "❌ Error fetching your deals."


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class GroupBuyError(Exception):
    """Base for every error the core raises. user_message is safe to send to a chat user."""

    code = "error"
    user_message = MSG_STORE_UNAVAILABLE

    def __init__(self, detail: str | None = None, *, user_message: str | None = None) -> None:
        super().__init__(detail or self.code)
        self.detail = detail
        if user_message is not None:
            self.user_message = user_message


class InvalidSender(GroupBuyError):
    code = "invalid_sender"
    user_message = MSG_INVALID_SENDER


class JoinError(GroupBuyError):
    """A join attempt that ended without enrolling the user."""

    code = "join_failed"
    http_status = STATUS_BAD_REQUEST


class MissingDealIdentifier(JoinError):
    code = "missing_deal_identifier"
    user_message = MSG_MISSING_DEAL_IDENTIFIER


class InvalidDealFormat(JoinError):
    code = "invalid_deal_format"
    user_message = MSG_INVALID_DEAL_FORMAT


class InvalidDealIndex(JoinError):
    code = "invalid_deal_index"
    user_message = MSG_INVALID_DEAL_INDEX


class DealNotFound(JoinError):
    code = "deal_not_found"
    user_message = MSG_DEAL_NOT_FOUND
    http_status = STATUS_NOT_FOUND


class DealFull(JoinError):
    code = "deal_full"
    user_message = MSG_DEAL_FULL
    http_status = STATUS_CONFLICT


class AlreadyJoined(JoinError):
    code = "already_joined"
    http_status = STATUS_CONFLICT

    def __init__(self, deal_name: str, detail: str | None = None) -> None:
        super().__init__(detail, user_message=MSG_ALREADY_JOINED.format(deal_name=deal_name))
        self.deal_name = deal_name


class InsertFailed(JoinError):
    code = "insert_failed"
    user_message = MSG_INSERT_FAILED
    http_status = STATUS_INTERNAL_ERROR


class CounterUpdateFailed(JoinError):
    """Increment errored after the participant row was staged; the join is rolled back."""

    code = "counter_update_failed"
    user_message = MSG_INSERT_FAILED
    http_status = STATUS_INTERNAL_ERROR


class StoreUnavailable(JoinError):
    code = "store_unavailable"
    user_message = MSG_STORE_UNAVAILABLE
    http_status = STATUS_SERVICE_UNAVAILABLE


class MessagingFailed(GroupBuyError):
    """Outbound chat message could not be delivered. Logged only; never retried."""

    code = "messaging_failed"


# ---------------------------------------------------------------------------
# Error rules: (predicate, status_code, detail_message)
# Add new rules here instead of scattering checks in routes.
# ---------------------------------------------------------------------------

def _is_store_outage(exc: Exception) -> bool:
    if isinstance(exc, StoreUnavailable):
        return True
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


# List of (predicate, status_code, detail). First match wins.
STORE_ERROR_RULES: list[tuple[Callable[[Exception], bool], int, str]] = [
    (_is_store_outage, STATUS_SERVICE_UNAVAILABLE, "Database unavailable. Please try again later."),
]


def store_error_to_http(exc: Exception) -> HTTPException:
    """
    Map an exception from a store operation into an HTTPException.
    Uses STORE_ERROR_RULES for known error types; otherwise returns 500 with a generic message.
    """
    for predicate, status_code, detail in STORE_ERROR_RULES:
        if predicate(exc):
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=STATUS_INTERNAL_ERROR, detail="Internal server error")


def join_error_to_http(exc: JoinError) -> HTTPException:
    """Admin join endpoint: typed join failure -> HTTP status with the error code and message."""
    return HTTPException(
        status_code=exc.http_status,
        detail={"error": exc.code, "message": exc.user_message},
    )
