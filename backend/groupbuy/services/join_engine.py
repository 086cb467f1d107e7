"""
Deal join engine: enroll one phone number in one deal.

A deal identifier is either a 1-based position in the active-deal list (as shown by
/deals, oldest first, recomputed on every call) or a literal deal UUID. Checks run in
order: resolve -> deal active -> duplicate -> capacity. The participant insert and the
counter increment share one transaction; the increment is guarded by
current_participants < max_participants so concurrent joins cannot overbook.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from groupbuy.core.constants import DEAL_STATUS_ACTIVE, PAYMENT_STATUS_PENDING
from groupbuy.core.errors import (
    AlreadyJoined,
    CounterUpdateFailed,
    DealFull,
    DealNotFound,
    InsertFailed,
    InvalidDealFormat,
    InvalidDealIndex,
    JoinError,
    MissingDealIdentifier,
    StoreUnavailable,
)
from groupbuy.models.participant import Participant
from groupbuy.services.deal_store import DealStore

logger = logging.getLogger(__name__)

_INDEX_RE = re.compile(r"^\d+$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_deal_id(value: str) -> bool:
    return bool(_UUID_RE.match(value or ""))


@dataclass(frozen=True)
class Joined:
    deal_id: str
    new_count: int
    deal_name: str
    group_price: float
    max_participants: int


class JoinEngine:
    """Validates and records joins against a DealStore."""

    def __init__(self, store: DealStore) -> None:
        self.store = store

    def resolve_deal_id(self, deal_identifier: str | None) -> str:
        """Display index or UUID -> deal id. Raises MissingDealIdentifier, InvalidDealIndex, InvalidDealFormat."""
        identifier = (deal_identifier or "").strip()
        if not identifier:
            raise MissingDealIdentifier()
        if _INDEX_RE.match(identifier):
            index = int(identifier) - 1
            try:
                deals = self.store.list_active_deals()
            except SQLAlchemyError as e:
                raise StoreUnavailable(str(e)) from e
            if index < 0 or index >= len(deals):
                raise InvalidDealIndex(f"index {identifier} of {len(deals)} active deals")
            return deals[index].id
        if is_deal_id(identifier):
            return identifier.lower()
        raise InvalidDealFormat(f"unrecognized deal identifier {identifier!r}")

    def join(self, deal_identifier: str | None, actor_phone: str) -> Joined:
        """
        Join actor_phone to the deal. Returns Joined on success; raises a JoinError subclass
        for every other outcome. No retries.
        """
        try:
            result = self._join(deal_identifier, actor_phone)
        except JoinError as e:
            logger.info(
                "event=join phone=%s deal=%s outcome=%s detail=%s",
                actor_phone, deal_identifier, e.code, e.detail,
            )
            raise
        logger.info(
            "event=join phone=%s deal=%s outcome=joined count=%s/%s",
            actor_phone, result.deal_id, result.new_count, result.max_participants,
        )
        return result

    def _join(self, deal_identifier: str | None, actor_phone: str) -> Joined:
        deal_id = self.resolve_deal_id(deal_identifier)

        try:
            deal = self.store.get_deal(deal_id, status=DEAL_STATUS_ACTIVE)
            if deal is None:
                raise DealNotFound(f"deal {deal_id} missing or not active")
            if self.store.list_participants(deal_id, phone_number=actor_phone):
                raise AlreadyJoined(deal.product_name)
            if deal.current_participants >= deal.max_participants:
                raise DealFull(f"{deal.current_participants}/{deal.max_participants}")
            deal_name = deal.product_name
            group_price = deal.group_price
            max_participants = deal.max_participants
        except SQLAlchemyError as e:
            self.store.rollback()
            raise StoreUnavailable(str(e)) from e

        now = datetime.now(timezone.utc)
        try:
            self.store.insert_participant(
                Participant(
                    deal_id=deal_id,
                    phone_number=actor_phone,
                    quantity=1,
                    payment_status=PAYMENT_STATUS_PENDING,
                    amount_paid=group_price,
                    joined_at=now,
                )
            )
        except IntegrityError as e:
            # Concurrent join by the same phone won the unique constraint
            self.store.rollback()
            raise AlreadyJoined(deal_name, str(e)) from e
        except SQLAlchemyError as e:
            self.store.rollback()
            raise InsertFailed(str(e)) from e

        try:
            updated = self.store.increment_participants(deal_id, now)
            # Read before commit: the row stays locked by this transaction, so the count is ours
            new_count = self.store.current_count(deal_id) if updated else None
        except SQLAlchemyError as e:
            self.store.rollback()
            logger.error("event=join phone=%s deal=%s outcome=counter_update_failed error=%s", actor_phone, deal_id, e)
            raise CounterUpdateFailed(str(e)) from e
        if not updated:
            # Filled up (or finalized) between the capacity check and the write
            self.store.rollback()
            raise DealFull("guarded increment matched no row")

        try:
            self.store.commit()
        except SQLAlchemyError as e:
            self.store.rollback()
            raise InsertFailed(str(e)) from e

        return Joined(
            deal_id=deal_id,
            new_count=new_count,
            deal_name=deal_name,
            group_price=group_price,
            max_participants=max_participants,
        )
