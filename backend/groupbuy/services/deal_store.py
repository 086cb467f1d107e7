"""
Deal store: the queries and writes the join engine, sweeper and chat read path need.

Wraps one Session; callers own commit/rollback so multi-step writes stay in one transaction.
"""
from datetime import datetime

from sqlalchemy.orm import Session, joinedload

from groupbuy.core.constants import (
    DEAL_STATUS_ACTIVE,
    DEAL_STATUS_COMPLETED,
    DEAL_STATUS_FAILED,
    REFUND_STATUS_INITIATED,
)
from groupbuy.models.deal import Deal
from groupbuy.models.participant import Participant


class DealStore:
    """Deal/participant access over a SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # --- Reads ---

    def list_active_deals(self, limit: int | None = None) -> list[Deal]:
        """Active deals, oldest first. This order defines the 1-based /join numbers."""
        q = (
            self.db.query(Deal)
            .filter(Deal.status == DEAL_STATUS_ACTIVE)
            .order_by(Deal.created_at.asc(), Deal.id.asc())
        )
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def get_deal(self, deal_id: str, status: str | None = None, *, fresh: bool = False) -> Deal | None:
        """fresh=True reloads attributes even if the deal is already in the session."""
        q = self.db.query(Deal).filter(Deal.id == deal_id)
        if fresh:
            q = q.populate_existing()
        if status is not None:
            q = q.filter(Deal.status == status)
        return q.first()

    def list_participants(self, deal_id: str, phone_number: str | None = None) -> list[Participant]:
        q = self.db.query(Participant).filter(Participant.deal_id == deal_id)
        if phone_number is not None:
            q = q.filter(Participant.phone_number == phone_number)
        return q.order_by(Participant.joined_at.asc()).all()

    def list_participations(self, phone_number: str) -> list[Participant]:
        """All participations for one phone, newest first, with the deal loaded."""
        return (
            self.db.query(Participant)
            .options(joinedload(Participant.deal))
            .filter(Participant.phone_number == phone_number)
            .order_by(Participant.joined_at.desc())
            .all()
        )

    def list_expired_active_deals(self, now: datetime) -> list[Deal]:
        return (
            self.db.query(Deal)
            .filter(Deal.status == DEAL_STATUS_ACTIVE, Deal.end_time < now)
            .order_by(Deal.end_time.asc())
            .all()
        )

    # --- Writes (not committed) ---

    def insert_participant(self, record: Participant) -> Participant:
        """Stage and flush so constraint violations surface here rather than at commit."""
        self.db.add(record)
        self.db.flush()
        return record

    def increment_participants(self, deal_id: str, now: datetime) -> int:
        """
        Guarded increment: only applies while the deal is active and below capacity.
        Returns affected rows (0 = deal filled up or left active since it was read).
        """
        return (
            self.db.query(Deal)
            .filter(
                Deal.id == deal_id,
                Deal.status == DEAL_STATUS_ACTIVE,
                Deal.current_participants < Deal.max_participants,
            )
            .update(
                {
                    Deal.current_participants: Deal.current_participants + 1,
                    Deal.updated_at: now,
                },
                synchronize_session=False,
            )
        )

    def current_count(self, deal_id: str) -> int | None:
        """current_participants straight from the database (sees this transaction's own writes)."""
        return self.db.query(Deal.current_participants).filter(Deal.id == deal_id).scalar()

    def finalize_expired(self, deal_id: str, now: datetime) -> str | None:
        """
        Compare-and-set from active to failed or completed; also stamps ended_at/updated_at.
        The quorum test is part of the UPDATE's WHERE so a join committed after the deal was
        listed still counts. Returns the new status, or None if the deal already left active.
        """
        values = {Deal.ended_at: now, Deal.updated_at: now}
        active = self.db.query(Deal).filter(Deal.id == deal_id, Deal.status == DEAL_STATUS_ACTIVE)
        failed = active.filter(Deal.current_participants < Deal.min_participants).update(
            {**values, Deal.status: DEAL_STATUS_FAILED},
            synchronize_session=False,
        )
        if failed:
            return DEAL_STATUS_FAILED
        # Active deals only gain participants, so quorum cannot be lost between the two updates
        completed = active.filter(Deal.current_participants >= Deal.min_participants).update(
            {**values, Deal.status: DEAL_STATUS_COMPLETED},
            synchronize_session=False,
        )
        if completed:
            return DEAL_STATUS_COMPLETED
        return None

    def mark_refunds_initiated(self, deal_id: str) -> int:
        return (
            self.db.query(Participant)
            .filter(Participant.deal_id == deal_id)
            .update({Participant.refund_status: REFUND_STATUS_INITIATED}, synchronize_session=False)
        )

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
