"""Group-buying deal: a product offered at group_price while min..max participants join before end_time."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from groupbuy.core.constants import DEAL_STATUS_ACTIVE
from groupbuy.db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Deal(Base):
    __tablename__ = "deals"
    __table_args__ = (
        CheckConstraint("max_participants >= min_participants", name="ck_deals_capacity_range"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    product_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    original_price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    group_price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    min_participants = Column(Integer, nullable=False, default=1)
    max_participants = Column(Integer, nullable=False)
    current_participants = Column(Integer, nullable=False, default=0)  # counter; join engine increments
    status = Column(String(16), nullable=False, default=DEAL_STATUS_ACTIVE, index=True)  # scheduled | active | completed | failed
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)  # set when the sweeper finalizes the deal

    participants = relationship(
        "Participant",
        back_populates="deal",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
