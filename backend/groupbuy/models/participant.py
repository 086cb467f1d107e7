"""One phone number's enrollment in a deal. Created only by the join engine."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from groupbuy.core.constants import PAYMENT_STATUS_PENDING
from groupbuy.db.base import Base


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint("deal_id", "phone_number", name="uq_participants_deal_phone"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    deal_id = Column(String(36), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True)
    phone_number = Column(String(64), nullable=False, index=True)  # full channel form, e.g. whatsapp:+1555...
    user_name = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    payment_status = Column(String(16), nullable=False, default=PAYMENT_STATUS_PENDING)  # pending | completed | failed | refunded
    amount_paid = Column(Numeric(10, 2, asdecimal=False), nullable=True)  # group_price at join time
    refund_status = Column(String(16), nullable=True)  # initiated (set when the deal fails)
    joined_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    deal = relationship("Deal", back_populates="participants")
