"""Deals and participants.

One participant row per (deal_id, phone_number); participants cascade with their deal.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "deals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("original_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("group_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("min_participants", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        sa.Column("current_participants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("max_participants >= min_participants", name="ck_deals_capacity_range"),
    )
    op.create_index("ix_deals_status", "deals", ["status"], unique=False)
    op.create_index("ix_deals_end_time", "deals", ["end_time"], unique=False)
    # /deals and /join <n> order active deals by created_at
    op.create_index("ix_deals_status_created_at", "deals", ["status", "created_at"], unique=False)

    op.create_table(
        "participants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("deal_id", sa.String(36), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("phone_number", sa.String(64), nullable=False),
        sa.Column("user_name", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("amount_paid", sa.Numeric(10, 2), nullable=True),
        sa.Column("refund_status", sa.String(16), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("deal_id", "phone_number", name="uq_participants_deal_phone"),
    )
    op.create_index("ix_participants_deal_id", "participants", ["deal_id"], unique=False)
    op.create_index("ix_participants_phone_number", "participants", ["phone_number"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_participants_phone_number", table_name="participants")
    op.drop_index("ix_participants_deal_id", table_name="participants")
    op.drop_table("participants")
    op.drop_index("ix_deals_status_created_at", table_name="deals")
    op.drop_index("ix_deals_end_time", table_name="deals")
    op.drop_index("ix_deals_status", table_name="deals")
    op.drop_table("deals")
