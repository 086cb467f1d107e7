"""
Admin deal management: CRUD, participant lists, progress and analytics.
Joins go through the join engine; the sweeper owns terminal status changes.
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from groupbuy.core.constants import (
    ADMIN_LIST_LIMIT,
    DEAL_STATUS_ACTIVE,
    DEAL_STATUS_COMPLETED,
)
from groupbuy.models.deal import Deal
from groupbuy.models.participant import Participant

# Fields an admin may change through PUT /api/deals/{id}
UPDATABLE_FIELDS = (
    "product_name",
    "description",
    "original_price",
    "group_price",
    "min_participants",
    "max_participants",
    "start_time",
    "end_time",
    "status",
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def deal_to_dict(d: Deal) -> dict[str, Any]:
    return {
        "id": d.id,
        "product_name": d.product_name,
        "description": d.description,
        "original_price": d.original_price,
        "group_price": d.group_price,
        "min_participants": d.min_participants,
        "max_participants": d.max_participants,
        "current_participants": d.current_participants,
        "status": d.status,
        "start_time": _iso(d.start_time),
        "end_time": _iso(d.end_time),
        "created_at": _iso(d.created_at),
        "updated_at": _iso(d.updated_at),
        "ended_at": _iso(d.ended_at),
    }


def participant_to_dict(p: Participant) -> dict[str, Any]:
    return {
        "id": p.id,
        "deal_id": p.deal_id,
        "phone_number": p.phone_number,
        "user_name": p.user_name,
        "quantity": p.quantity,
        "payment_status": p.payment_status,
        "amount_paid": p.amount_paid,
        "refund_status": p.refund_status,
        "joined_at": _iso(p.joined_at),
    }


def list_deals(db: Session, status: str | None = None, limit: int = ADMIN_LIST_LIMIT) -> list[dict]:
    """All deals, newest first; optionally filtered by status."""
    q = db.query(Deal)
    if status:
        q = q.filter(Deal.status == status)
    rows = q.order_by(Deal.created_at.desc()).limit(limit).all()
    return [deal_to_dict(d) for d in rows]


def get_deal(db: Session, deal_id: str) -> Deal | None:
    return db.query(Deal).filter(Deal.id == deal_id).first()


def create_deal(db: Session, fields: dict[str, Any]) -> Deal:
    """New deals always start active with an empty counter."""
    now = datetime.now(timezone.utc)
    row = Deal(
        **fields,
        status=DEAL_STATUS_ACTIVE,
        current_participants=0,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_deal(db: Session, deal_id: str, fields: dict[str, Any]) -> Deal | None:
    row = get_deal(db, deal_id)
    if row is None:
        return None
    for key, value in fields.items():
        if key in UPDATABLE_FIELDS:
            setattr(row, key, value)
    row.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(row)
    return row


def delete_deal(db: Session, deal_id: str) -> bool:
    """Delete a deal and its participants."""
    row = get_deal(db, deal_id)
    if row is None:
        return False
    db.delete(row)
    db.commit()
    return True


def list_deal_participants(db: Session, deal_id: str) -> list[dict]:
    rows = (
        db.query(Participant)
        .filter(Participant.deal_id == deal_id)
        .order_by(Participant.joined_at.asc())
        .all()
    )
    return [participant_to_dict(p) for p in rows]


def get_deal_progress(db: Session, deal_id: str, now: datetime | None = None) -> dict | None:
    """Progress toward max_participants and minutes left before end_time."""
    d = get_deal(db, deal_id)
    if d is None:
        return None
    now = now or datetime.now(timezone.utc)
    end_time = _as_utc(d.end_time)
    remaining_min = max(int((end_time - now).total_seconds() // 60), 0) if end_time else 0
    percent = round(d.current_participants / d.max_participants * 100) if d.max_participants else 0
    return {
        "deal_id": d.id,
        "product_name": d.product_name,
        "status": d.status,
        "joined": d.current_participants,
        "required": d.max_participants,
        "minimum": d.min_participants,
        "progress": f"{d.current_participants}/{d.max_participants}",
        "progress_percent": percent,
        "time_remaining_minutes": remaining_min,
    }


def get_user_deals(db: Session, phone_number: str) -> list[dict]:
    """One phone's participations with a deal summary, newest first."""
    rows = (
        db.query(Participant)
        .options(joinedload(Participant.deal))
        .filter(Participant.phone_number == phone_number)
        .order_by(Participant.joined_at.desc())
        .all()
    )
    out = []
    for p in rows:
        item = participant_to_dict(p)
        d = p.deal
        item["deal"] = {
            "id": d.id,
            "product_name": d.product_name,
            "status": d.status,
            "group_price": d.group_price,
            "original_price": d.original_price,
            "end_time": _iso(d.end_time),
            "created_at": _iso(d.created_at),
        }
        out.append(item)
    return out


def get_analytics(db: Session) -> dict[str, Any]:
    """
    Dashboard numbers: active deals, participants, revenue (sum of amount_paid),
    deals by status, success rate (completed / all deals) and monthly revenue of completed deals.
    """
    deals_by_status = {
        status: count
        for status, count in db.query(Deal.status, func.count(Deal.id)).group_by(Deal.status).all()
    }
    total_deals = sum(deals_by_status.values())
    total_participants = db.query(func.count(Participant.id)).scalar() or 0
    total_revenue = db.query(func.coalesce(func.sum(Participant.amount_paid), 0)).scalar() or 0

    monthly: dict[str, float] = defaultdict(float)
    month_order: dict[str, datetime] = {}
    completed_rows = (
        db.query(Deal.created_at, Participant.amount_paid)
        .join(Participant, Participant.deal_id == Deal.id)
        .filter(Deal.status == DEAL_STATUS_COMPLETED)
        .all()
    )
    for created_at, amount in completed_rows:
        if created_at is None:
            continue
        label = created_at.strftime("%b %Y")
        monthly[label] += float(amount or 0)
        month_order.setdefault(label, created_at.replace(day=1, hour=0, minute=0, second=0, microsecond=0))
    revenue_by_month = [
        {"month": label, "revenue": round(monthly[label], 2)}
        for label in sorted(monthly, key=lambda m: month_order[m])
    ]

    completed = deals_by_status.get(DEAL_STATUS_COMPLETED, 0)
    success_rate = (completed / total_deals * 100) if total_deals else 0.0
    return {
        "active_deals": deals_by_status.get(DEAL_STATUS_ACTIVE, 0),
        "total_deals": total_deals,
        "total_participants": total_participants,
        "total_revenue": round(float(total_revenue), 2),
        "success_rate": round(success_rate, 2),
        "deals_by_status": deals_by_status,
        "revenue_by_month": revenue_by_month,
    }
