"""Admin deals API: CRUD, participants, join and live progress."""
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from groupbuy.config import settings
from groupbuy.core.constants import DEAL_STATUSES, DEAL_TERMINAL_STATUSES
from groupbuy.core.errors import (
    STATUS_BAD_REQUEST,
    STATUS_CONFLICT,
    JoinError,
    join_error_to_http,
    store_error_to_http,
)
from groupbuy.db.session import get_db
from groupbuy.services import deal_service
from groupbuy.services.deal_store import DealStore
from groupbuy.services.join_engine import JoinEngine, is_deal_id

router = APIRouter()
logger = logging.getLogger(__name__)

_STATUS_PATTERN = "^(" + "|".join(DEAL_STATUSES) + ")$"
_NULLABLE_FIELDS = ("description", "start_time")


class CreateDealBody(BaseModel):
    product_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    original_price: float = Field(..., gt=0)
    group_price: float = Field(..., gt=0)
    min_participants: int = Field(..., ge=1)
    max_participants: int = Field(..., ge=1)
    start_time: datetime | None = None
    end_time: datetime

    @model_validator(mode="after")
    def check_capacity(self):
        if self.max_participants < self.min_participants:
            raise ValueError("max_participants must be >= min_participants")
        return self


class UpdateDealBody(BaseModel):
    product_name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    original_price: float | None = Field(None, gt=0)
    group_price: float | None = Field(None, gt=0)
    min_participants: int | None = Field(None, ge=1)
    max_participants: int | None = Field(None, ge=1)
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: str | None = Field(None, pattern=_STATUS_PATTERN)


class JoinDealBody(BaseModel):
    phone_number: str = Field(..., min_length=1, max_length=64)


def _channel_phone(phone: str) -> str:
    """Admin callers may send a bare number; participants are stored in channel form."""
    phone = phone.strip()
    prefix = settings.whatsapp_sender_prefix
    return phone if phone.startswith(prefix) else f"{prefix}{phone}"


def _require_deal(db: Session, deal_id: str):
    deal = deal_service.get_deal(db, deal_id)
    if deal is None:
        raise HTTPException(status_code=404, detail="Deal not found")
    return deal


@router.get("/deals")
def list_deals(
    db: Session = Depends(get_db),
    status: str | None = Query(None, pattern=_STATUS_PATTERN),
) -> dict[str, Any]:
    try:
        data = deal_service.list_deals(db, status=status)
    except SQLAlchemyError as e:
        logger.exception("list_deals failed: %s", e)
        raise store_error_to_http(e)
    return {"success": True, "data": data, "count": len(data)}


@router.post("/deals", status_code=201)
def create_deal(body: CreateDealBody, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Create a deal (status=active, current_participants=0)."""
    try:
        deal = deal_service.create_deal(db, body.model_dump())
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("create_deal failed: %s", e)
        raise store_error_to_http(e)
    logger.info("event=deal_created deal=%s name=%s", deal.id, deal.product_name)
    return {"success": True, "data": deal_service.deal_to_dict(deal), "message": "Deal created successfully"}


@router.get("/deals/{deal_id}")
def get_deal(deal_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    deal = _require_deal(db, deal_id)
    return {"success": True, "data": deal_service.deal_to_dict(deal)}


@router.put("/deals/{deal_id}")
def update_deal(deal_id: str, body: UpdateDealBody, db: Session = Depends(get_db)) -> dict[str, Any]:
    # description and start_time may be cleared; other columns are NOT NULL
    fields = {
        k: v
        for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k in _NULLABLE_FIELDS
    }
    current = _require_deal(db, deal_id)
    new_min = fields.get("min_participants", current.min_participants)
    new_max = fields.get("max_participants", current.max_participants)
    if new_max < new_min:
        raise HTTPException(status_code=STATUS_BAD_REQUEST, detail="max_participants must be >= min_participants")
    if new_max < current.current_participants:
        raise HTTPException(
            status_code=STATUS_BAD_REQUEST,
            detail=f"max_participants must be >= current_participants ({current.current_participants})",
        )
    new_status = fields.get("status", current.status)
    if current.status in DEAL_TERMINAL_STATUSES and new_status != current.status:
        raise HTTPException(status_code=STATUS_CONFLICT, detail=f"Deal is already {current.status}")
    try:
        deal = deal_service.update_deal(db, deal_id, fields)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("update_deal failed: %s", e)
        raise store_error_to_http(e)
    return {"success": True, "data": deal_service.deal_to_dict(deal), "message": "Deal updated successfully"}


@router.delete("/deals/{deal_id}")
def delete_deal(deal_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    if not deal_service.delete_deal(db, deal_id):
        raise HTTPException(status_code=404, detail="Deal not found")
    logger.info("event=deal_deleted deal=%s", deal_id)
    return {"success": True, "message": "Deal deleted successfully"}


@router.get("/deals/{deal_id}/participants")
def list_participants(deal_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    _require_deal(db, deal_id)
    data = deal_service.list_deal_participants(db, deal_id)
    return {"success": True, "data": data, "count": len(data)}


@router.post("/deals/{deal_id}/join")
def join_deal(deal_id: str, body: JoinDealBody, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Join by literal deal id through the same engine the chat /join uses."""
    if not is_deal_id(deal_id):
        raise HTTPException(status_code=404, detail="Deal not found")
    engine = JoinEngine(DealStore(db))
    try:
        joined = engine.join(deal_id, _channel_phone(body.phone_number))
    except JoinError as e:
        raise join_error_to_http(e)
    return {
        "success": True,
        "data": {
            "deal_id": joined.deal_id,
            "product_name": joined.deal_name,
            "current_participants": joined.new_count,
            "max_participants": joined.max_participants,
            "group_price": joined.group_price,
        },
        "message": f"Joined {joined.deal_name} ({joined.new_count}/{joined.max_participants})",
    }


@router.get("/deals/{deal_id}/status")
def deal_status(deal_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Real-time deal progress."""
    progress = deal_service.get_deal_progress(db, deal_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="Deal not found")
    return {"success": True, **progress}
