"""Admin dashboard: analytics and per-user deal history."""
import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from groupbuy.core.errors import store_error_to_http
from groupbuy.db.session import get_db
from groupbuy.services import deal_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/analytics")
def analytics(db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        data = deal_service.get_analytics(db)
    except SQLAlchemyError as e:
        logger.exception("analytics failed: %s", e)
        raise store_error_to_http(e)
    return {"success": True, "data": data}


@router.get("/users/{phone}/deals")
def user_deals(phone: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Deals joined by one phone number (stored in channel form, e.g. whatsapp:+1555...)."""
    try:
        data = deal_service.get_user_deals(db, phone.strip())
    except SQLAlchemyError as e:
        logger.exception("user_deals failed: %s", e)
        raise store_error_to_http(e)
    return {"success": True, "data": data, "count": len(data)}
