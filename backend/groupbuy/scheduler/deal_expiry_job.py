"""Runs every DEAL_EXPIRY_INTERVAL_SECONDS: finalize expired active deals and notify participants."""
import logging

from groupbuy.config import settings
from groupbuy.db.session import SessionLocal
from groupbuy.services.deal_store import DealStore
from groupbuy.services.lifecycle_sweeper import LifecycleSweeper, SweepReport
from groupbuy.services.messaging import MessagingPort, build_messenger

logger = logging.getLogger(__name__)


def run_deal_expiry_job(messenger: MessagingPort | None = None, session_factory=SessionLocal) -> SweepReport | None:
    db = session_factory()
    try:
        sweeper = LifecycleSweeper(DealStore(db), messenger or build_messenger(settings))
        return sweeper.run()
    except Exception as e:
        logger.exception("Deal expiry job failed: %s", e)
        db.rollback()
        return None
    finally:
        db.close()
