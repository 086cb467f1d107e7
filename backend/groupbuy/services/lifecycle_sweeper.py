"""
Lifecycle sweeper: finalize active deals whose end_time has passed.

Quorum missed -> failed (refund_status=initiated on every participant, failure message).
Quorum met -> completed (success message). The status change is a compare-and-set from
active with the quorum test in the same UPDATE. Joins that land after the listing still
count, and overlapping or repeated runs finalize and notify each deal exactly once.
Each deal is processed in its own transaction; one bad deal does not stop the batch.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from groupbuy.core.constants import DEAL_STATUS_COMPLETED, DEAL_STATUS_FAILED
from groupbuy.services.deal_store import DealStore
from groupbuy.services.messaging import MessagingPort

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = (
    '😞 Sorry! The deal "{deal_name}" failed as only {current} of {minimum} participants joined. '
    "A refund is being initiated."
)
SUCCESS_MESSAGE = '🎉 Great news! The deal "{deal_name}" succeeded with {current} participants. Shipping soon!'


@dataclass
class SweepReport:
    examined: int = 0
    failed: int = 0
    completed: int = 0
    skipped: int = 0
    errors: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    finalized_deal_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


class LifecycleSweeper:
    """One sweep per run(); safe to call from overlapping scheduler ticks."""

    def __init__(self, store: DealStore, messenger: MessagingPort) -> None:
        self.store = store
        self.messenger = messenger

    def run(self, now: datetime | None = None) -> SweepReport:
        now = now or datetime.now(timezone.utc)
        report = SweepReport()
        try:
            expired = self.store.list_expired_active_deals(now)
        except SQLAlchemyError as e:
            self.store.rollback()
            logger.exception("event=sweep outcome=store_error error=%s", e)
            report.errors += 1
            return report
        if not expired:
            logger.debug("event=sweep outcome=idle")
            return report

        # Ids only; counts are re-read under the status change
        deal_ids = [d.id for d in expired]
        for deal_id in deal_ids:
            report.examined += 1
            self._process(report, deal_id, now)

        logger.info(
            "event=sweep outcome=done examined=%s failed=%s completed=%s skipped=%s errors=%s sent=%s send_failed=%s",
            report.examined, report.failed, report.completed, report.skipped,
            report.errors, report.notifications_sent, report.notifications_failed,
        )
        return report

    def _process(self, report: SweepReport, deal_id: str, now: datetime) -> None:
        try:
            new_status = self.store.finalize_expired(deal_id, now)
            if new_status is None:
                self.store.rollback()
                logger.info("event=sweep deal=%s outcome=already_finalized", deal_id)
                report.skipped += 1
                return
            deal = self.store.get_deal(deal_id, fresh=True)
            deal_name = deal.product_name
            current = deal.current_participants or 0
            minimum = deal.min_participants or 1
            recipients = [p.phone_number for p in self.store.list_participants(deal_id)]
            if new_status == DEAL_STATUS_FAILED:
                self.store.mark_refunds_initiated(deal_id)
            self.store.commit()
        except SQLAlchemyError as e:
            # Deal stays active and is retried on the next run
            self.store.rollback()
            logger.exception("event=sweep deal=%s outcome=store_error error=%s", deal_id, e)
            report.errors += 1
            return

        report.finalized_deal_ids.append(deal_id)
        if new_status == DEAL_STATUS_COMPLETED:
            report.completed += 1
            text = SUCCESS_MESSAGE.format(deal_name=deal_name, current=current)
        else:
            report.failed += 1
            text = FAILURE_MESSAGE.format(deal_name=deal_name, current=current, minimum=minimum)
        logger.info(
            "event=sweep deal=%s outcome=%s participants=%s/%s recipients=%s",
            deal_id, new_status, current, minimum, len(recipients),
        )
        for phone in recipients:
            if self._notify(deal_id, phone, text):
                report.notifications_sent += 1
            else:
                report.notifications_failed += 1

    def _notify(self, deal_id: str, phone: str, text: str) -> bool:
        try:
            sent = self.messenger.send(phone, text)
        except Exception as e:
            logger.warning("event=notify deal=%s phone=%s outcome=error error=%s", deal_id, phone, e, exc_info=True)
            return False
        if not sent:
            logger.warning("event=notify deal=%s phone=%s outcome=not_sent", deal_id, phone)
        return sent
