"""Tests for the lifecycle sweeper and the scheduled deal expiry job."""
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import OperationalError

from groupbuy.core.constants import DEAL_STATUS_ACTIVE, DEAL_STATUS_COMPLETED, DEAL_STATUS_FAILED
from groupbuy.models import Deal, Participant
from groupbuy.scheduler.deal_expiry_job import run_deal_expiry_job
from groupbuy.services.deal_store import DealStore
from groupbuy.services.lifecycle_sweeper import FAILURE_MESSAGE, SUCCESS_MESSAGE, LifecycleSweeper

NOW = datetime(2026, 10, 3, 12, 0, tzinfo=timezone.utc)
EXPIRED = NOW - timedelta(days=1)

A = "whatsapp:+15550000001"
B = "whatsapp:+15550000002"
C = "whatsapp:+15550000003"


def _reload(db, deal_id):
    db.expire_all()
    return db.get(Deal, deal_id)


def _refunds(db, deal_id):
    db.expire_all()
    return [p.refund_status for p in db.query(Participant).filter(Participant.deal_id == deal_id)]


class TestFailedDeals:
    def test_quorum_missed_fails_and_notifies_everyone(self, db, messenger, make_deal, make_participant):
        deal = make_deal(product_name="Rice 5kg", min_participants=5, current_participants=2, end_time=EXPIRED)
        make_participant(deal, A)
        make_participant(deal, B)

        report = LifecycleSweeper(DealStore(db), messenger).run(now=NOW)

        assert report.failed == 1
        assert report.completed == 0
        assert report.notifications_sent == 2
        assert report.finalized_deal_ids == [deal.id]
        fresh = _reload(db, deal.id)
        assert fresh.status == DEAL_STATUS_FAILED
        assert fresh.ended_at is not None
        assert _refunds(db, deal.id) == ["initiated", "initiated"]
        assert sorted(messenger.recipients()) == [A, B]
        expected = FAILURE_MESSAGE.format(deal_name="Rice 5kg", current=2, minimum=5)
        assert all(text == expected for _, text in messenger.sent)
        assert "only 2 of 5" in expected

    def test_failed_deal_without_participants(self, db, messenger, make_deal):
        deal = make_deal(min_participants=3, current_participants=0, end_time=EXPIRED)
        report = LifecycleSweeper(DealStore(db), messenger).run(now=NOW)
        assert report.failed == 1
        assert report.notifications_sent == 0
        assert _reload(db, deal.id).status == DEAL_STATUS_FAILED
        assert messenger.sent == []


class TestCompletedDeals:
    def test_quorum_met_completes_without_refunds(self, db, messenger, make_deal, make_participant):
        deal = make_deal(product_name="Olive Oil", min_participants=2, current_participants=3, end_time=EXPIRED)
        for phone in (A, B, C):
            make_participant(deal, phone)

        report = LifecycleSweeper(DealStore(db), messenger).run(now=NOW)

        assert report.completed == 1
        assert _reload(db, deal.id).status == DEAL_STATUS_COMPLETED
        assert _refunds(db, deal.id) == [None, None, None]
        assert sorted(messenger.recipients()) == [A, B, C]
        expected = SUCCESS_MESSAGE.format(deal_name="Olive Oil", current=3)
        assert {text for _, text in messenger.sent} == {expected}

    def test_exactly_minimum_counts_as_met(self, db, messenger, make_deal):
        deal = make_deal(min_participants=2, current_participants=2, end_time=EXPIRED)
        LifecycleSweeper(DealStore(db), messenger).run(now=NOW)
        assert _reload(db, deal.id).status == DEAL_STATUS_COMPLETED


class TestSelection:
    def test_unexpired_and_inactive_deals_are_untouched(self, db, messenger, make_deal, make_participant):
        open_deal = make_deal(end_time=NOW + timedelta(hours=1))
        boundary = make_deal(end_time=NOW)
        closed = make_deal(status=DEAL_STATUS_FAILED, end_time=EXPIRED)
        make_participant(closed, A)

        report = LifecycleSweeper(DealStore(db), messenger).run(now=NOW)

        assert report.examined == 0
        assert _reload(db, open_deal.id).status == DEAL_STATUS_ACTIVE
        assert _reload(db, boundary.id).status == DEAL_STATUS_ACTIVE
        assert _refunds(db, closed.id) == [None]
        assert messenger.sent == []

    def test_second_run_is_a_no_op(self, db, messenger, make_deal, make_participant):
        deal = make_deal(min_participants=5, current_participants=1, end_time=EXPIRED)
        make_participant(deal, A)
        sweeper = LifecycleSweeper(DealStore(db), messenger)

        first = sweeper.run(now=NOW)
        second = sweeper.run(now=NOW + timedelta(minutes=1))

        assert first.failed == 1
        assert second.examined == 0
        assert messenger.recipients() == [A]


class RacedStore(DealStore):
    """Another sweeper finalizes the deal between the expired-deal query and the status change."""

    def __init__(self, db, other_session):
        super().__init__(db)
        self.other_session = other_session

    def list_expired_active_deals(self, now):
        deals = super().list_expired_active_deals(now)
        for d in deals:
            other = self.other_session.get(Deal, d.id)
            other.status = DEAL_STATUS_FAILED
        self.other_session.commit()
        return deals


class LateJoinStore(DealStore):
    """A join commits between the expired-deal query and the status change."""

    def __init__(self, db, other_session, phone):
        super().__init__(db)
        self.other_session = other_session
        self.phone = phone

    def list_expired_active_deals(self, now):
        deals = super().list_expired_active_deals(now)
        for d in deals:
            other = self.other_session.get(Deal, d.id)
            other.current_participants += 1
            self.other_session.add(Participant(deal_id=d.id, phone_number=self.phone, amount_paid=1))
        self.other_session.commit()
        return deals


class BrokenTransitionStore(DealStore):
    def __init__(self, db, broken_id):
        super().__init__(db)
        self.broken_id = broken_id

    def finalize_expired(self, deal_id, now):
        if deal_id == self.broken_id:
            raise OperationalError("UPDATE deals", {}, Exception("server closed the connection"))
        return super().finalize_expired(deal_id, now)


class TestFaultTolerance:
    def test_concurrent_finalization_is_skipped(self, db, session_factory, messenger, make_deal, make_participant):
        deal = make_deal(min_participants=5, current_participants=1, end_time=EXPIRED)
        make_participant(deal, A)
        other = session_factory()
        try:
            report = LifecycleSweeper(RacedStore(db, other), messenger).run(now=NOW)
        finally:
            other.close()
        assert report.examined == 1
        assert report.skipped == 1
        assert report.failed == 0
        assert messenger.sent == []
        assert _refunds(db, deal.id) == [None]

    def test_join_after_listing_counts_toward_quorum(self, db, session_factory, messenger, make_deal, make_participant):
        deal = make_deal(product_name="Olive Oil", min_participants=2, current_participants=1, end_time=EXPIRED)
        make_participant(deal, A)
        other = session_factory()
        try:
            report = LifecycleSweeper(LateJoinStore(db, other, B), messenger).run(now=NOW)
        finally:
            other.close()

        assert report.completed == 1
        assert report.failed == 0
        assert _reload(db, deal.id).status == DEAL_STATUS_COMPLETED
        assert _refunds(db, deal.id) == [None, None]
        assert sorted(messenger.recipients()) == [A, B]
        expected = SUCCESS_MESSAGE.format(deal_name="Olive Oil", current=2)
        assert {text for _, text in messenger.sent} == {expected}

    def test_store_error_on_one_deal_does_not_stop_the_batch(self, db, messenger, make_deal, make_participant):
        broken = make_deal(min_participants=5, current_participants=1, end_time=EXPIRED)
        healthy = make_deal(min_participants=1, current_participants=1, end_time=EXPIRED + timedelta(minutes=5))
        make_participant(broken, A)
        make_participant(healthy, B)

        report = LifecycleSweeper(BrokenTransitionStore(db, broken.id), messenger).run(now=NOW)

        assert report.errors == 1
        assert report.completed == 1
        assert _reload(db, broken.id).status == DEAL_STATUS_ACTIVE
        assert _reload(db, healthy.id).status == DEAL_STATUS_COMPLETED
        assert messenger.recipients() == [B]

    def test_messaging_failures_do_not_revert_the_transition(self, db, messenger, make_deal, make_participant):
        deal = make_deal(min_participants=5, current_participants=3, end_time=EXPIRED)
        for phone in (A, B, C):
            make_participant(deal, phone)
        messenger.fail_for.add(A)
        messenger.raise_for.add(B)

        report = LifecycleSweeper(DealStore(db), messenger).run(now=NOW)

        assert report.failed == 1
        assert report.notifications_sent == 1
        assert report.notifications_failed == 2
        assert messenger.recipients() == [C]
        assert _reload(db, deal.id).status == DEAL_STATUS_FAILED
        assert _refunds(db, deal.id) == ["initiated"] * 3


class TestDealExpiryJob:
    def test_job_sweeps_with_its_own_session(self, db, session_factory, messenger, make_deal, make_participant):
        deal = make_deal(min_participants=1, current_participants=1, end_time=EXPIRED)
        make_participant(deal, A)
        fresh = make_deal(end_time=datetime.now(timezone.utc) + timedelta(days=1))

        report = run_deal_expiry_job(messenger=messenger, session_factory=session_factory)

        assert report is not None
        assert report.completed == 1
        assert _reload(db, deal.id).status == DEAL_STATUS_COMPLETED
        assert _reload(db, fresh.id).status == DEAL_STATUS_ACTIVE
        assert messenger.recipients() == [A]

    def test_job_swallows_unexpected_errors(self, messenger):
        session = BrokenSession()
        assert run_deal_expiry_job(messenger=messenger, session_factory=lambda: session) is None
        assert session.closed
        assert messenger.sent == []


class BrokenSession:
    """Session stand-in whose every query blows up with a non-SQLAlchemy error."""

    closed = False

    def query(self, *args, **kwargs):
        raise RuntimeError("boom")

    def rollback(self):
        pass

    def close(self):
        self.closed = True
