"""Test fixtures.

Provides:
- In-memory SQLite engine (one shared connection) with all tables created per test
- Session factory / session bound to it
- RecordingMessenger that captures outbound WhatsApp messages
- make_deal / make_participant factories
- FastAPI TestClient with get_db and get_messenger overridden
"""
import os

# Before any groupbuy import: no scheduler, no real DB, no Twilio
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["TWILIO_AUTH_TOKEN"] = ""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from groupbuy.core.constants import DEAL_STATUS_ACTIVE
from groupbuy.db.base import Base
from groupbuy.db.session import get_db
from groupbuy.main import app
from groupbuy.models import Deal, Participant
from groupbuy.services.messaging import get_messenger

BASE_TIME = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


class RecordingMessenger:
    """Messaging port fake: records (recipient, text); recipients in fail_for get False."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()

    def send(self, recipient: str, text: str) -> bool:
        if recipient in self.raise_for:
            raise RuntimeError(f"channel down for {recipient}")
        if recipient in self.fail_for:
            return False
        self.sent.append((recipient, text))
        return True

    def recipients(self) -> list[str]:
        return [r for r, _ in self.sent]


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def _enable_fks(dbapi_conn, _record):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def messenger():
    return RecordingMessenger()


@pytest.fixture
def make_deal(db):
    """Create a committed deal. Each call is one minute newer than the previous one."""
    counter = {"n": 0}

    def _make(**overrides) -> Deal:
        counter["n"] += 1
        fields = {
            "product_name": f"Deal {counter['n']}",
            "original_price": 1000.0,
            "group_price": 750.0,
            "min_participants": 2,
            "max_participants": 5,
            "current_participants": 0,
            "status": DEAL_STATUS_ACTIVE,
            "start_time": BASE_TIME,
            "end_time": BASE_TIME + timedelta(days=30),
            "created_at": BASE_TIME + timedelta(minutes=counter["n"]),
            "updated_at": BASE_TIME + timedelta(minutes=counter["n"]),
        }
        fields.update(overrides)
        deal = Deal(**fields)
        db.add(deal)
        db.commit()
        db.refresh(deal)
        return deal

    return _make


@pytest.fixture
def make_participant(db):
    def _make(deal: Deal, phone: str, **overrides) -> Participant:
        fields = {
            "deal_id": deal.id,
            "phone_number": phone,
            "quantity": 1,
            "payment_status": "pending",
            "amount_paid": deal.group_price,
        }
        fields.update(overrides)
        row = Participant(**fields)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make


@pytest.fixture
def client(session_factory, messenger):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_messenger] = lambda: messenger
    yield TestClient(app)
    app.dependency_overrides.clear()
