#!/usr/bin/env python3
"""
Quick checks so the backend can start. Run from backend/:
  python scripts/check_backend.py
"""
import os
import sys
from pathlib import Path

# Run from backend/
backend_dir = Path(__file__).resolve().parent.parent
os.chdir(backend_dir)
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))


def _report_deal_backlog():
    """Active deals past end_time mean the expiry job is not running (or keeps failing)."""
    from datetime import datetime, timezone

    from groupbuy.db.session import SessionLocal
    from groupbuy.services.deal_store import DealStore

    db = SessionLocal()
    try:
        store = DealStore(db)
        active = len(store.list_active_deals())
        overdue = len(store.list_expired_active_deals(datetime.now(timezone.utc)))
    finally:
        db.close()
    print(f"OK  {active} active deal(s)")
    if overdue:
        print(f"WARN {overdue} active deal(s) past end_time; run scripts/run_deal_expiry.py or enable the scheduler")


def main():
    errors = []

    # 1) .env
    env_file = backend_dir / ".env"
    if not env_file.exists():
        errors.append("backend/.env missing. Copy from backend/.env.example and set DATABASE_URL, TWILIO_*.")
    else:
        print("OK  .env exists")

    # 2) DB connection and tables
    try:
        from sqlalchemy import inspect, text

        from groupbuy.db.session import engine
        from groupbuy.db.tables import ALL_TABLE_NAMES

        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("OK  Database connection (DATABASE_URL)")
        missing = set(ALL_TABLE_NAMES) - set(inspect(engine).get_table_names())
        if missing:
            errors.append(f"Tables missing: {sorted(missing)}. Run: alembic upgrade head")
            print("FAIL Tables missing:", sorted(missing))
        else:
            print("OK  Tables present")
            _report_deal_backlog()
    except Exception as e:
        errors.append(f"Database: {e}")
        print("FAIL Database:", e)

    # 3) Twilio (optional: without it replies are only logged)
    from groupbuy.config import settings

    if settings.twilio_configured():
        print("OK  Twilio configured")
    else:
        print("WARN Twilio not configured; outbound WhatsApp messages will be logged, not sent")

    # 4) App import (catches missing deps, bad imports)
    try:
        from groupbuy.main import app  # noqa: F401
        print("OK  App import (groupbuy.main)")
    except Exception as e:
        errors.append(f"App import: {e}")
        print("FAIL App import:", e)

    if errors:
        print("\n---")
        for e in errors:
            print("•", e)
        return 1

    print("\nAll checks passed. Start with: uvicorn groupbuy.main:app --reload --port 8000")
    return 0


if __name__ == "__main__":
    sys.exit(main())
