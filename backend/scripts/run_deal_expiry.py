#!/usr/bin/env python3
"""
Run one deal expiry sweep now (same work as the scheduled deal_expiry job).
Use from cron when the API process runs with SCHEDULER_ENABLED=false.
Run: cd backend && python scripts/run_deal_expiry.py
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from groupbuy.scheduler.deal_expiry_job import run_deal_expiry_job


def main() -> int:
    print("Finalizing expired deals...")
    report = run_deal_expiry_job()
    if report is None:
        print("FAIL Sweep aborted; see logs.")
        return 1
    print(
        f"Done. examined={report.examined} failed={report.failed} completed={report.completed} "
        f"skipped={report.skipped} errors={report.errors} "
        f"notifications_sent={report.notifications_sent} notifications_failed={report.notifications_failed}"
    )
    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
