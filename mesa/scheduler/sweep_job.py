"""
Periodic sweep: every SWEEP_INTERVAL_SECONDS, move confirmed reservations
past their arrival tolerance to no_show and cancel pending reservations whose
deposit was not paid within the expiry window.

Runs in the APScheduler background thread with its own session.
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from mesa.core.config import get_settings
from mesa.db.session import SessionLocal
from mesa.services.engine import AllocationEngine

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "reservation_sweep"


def run_reservation_sweep() -> dict | None:
    db = SessionLocal()
    try:
        return AllocationEngine(db).run_sweeps()
    except Exception as e:
        # Keep the scheduler alive; the next tick retries
        logger.error(f"Reservation sweep failed: {e}", exc_info=True)
        db.rollback()
        return None
    finally:
        db.close()


def build_scheduler() -> BackgroundScheduler:
    settings = get_settings()
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_reservation_sweep,
        "interval",
        seconds=settings.SWEEP_INTERVAL_SECONDS,
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
