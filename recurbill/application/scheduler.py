"""
Background scheduler — runs the daily billing job inside the API process.

Jobs:
  - Due billing (daily, BILLING_RUN_HOUR:BILLING_RUN_MINUTE UTC)
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from recurbill.config import get_settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

DUE_BILLING_JOB_ID = "due_billing"


def _run_due_billing():
    from recurbill.infrastructure.db.session import get_session_factory
    from recurbill.application.billing_run import run_due_billing
    from recurbill.application.subscriptions import build_facade

    Session = get_session_factory()
    db = Session()
    try:
        run_due_billing(build_facade(db))
    except Exception:
        logger.exception("Due billing job failed")
    finally:
        db.close()


def configure_jobs(target: BackgroundScheduler = scheduler) -> None:
    """Register periodic jobs on ``target`` without starting it."""
    settings = get_settings()
    # Pending jobs of a stopped scheduler are not deduplicated by replace_existing
    if target.get_job(DUE_BILLING_JOB_ID) is not None:
        target.remove_job(DUE_BILLING_JOB_ID)
    target.add_job(
        _run_due_billing,
        CronTrigger(hour=settings.BILLING_RUN_HOUR, minute=settings.BILLING_RUN_MINUTE, timezone="UTC"),
        id=DUE_BILLING_JOB_ID,
        replace_existing=True,
    )


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    settings = get_settings()
    configure_jobs(scheduler)
    scheduler.start()
    logger.info(
        "Scheduler started: due_billing (%02d:%02d UTC)",
        settings.BILLING_RUN_HOUR, settings.BILLING_RUN_MINUTE,
    )


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
