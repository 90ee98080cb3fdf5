import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.jobstores.memory import MemoryJobStore

from app.core.config import settings

logger = logging.getLogger(__name__)

MAINTENANCE_JOB_ID = "security_maintenance"

scheduler = BackgroundScheduler(
    jobstores={"default": MemoryJobStore()},
    job_defaults={"coalesce": True, "max_instances": 1},
)


def run_maintenance() -> dict:
    """Delete request logs past retention and purge expired revocations."""
    from app.core.clock import system_clock
    from app.core.database import SessionLocal
    from app.core.token_store import get_token_store
    from app.services.anti_spam_service import AntiSpamService

    db = SessionLocal()
    try:
        deleted = AntiSpamService(db, system_clock).cleanup_old_logs()
    finally:
        db.close()

    try:
        purged = get_token_store().purge_expired(system_clock.now())
    except Exception as e:
        logger.error(f"Failed to purge expired token revocations: {e}")
        purged = 0

    logger.info(f"Maintenance finished: {deleted} request logs deleted, {purged} revocations purged")
    return {"deleted_request_logs": deleted, "purged_revocations": purged}


def start_scheduler():
    """Start the scheduler with the periodic security maintenance job."""
    if scheduler.running:
        return
    scheduler.add_job(
        run_maintenance,
        trigger="interval",
        hours=settings.MAINTENANCE_INTERVAL_HOURS,
        id=MAINTENANCE_JOB_ID,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"APScheduler started; maintenance every {settings.MAINTENANCE_INTERVAL_HOURS}h")


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("APScheduler shut down")
