"""
Scheduled follow-up sweep.

Uses APScheduler BackgroundScheduler to run the follow-up sweep on a
fixed interval. Only one worker per host starts the scheduler (file-lock
guard); across hosts the sweep itself holds a database lease.
"""

import os
import atexit
import fcntl
from apscheduler.schedulers.background import BackgroundScheduler
from core.utils.logging_config import get_logger

logger = get_logger('autocrm.tasks.followups')

scheduler = BackgroundScheduler(daemon=True)
_lock_file = None


def run_follow_up_sweep():
    """Send due follow-ups and retire exhausted leads."""
    try:
        from sales_bot.services import FollowUpService
        result = FollowUpService().process_follow_ups()
        if result.skipped:
            logger.debug("Follow-up sweep skipped, lease held elsewhere")
        elif result.due or result.swept_inactive:
            logger.info(
                f"Follow-up sweep: {result.sent} sent, {result.inactivated} inactivated, "
                f"{result.failed} failed, {result.swept_inactive} stale"
            )
    except Exception as e:
        logger.error(f"Follow-up sweep failed: {e}")


def _acquire_scheduler_lock():
    """Try to acquire an exclusive file lock. Returns True if this process won."""
    global _lock_file
    try:
        lock_path = os.path.join(os.path.dirname(__file__), '..', '.scheduler.lock')
        _lock_file = open(lock_path, 'w')
        fcntl.flock(_lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        _lock_file.write(str(os.getpid()))
        _lock_file.flush()
        return True
    except (IOError, OSError):
        if _lock_file:
            _lock_file.close()
            _lock_file = None
        return False


def start_scheduler(interval_minutes=None):
    """Start the background scheduler with the follow-up job.

    Other gunicorn workers on the same host skip silently.
    """
    if scheduler.running:
        return

    if not _acquire_scheduler_lock():
        logger.debug(f"Scheduler lock held by another worker, skipping (pid={os.getpid()})")
        return

    if interval_minutes is None:
        from sales_bot.config import get_follow_up_config
        interval_minutes = get_follow_up_config().SWEEP_INTERVAL_MINUTES

    scheduler.add_job(
        run_follow_up_sweep,
        'interval',
        minutes=interval_minutes,
        id='follow_up_sweep',
        replace_existing=True,
        misfire_grace_time=300,
        coalesce=True,
        max_instances=1,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))
    logger.info(f"Follow-up scheduler started every {interval_minutes} min (pid={os.getpid()})")


def stop_scheduler():
    """Stop the background scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Follow-up scheduler stopped")
