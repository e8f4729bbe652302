"""
Pending sweep scheduler using APScheduler.
Periodically re-attempts workflow starts for deployments left in Pending
and for InProgress deployments whose execution has failed.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from typing import Dict, Optional

from deploy_lifecycle.constants import PENDING_SWEEP_JOB_ID
from deploy_lifecycle.core.logging import get_logger
from deploy_lifecycle.services.deployment.exceptions import DeploymentLifecycleError
from deploy_lifecycle.services.deployment.manager import DeploymentLifecycleManager

logger = get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone="UTC")
    return _scheduler


def start_scheduler():
    """Start the scheduler if not already running."""
    scheduler = get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    global _scheduler
    scheduler = get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown")
    _scheduler = None


def is_sweep_scheduled() -> bool:
    """True if the pending sweep job is registered on a running scheduler."""
    return _scheduler is not None and _scheduler.running and \
        _scheduler.get_job(PENDING_SWEEP_JOB_ID) is not None


async def run_pending_sweep(manager: DeploymentLifecycleManager) -> Dict:
    """One sweep pass. Failures are logged, the next interval retries."""
    try:
        report = await manager.retry_pending()
    except DeploymentLifecycleError as e:
        logger.error("Pending sweep failed", error=str(e))
        return {"error": str(e)}

    if report.started or report.resumed:
        logger.info("Sweep restarted workflows", started=report.started, resumed=report.resumed)
    return report.to_dict()


def register_pending_sweep(
    manager: DeploymentLifecycleManager,
    interval_seconds: int,
) -> str:
    """
    Register the pending sweep as an interval job.

    Args:
        manager: Lifecycle manager whose retry_pending runs on each tick
        interval_seconds: Seconds between sweeps

    Returns:
        The job_id
    """
    scheduler = get_scheduler()
    scheduler.add_job(
        run_pending_sweep,
        trigger=IntervalTrigger(seconds=interval_seconds, timezone="UTC"),
        id=PENDING_SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        kwargs={"manager": manager},
    )

    logger.info("Registered pending sweep", job_id=PENDING_SWEEP_JOB_ID,
                interval_seconds=interval_seconds)
    return PENDING_SWEEP_JOB_ID
