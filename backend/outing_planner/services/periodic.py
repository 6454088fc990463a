"""Background jobs: the deadline sweep and recurring generation on fixed intervals."""
import logging
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from outing_planner.config import settings

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    """
    Interval jobs run on an APScheduler background thread pool.

    Each job has ``max_instances=1``, so a slow sweep is skipped rather than
    stacked. Failures are logged by APScheduler and the next tick runs as usual.
    """

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    def add_interval_job(self, job_id: str, func: Callable[[], Any], seconds: float, name: Optional[str] = None) -> None:
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            name=name or job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Registered job %s (every %ss)", job_id, seconds)

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.start()
        logger.info("Maintenance scheduler started with %d jobs", len(self.scheduler.get_jobs()))

    def stop(self, wait: bool = True) -> None:
        if not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=wait)
        logger.info("Maintenance scheduler stopped")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self.scheduler.running,
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run": str(job.next_run_time) if job.next_run_time else None,
                }
                for job in self.scheduler.get_jobs()
            ],
        }


def build_scheduler(sweep: Callable[[], Any], generate_recurring: Callable[[], Any]) -> MaintenanceScheduler:
    jobs = MaintenanceScheduler()
    jobs.add_interval_job("deadline_sweep", sweep, settings.SWEEP_INTERVAL_SECONDS, "Deadline sweep")
    jobs.add_interval_job(
        "recurring_generation", generate_recurring, settings.RECURRING_INTERVAL_SECONDS, "Recurring generation",
    )
    return jobs
