"""
Scheduling service
Runs the upkeep on a crontab schedule with APScheduler
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

UPKEEP_JOB_ID = "sql_fleet_upkeep"


class SchedulerManager:
    """Scheduler management - ONLY handles APScheduler operations"""

    def __init__(self, scheduler=None):
        self.scheduler = scheduler or BlockingScheduler()

    def add_crontab_job(self, func: Callable, job_id: str, crontab: str, timezone: Optional[str] = None,
                        args: Optional[List[Any]] = None, kwargs: Optional[Dict[str, Any]] = None) -> None:
        """Add or replace a job using a crontab string like '30 3 * * 1,3,5'"""
        trigger = CronTrigger.from_crontab(crontab, timezone=timezone)
        self.scheduler.add_job(
            func,
            trigger,
            id=job_id,
            args=args or [],
            kwargs=kwargs or {},
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        logger.info(f"Added crontab job {job_id}: '{crontab}' tz={timezone or 'scheduler default'}")

    def start(self) -> None:
        """Start the scheduler (blocks for BlockingScheduler)"""
        logger.info("Scheduler started")
        self.scheduler.start()

    def shutdown(self) -> None:
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


def schedule_upkeep(scheduler: SchedulerManager, run_upkeep: Callable, crontab: str,
                    timezone: Optional[str] = None) -> None:
    """Register the upkeep run on the given crontab"""
    def execute_upkeep():
        try:
            run_upkeep()
        except Exception as e:
            logger.error(f"Scheduled upkeep run failed: {e}")

    scheduler.add_crontab_job(func=execute_upkeep, job_id=UPKEEP_JOB_ID, crontab=crontab, timezone=timezone)
