"""Daily scheduling of the custody news pipeline."""

import asyncio
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .models import ExecutionResult
from .orchestrator import PipelineOrchestrator
from .logger import get_logger


JOB_ID = 'daily_custody_news'

# A run missed while the host slept still happens once within this window
MISFIRE_GRACE_SECONDS = 6 * 60 * 60


class Scheduler:
    """
    Runs the pipeline once a day at a fixed UTC time.

    Runs never overlap and missed runs are coalesced into one. Each run
    is self-contained: a failed feed or write is simply retried by the
    next day's run, so the job itself never raises into the scheduler.
    """

    def __init__(self, pipeline: PipelineOrchestrator, run_time: str = "06:00"):
        """
        Args:
            pipeline: Pipeline orchestrator instance
            run_time: Daily run time in HH:MM format (24-hour, UTC)
        """
        self.pipeline = pipeline
        self.run_time = run_time
        self.last_result: Optional[ExecutionResult] = None
        self.logger = get_logger()

        try:
            hours, minutes = run_time.split(':')
            self.trigger = CronTrigger(hour=int(hours), minute=int(minutes), timezone='UTC')
        except ValueError:
            raise ValueError(f"Invalid run_time format: {run_time}. Use HH:MM format.")

        self.scheduler = AsyncIOScheduler(timezone='UTC')

    def add_job(self):
        """Register the daily publish job."""
        return self.scheduler.add_job(
            self.run_scheduled,
            trigger=self.trigger,
            id=JOB_ID,
            name='Publish custody metering news',
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=MISFIRE_GRACE_SECONDS
        )

    def start(self, run_immediately: bool = False):
        """
        Start the scheduler (blocking).

        Args:
            run_immediately: Also publish once right away instead of waiting
                for the first scheduled time
        """
        self.logger.info(f"Starting scheduler: news will be published daily at {self.run_time} UTC")

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        self.scheduler.configure(event_loop=loop)
        job = self.add_job()
        if run_immediately:
            loop.create_task(self.run_scheduled())
        self.scheduler.start()
        self.logger.info(f"Next run at {job.next_run_time}")

        try:
            loop.run_forever()
        except (KeyboardInterrupt, SystemExit):
            self.logger.info("Received shutdown signal")
            self.stop()

    def stop(self):
        """Stop the scheduler without waiting for a running job."""
        self.scheduler.shutdown(wait=False)
        self.logger.info("Scheduler stopped")

    async def run_once(self) -> ExecutionResult:
        """Execute the pipeline once immediately."""
        self.logger.info("Running pipeline once (manual execution)")
        self.last_result = await self.pipeline.run_pipeline()
        return self.last_result

    async def run_scheduled(self) -> Optional[ExecutionResult]:
        """Scheduled job body: run, record and summarize the outcome."""
        try:
            result = await self.pipeline.run_pipeline()
        except Exception as e:
            self.logger.error(f"Scheduled pipeline execution failed: {e}", exc_info=True)
            return None

        self.last_result = result
        if not result.success:
            self.logger.error(f"Scheduled run wrote no record: {'; '.join(result.errors)}")
        elif result.preserved_previous:
            self.logger.warning("Scheduled run found no items; previous record kept")
        else:
            self.logger.info(
                f"Scheduled run published {result.items_kept} items "
                f"({result.feeds_failed}/{result.feeds_tried} feeds failed)"
            )
        return result
