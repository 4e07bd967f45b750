"""
Scheduler for collection cycles.
Runs the collection job every refresh interval on a background thread.
"""
import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import schedule

from .utils.helpers import format_duration

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Manages periodic execution of the collection job.

    The job never overlaps itself: a tick that fires while the previous run is
    still going is skipped.
    """

    def __init__(self, interval: timedelta, collection_job_func: Callable[[], Optional[Dict[str, Any]]],
                 run_immediately: bool = True):
        """
        Initialize the scheduler.

        Args:
            interval: Time between collection runs
            collection_job_func: Callable to execute for collection. Should return
                a dictionary of stats or None.
            run_immediately: Also run the job once when the scheduler starts
        """
        if interval.total_seconds() < 1:
            raise ValueError("Refresh interval must be at least one second")

        self.interval = interval
        self.collection_job_func = collection_job_func
        self.run_immediately = run_immediately
        self.running = False
        self.thread = None
        self.job = None
        self.scheduler = schedule.Scheduler()
        self._job_lock = threading.Lock()

        logger.debug(f"Scheduler initialized with interval {format_duration(interval.total_seconds())}")

    def _run_job_safely(self):
        """
        Run the job function with error handling.
        """
        if not self._job_lock.acquire(blocking=False):
            logger.warning("Previous collection run still in progress, skipping this tick")
            return

        try:
            logger.info("Executing scheduled collection job...")
            start_time = time.time()

            result = self.collection_job_func()

            duration = time.time() - start_time
            logger.info(f"Scheduled job completed in {format_duration(duration)}")

            if isinstance(result, dict):
                logger.info(f"Job summary: {result.get('new_items', 0)} new items from "
                            f"{result.get('sources', 0)} sources ({result.get('failed_sources', 0)} failed)")

        except Exception as e:
            logger.error(f"Error executing scheduled job: {e}", exc_info=True)
        finally:
            self._job_lock.release()

    def start(self):
        """
        Start the scheduler in a separate thread.
        """
        if self.running:
            logger.warning("Scheduler is already running")
            return

        self.scheduler.clear()
        self.job = self.scheduler.every(int(self.interval.total_seconds())).seconds.do(self._run_job_safely)
        self.running = True

        self.thread = threading.Thread(target=self._scheduler_loop, name="collection-scheduler", daemon=True)
        self.thread.start()

        logger.info(f"Scheduler started, collecting every {format_duration(self.interval.total_seconds())}")

    def stop(self):
        """
        Stop the scheduler.
        """
        if not self.running:
            logger.warning("Scheduler is not running")
            return

        logger.info("Stopping scheduler...")
        self.running = False

        if self.thread and self.thread.is_alive() and self.thread is not threading.current_thread():
            self.thread.join(timeout=5)
            if self.thread.is_alive():
                logger.warning("Scheduler thread did not terminate cleanly.")

        self.scheduler.clear()
        logger.info("Scheduler stopped")

    def _scheduler_loop(self):
        """
        Main scheduler loop running in separate thread.
        """
        logger.debug("Scheduler loop started")

        if self.run_immediately:
            self._run_job_safely()

        while self.running:
            try:
                self.scheduler.run_pending()
                time.sleep(1)
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}", exc_info=True)
                time.sleep(5)

        logger.debug("Scheduler loop stopped")

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get the next scheduled run time.

        Returns:
            Next run time as a naive local datetime, or None if nothing is scheduled
        """
        return self.scheduler.next_run if self.scheduler.get_jobs() else None

    def get_status(self) -> dict:
        """
        Get scheduler status information.

        Returns:
            Dictionary with scheduler status
        """
        next_run = self.get_next_run_time()
        return {
            "running": self.running,
            "interval_seconds": self.interval.total_seconds(),
            "next_run": next_run.isoformat() if next_run else None,
            "jobs_count": len(self.scheduler.get_jobs()),
            "job_in_progress": self._job_lock.locked(),
            "thread_alive": self.thread.is_alive() if self.thread else False
        }

    def run_now(self):
        """
        Execute the collection job immediately (outside of schedule).
        """
        logger.info("Running collection job immediately...")
        self._run_job_safely()
