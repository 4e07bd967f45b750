"""
test_scheduler.py - Unit tests for the scheduler module
"""

import threading
import unittest
from datetime import timedelta
from unittest.mock import MagicMock

from feed_collector.scheduler import Scheduler


class TestScheduler(unittest.TestCase):
    """Test cases for Scheduler class"""

    def setUp(self):
        """Set up test fixtures"""
        self.job = MagicMock(return_value={"new_items": 3, "sources": 2, "failed_sources": 0})
        self.scheduler = Scheduler(timedelta(hours=1), self.job, run_immediately=False)

    def tearDown(self):
        if self.scheduler.running:
            self.scheduler.stop()

    def test_rejects_short_interval(self):
        with self.assertRaises(ValueError):
            Scheduler(timedelta(milliseconds=100), self.job)

    def test_start_registers_interval_job(self):
        self.scheduler.start()

        status = self.scheduler.get_status()
        self.assertTrue(status["running"])
        self.assertEqual(status["jobs_count"], 1)
        self.assertEqual(status["interval_seconds"], 3600)
        self.assertIsNotNone(status["next_run"])
        self.job.assert_not_called()

    def test_start_twice_is_noop(self):
        self.scheduler.start()
        self.scheduler.start()
        self.assertEqual(len(self.scheduler.scheduler.get_jobs()), 1)

    def test_stop_clears_jobs(self):
        self.scheduler.start()
        self.scheduler.stop()

        self.assertFalse(self.scheduler.running)
        self.assertIsNone(self.scheduler.get_next_run_time())
        self.assertFalse(self.scheduler.thread.is_alive())

    def test_run_immediately(self):
        ran = threading.Event()
        self.job.side_effect = lambda: ran.set()
        scheduler = Scheduler(timedelta(hours=1), self.job, run_immediately=True)

        scheduler.start()
        try:
            self.assertTrue(ran.wait(5))
        finally:
            scheduler.stop()

    def test_run_now(self):
        self.scheduler.run_now()
        self.job.assert_called_once()

    def test_job_errors_are_contained(self):
        self.job.side_effect = RuntimeError("boom")

        self.scheduler.run_now()
        self.scheduler.run_now()

        self.assertEqual(self.job.call_count, 2)
        self.assertFalse(self.scheduler.get_status()["job_in_progress"])

    def test_overlapping_run_is_skipped(self):
        started = threading.Event()
        release = threading.Event()

        def slow_job():
            started.set()
            release.wait(5)

        scheduler = Scheduler(timedelta(hours=1), MagicMock(side_effect=slow_job), run_immediately=False)
        worker = threading.Thread(target=scheduler.run_now)
        worker.start()
        self.assertTrue(started.wait(5))

        scheduler.run_now()
        release.set()
        worker.join(timeout=5)

        self.assertEqual(scheduler.collection_job_func.call_count, 1)


if __name__ == '__main__':
    unittest.main()
