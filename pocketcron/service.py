"""
Core scheduler loop.

A single thread walks the job table, dispatches every job that is due
and sleeps until the earliest upcoming fire time. Sleeps never exceed
max_sleep (one minute by default) so a wall-clock jump - suspend/resume,
a manual clock change - delays jobs by at most that much.
"""

import logging
import signal
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from tzlocal import get_localzone

from pocketcron.jobs import Job, JobRunner
from pocketcron.schedule import UTC

logger = logging.getLogger(__name__)

DEFAULT_MAX_SLEEP = timedelta(minutes=1)


class SchedulerService:
    """
    Drives the job table forward in time.

    Each job's fields are only touched under that job's own lock, held for
    the inspection of that single job, so a long-running job never holds up
    the loop or the other jobs.
    """

    def __init__(
        self,
        jobs: List[Job],
        runner: Optional[JobRunner] = None,
        max_sleep: timedelta = DEFAULT_MAX_SLEEP,
        timezone=None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize scheduler service.

        Args:
            jobs: Job table, as produced by the crontab loader
            runner: Runner used to dispatch due jobs
            max_sleep: Upper bound on a single sleep
            timezone: Timezone times are displayed in (default: local)
            clock: Callable returning the current time (for tests)
        """
        self.jobs = jobs
        self.runner = runner or JobRunner()
        self.max_sleep = max_sleep
        self.timezone = timezone or get_localzone()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._stop_event = threading.Event()
        self._exhausted = set()

    def now(self) -> datetime:
        return self._clock()

    def tick(self, now: datetime) -> datetime:
        """
        Run one pass over the job table.

        Due jobs are dispatched once, however many fire times they missed,
        and their schedule is moved to the first fire time after now.

        Args:
            now: Current time (timezone-aware)

        Returns:
            Time the loop should wake up next, in UTC
        """
        # Instants, not wall-clock times: a repeated hour must not compare equal
        now = now.astimezone(UTC)
        wake_at = now + self.max_sleep

        for job in self.jobs:
            with job.lock:
                if job.next_fire is None:
                    if job.id not in self._exhausted:
                        self._exhausted.add(job.id)
                        logger.warning(f"[{job.id}] schedule exhausted, job will not run again")
                    continue

                if now < job.next_fire:
                    wake_at = min(wake_at, job.next_fire)
                    continue

                try:
                    self.runner.dispatch(job)
                except Exception as e:
                    logger.error(f"[{job.id}] dispatch failed: {e}")

                # Catch up past fire times missed while the loop was late
                while job.next_fire is not None and job.next_fire <= now:
                    job.next_fire = job.cursor.advance()

                if job.next_fire is not None:
                    wake_at = min(wake_at, job.next_fire)

        return wake_at

    @staticmethod
    def sleep_duration(now: datetime, wake_at: datetime) -> float:
        """Seconds to sleep until wake_at; zero if it is not in the future."""
        return max((wake_at - now).total_seconds(), 0.0)

    def run_forever(self):
        """Run the scheduler loop until stop() is called."""
        logger.info(f"Scheduler started with {len(self.jobs)} job(s)")

        while self.is_running():
            now = self.now()
            wake_at = self.tick(now)
            delay = self.sleep_duration(now, wake_at)
            logger.debug(f"Sleeping {delay:.3f}s until {wake_at.astimezone(self.timezone).isoformat()}")
            if delay > 0:
                self._stop_event.wait(delay)

        logger.info("Scheduler stopped")

    def stop(self):
        """Ask the loop to exit. Jobs already running are left alone."""
        self._stop_event.set()

    def is_running(self) -> bool:
        return not self._stop_event.is_set()

    def install_signal_handlers(self):
        """Stop the loop on SIGINT/SIGTERM. Must be called from the main thread."""

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            self.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def get_jobs(self) -> List[Dict[str, Any]]:
        """
        Get a snapshot of the job table.

        Returns:
            List of job information dictionaries
        """
        jobs = []
        for job in self.jobs:
            with job.lock:
                jobs.append({
                    'id': job.id,
                    'next_run': job.next_fire.astimezone(self.timezone).isoformat() if job.next_fire else None,
                    'command': job.command,
                    'running': job.running
                })
        return jobs

    def print_jobs(self):
        """Print all scheduled jobs in a readable format."""
        jobs = self.get_jobs()

        if not jobs:
            print("No jobs scheduled")
            return

        print(f"\n{len(jobs)} scheduled job(s):\n")
        for job in jobs:
            print(f"  Job ID: {job['id']}")
            print(f"  Next Run: {job['next_run']}")
            print(f"  Command: {job['command']}")
            print()
