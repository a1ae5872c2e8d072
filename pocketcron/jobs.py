"""
Job state and shell command execution.

Each dispatched job runs in its own thread: the thread starts the command
through a shell, waits for it, logs the outcome and clears the job's
running flag. The scheduler loop never waits on a job.
"""

import logging
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pocketcron.schedule import ScheduleCursor

logger = logging.getLogger(__name__)

DEFAULT_SHELL = '/bin/sh'


@dataclass(eq=False)
class Job:
    """
    One schedulable crontab entry.

    next_fire, running and the cursor position are shared between the
    scheduler loop and the job's execution thread; touch them only while
    holding lock.
    """
    id: int
    cursor: ScheduleCursor
    next_fire: Optional[datetime]
    command: str
    running: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __setattr__(self, name, value):
        if name == 'id' and 'id' in self.__dict__:
            raise AttributeError("Job id is read-only")
        super().__setattr__(name, value)


def describe_status(returncode: int) -> str:
    """Render a process return code the way it is reported in logs."""
    if returncode < 0:
        signum = -returncode
        try:
            return f"signal: {signum} ({signal.Signals(signum).name})"
        except ValueError:
            return f"signal: {signum}"
    return f"exit status: {returncode}"


class JobRunner:
    """
    Starts jobs as shell commands, one thread per run.

    A job whose previous run has not finished is skipped, not queued.
    """

    def __init__(self, shell: str = DEFAULT_SHELL):
        """
        Initialize job runner.

        Args:
            shell: Shell used to interpret commands (invoked as `shell -c cmd`)
        """
        self.shell = shell

    def dispatch(self, job: Job) -> threading.Thread:
        """
        Run a job in a new thread without waiting for it.

        Args:
            job: Job to run

        Returns:
            The started thread
        """
        thread = threading.Thread(
            target=self.run,
            args=(job,),
            name=f"pocketcron-job-{job.id}",
            daemon=True
        )
        thread.start()
        return thread

    def run(self, job: Job) -> bool:
        """
        Run a job to completion in the calling thread.

        Args:
            job: Job to run

        Returns:
            False if the job was already running and nothing was started
        """
        with job.lock:
            if job.running:
                logger.debug(f"[{job.id}] still running, skipped")
                return False
            job.running = True
            command = job.command
            logger.info(f"[{job.id}] CMD {command}")

        try:
            self._execute(job.id, command)
        finally:
            with job.lock:
                job.running = False

        return True

    def _execute(self, job_id: int, command: str):
        """Start the command, wait for it and log any failure."""
        try:
            process = subprocess.Popen(
                [self.shell, '-c', command],
                stdin=subprocess.DEVNULL
            )
        except (OSError, ValueError) as e:
            logger.error(f"[{job_id}] spawn failed: {e}")
            return

        try:
            returncode = process.wait()
        except OSError as e:
            logger.error(f"[{job_id}] wait failed: {e}")
            return

        if returncode != 0:
            logger.error(f"[{job_id}] {describe_status(returncode)}")
