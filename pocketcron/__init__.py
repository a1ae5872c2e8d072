"""
pocketcron

A small crontab runner: loads crontab files and runs each job's shell
command on schedule, never starting a job while its previous run is
still going.

Features:
- Standard five-field schedules and @aliases (@hourly, @daily, ...)
- Commands run through /bin/sh with no standard input
- One polling thread, one thread per running job
- Missed fire times are coalesced into a single run
"""

from pocketcron.config import SchedulerConfig
from pocketcron.crontab import CrontabError, load_crontab, load_crontabs
from pocketcron.jobs import Job, JobRunner
from pocketcron.schedule import ScheduleCursor, ScheduleError, parse_schedule
from pocketcron.service import SchedulerService

__version__ = "0.1.0"
__all__ = [
    "SchedulerConfig",
    "CrontabError",
    "load_crontab",
    "load_crontabs",
    "Job",
    "JobRunner",
    "ScheduleCursor",
    "ScheduleError",
    "parse_schedule",
    "SchedulerService",
]
