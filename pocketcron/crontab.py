"""
Crontab file loading.

Turns crontab files into the job table. Any problem - an unreadable file,
a short line, a bad schedule - aborts loading: a crontab is either loaded
completely or not at all.
"""

import logging
import os
import re
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, TextIO, Tuple

from tzlocal import get_localzone

from pocketcron.jobs import Job
from pocketcron.schedule import ScheduleCursor, parse_schedule

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r'\S+')


class CrontabError(Exception):
    """Raised when a crontab file cannot be loaded."""

    def __init__(self, path, line_no: Optional[int], message: str):
        self.path = os.fspath(path)
        self.line_no = line_no
        self.message = message
        super().__init__(str(self))

    def __str__(self):
        if self.line_no is None:
            return f"{self.path}: {self.message}"
        return f"{self.path}:{self.line_no}: error: {self.message}"


def split_line(line: str) -> Tuple[str, str]:
    """
    Split a crontab line into its schedule and command.

    Whitespace splitting is only used to find where the command starts;
    the command itself is returned exactly as written so quoted strings
    keep their spacing.

    Args:
        line: Non-empty, non-comment crontab line

    Returns:
        Tuple of (schedule, command)

    Raises:
        ValueError: If the line has too few fields
    """
    line = line.strip()
    field_count = 1 if line.startswith('@') else 5

    tokens = list(_TOKEN_RE.finditer(line))
    if len(tokens) <= field_count:
        raise ValueError("not enough elements")

    command_start = tokens[field_count].start()
    return line[:command_start].rstrip(), line[command_start:]


def _read_lines(path, handle: TextIO) -> Iterator[str]:
    try:
        for line in handle:
            yield line
    except (OSError, UnicodeDecodeError) as e:
        raise CrontabError(path, None, f"read failed: {e}") from e


def load_crontab(
    path,
    jobs: Optional[List[Job]] = None,
    now: Optional[datetime] = None,
    timezone=None
) -> List[Job]:
    """
    Load one crontab file into the job table.

    Args:
        path: Crontab file path
        jobs: Job table to append to (a new one if None); ids continue from it
        now: Load time, schedules start strictly after it (default: now)
        timezone: Timezone for schedules (default: local)

    Returns:
        The job table

    Raises:
        CrontabError: If the file cannot be read or a line is invalid
    """
    if jobs is None:
        jobs = []
    timezone = timezone or get_localzone()
    if now is None:
        now = datetime.now(timezone)

    try:
        handle = open(path, 'r', encoding='utf-8')
    except OSError as e:
        raise CrontabError(path, None, f"open failed: {e}") from e

    loaded = []
    with handle:
        for line_no, line in enumerate(_read_lines(path, handle)):
            line = line.strip()
            if not line or line.startswith('#'):
                continue

            try:
                schedule, command = split_line(line)
                trigger = parse_schedule(schedule, timezone)
            except ValueError as e:
                raise CrontabError(path, line_no, str(e)) from e

            cursor = ScheduleCursor(trigger, now)
            job = Job(
                id=len(jobs) + len(loaded) + 1,
                cursor=cursor,
                next_fire=cursor.advance(),
                command=command
            )
            loaded.append(job)

            next_fire = job.next_fire.astimezone(timezone).isoformat() if job.next_fire else None
            logger.debug(f"[{job.id}] {schedule} -> next run at {next_fire}")

    jobs.extend(loaded)
    logger.info(f"Loaded {len(loaded)} job(s) from {os.fspath(path)}")
    return jobs


def load_crontabs(
    paths: Iterable,
    now: Optional[datetime] = None,
    timezone=None
) -> List[Job]:
    """
    Load several crontab files, in order, into one job table.

    Args:
        paths: Crontab file paths
        now: Load time shared by every file (default: now)
        timezone: Timezone for schedules (default: local)

    Returns:
        The job table

    Raises:
        CrontabError: If any file fails to load
    """
    timezone = timezone or get_localzone()
    if now is None:
        now = datetime.now(timezone)

    jobs: List[Job] = []
    for path in paths:
        load_crontab(path, jobs, now=now, timezone=timezone)
    return jobs
