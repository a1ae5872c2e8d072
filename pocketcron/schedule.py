"""
Schedule expressions and lazy fire-time cursors.

Crontab schedules are handed to APScheduler's CronTrigger, which only
computes fire times here - nothing is ever registered with an APScheduler
scheduler. The trigger's native grammar carries seconds and years, so the
five crontab fields are wrapped with an implicit "0" second and "*" year.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional

from apscheduler.triggers.cron import CronTrigger
from tzlocal import get_localzone

logger = logging.getLogger(__name__)

UTC = timezone.utc

# Shorthand schedules understood in the first column of a crontab line
ALIASES = {
    '@yearly': '0 0 1 1 *',
    '@annually': '0 0 1 1 *',
    '@monthly': '0 0 1 * *',
    '@weekly': '0 0 * * 0',
    '@daily': '0 0 * * *',
    '@midnight': '0 0 * * *',
    '@hourly': '0 * * * *',
}

# Crontab numbering: 0 and 7 are Sunday
_WEEKDAY_NAMES = ['sun', 'mon', 'tue', 'wed', 'thu', 'fri', 'sat']


class ScheduleError(ValueError):
    """Raised when a schedule expression cannot be parsed."""
    pass


def _translate_weekday_item(item: str) -> List[str]:
    """
    Translate one comma-separated day-of-week item to weekday names.

    CronTrigger counts weekdays from Monday, crontab counts from Sunday.
    Names are left alone since both sides agree on them.
    """
    expr, _, step = item.partition('/')
    step_value = 1
    if step:
        if not step.isdigit() or int(step) == 0:
            raise ScheduleError(f'invalid step "{step}" in day of week field')
        step_value = int(step)

    if expr == '*':
        if not step:
            return [item]
        first, last = 0, 6
    elif '-' in expr:
        start, _, end = expr.partition('-')
        if not (start.isdigit() and end.isdigit()):
            return [item]
        first, last = int(start), int(end)
    elif expr.isdigit():
        first = int(expr)
        last = 6 if step else first
    else:
        return [item]

    if not (0 <= first <= 7 and 0 <= last <= 7):
        raise ScheduleError(f'day of week "{item}" is out of range (0-7)')
    if first > last:
        raise ScheduleError(f'day of week range "{item}" is reversed')

    return [_WEEKDAY_NAMES[value % 7] for value in range(first, last + 1, step_value)]


def translate_day_of_week(field: str) -> str:
    """
    Rewrite a crontab day-of-week field for CronTrigger.

    Args:
        field: Day-of-week field as written in the crontab (e.g. "1-5")

    Returns:
        Equivalent CronTrigger expression (e.g. "mon,tue,wed,thu,fri")
    """
    names = []
    for item in field.split(','):
        for name in _translate_weekday_item(item):
            if name not in names:
                names.append(name)
    return ','.join(names)


def parse_schedule(expression: str, timezone=None) -> CronTrigger:
    """
    Parse a crontab schedule into a CronTrigger.

    Args:
        expression: Either an @alias or five whitespace-separated fields
            (minute, hour, day of month, month, day of week)
        timezone: Timezone fire times are computed in (default: local)

    Returns:
        CronTrigger producing the schedule's fire times

    Raises:
        ScheduleError: If the expression is malformed
    """
    expression = expression.strip()
    if expression.startswith('@'):
        alias = expression.lower()
        if alias not in ALIASES:
            raise ScheduleError(f"unknown schedule alias '{expression}'")
        expression = ALIASES[alias]

    fields = expression.split()
    if len(fields) != 5:
        raise ScheduleError(
            f"wrong number of fields; got {len(fields)}, expected 5"
        )
    minute, hour, day, month, day_of_week = fields

    try:
        return CronTrigger(
            second='0',
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=translate_day_of_week(day_of_week),
            year='*',
            timezone=timezone or get_localzone()
        )
    except ScheduleError:
        raise
    except ValueError as e:
        raise ScheduleError(str(e)) from e


def next_fire_after(trigger: CronTrigger, after: datetime) -> Optional[datetime]:
    """
    Compute the first fire time strictly after a timestamp.

    The search runs on UTC instants. Wall-clock arithmetic on local times
    drops the `fold` of the repeated hour when clocks go back, which
    would hand out the same instant twice or step an hour backwards.

    Args:
        trigger: Trigger to evaluate
        after: Timezone-aware reference time

    Returns:
        Next fire time in UTC, or None if the trigger can never fire again
    """
    after = after.astimezone(UTC)
    start = after
    while True:
        fire_time = trigger.get_next_fire_time(None, start + timedelta(microseconds=1))
        if fire_time is None:
            return None

        # Inside a repeated hour the trigger yields the first occurrence of
        # the wall time; the second occurrence (fold=1) may be the one ahead
        for candidate in (fire_time, fire_time.replace(fold=1)):
            candidate = candidate.astimezone(UTC)
            if candidate > after:
                return candidate

        start += timedelta(minutes=1)


class ScheduleCursor:
    """
    Lazy, forward-only producer of a schedule's fire times.

    The only state is the position reached so far, kept as a UTC instant,
    so every value handed out is strictly later than the previous one.
    Once the trigger runs dry the cursor stays exhausted.
    """

    def __init__(self, trigger: CronTrigger, start: datetime):
        self.trigger = trigger
        self._last = start.astimezone(UTC)
        self._exhausted = False

    @property
    def last(self) -> datetime:
        """Last fire time handed out (the start time before the first one)."""
        return self._last

    def advance(self) -> Optional[datetime]:
        """Return the next fire time (UTC), or None once the schedule is exhausted."""
        if self._exhausted:
            return None

        fire_time = next_fire_after(self.trigger, self._last)
        if fire_time is None:
            self._exhausted = True
            return None
        if fire_time <= self._last:
            raise ScheduleError(
                f"schedule moved backwards: {fire_time.isoformat()} after {self._last.isoformat()}"
            )

        self._last = fire_time
        return fire_time

    def __iter__(self) -> Iterator[datetime]:
        return self

    def __next__(self) -> datetime:
        fire_time = self.advance()
        if fire_time is None:
            raise StopIteration
        return fire_time

    def __repr__(self):
        return f"ScheduleCursor(trigger={self.trigger}, last={self._last.isoformat()})"
