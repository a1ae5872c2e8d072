"""
Scheduler configuration.

Runtime settings come from environment variables, optionally set in a
.env file in the working directory. Command-line flags override them.

Variables:
    POCKETCRON_LOG_LEVEL  - Log level name (default: INFO)
    POCKETCRON_LOG_FILE   - Also write logs to this file (default: none)
    POCKETCRON_SHELL      - Shell used to run commands (default: /bin/sh)
    POCKETCRON_MAX_SLEEP  - Longest sleep between loop passes, in seconds
                            (default: 60, at most 86400)
"""

import logging
import math
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from pocketcron.jobs import DEFAULT_SHELL

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MAX_SLEEP_SECONDS = 60.0
MAX_SLEEP_LIMIT_SECONDS = 86400.0


@dataclass
class SchedulerConfig:
    """Runtime settings for the scheduler process."""
    log_level: str = "INFO"
    log_file: Optional[str] = None
    shell: str = DEFAULT_SHELL
    max_sleep_seconds: float = DEFAULT_MAX_SLEEP_SECONDS

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SchedulerConfig':
        """
        Build configuration from environment variables.

        Args:
            environ: Variables to read (default: os.environ)

        Returns:
            Validated configuration

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ

        config = cls(
            log_level=env.get('POCKETCRON_LOG_LEVEL', 'INFO').upper(),
            log_file=env.get('POCKETCRON_LOG_FILE') or None,
            shell=env.get('POCKETCRON_SHELL') or DEFAULT_SHELL
        )

        max_sleep = env.get('POCKETCRON_MAX_SLEEP')
        if max_sleep:
            try:
                config.max_sleep_seconds = float(max_sleep)
            except ValueError:
                raise ValueError(
                    f"POCKETCRON_MAX_SLEEP must be a number of seconds, got '{max_sleep}'"
                ) from None

        errors = config.validate()
        if errors:
            raise ValueError("Invalid configuration: " + "; ".join(errors))

        logger.debug(f"Loaded configuration: {config}")
        return config

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not isinstance(logging.getLevelName(self.log_level), int):
            errors.append(f"unknown log level '{self.log_level}'")

        if not self.shell or not self.shell.strip():
            errors.append("'shell' cannot be empty")

        if not math.isfinite(self.max_sleep_seconds):
            errors.append("'max_sleep_seconds' must be a finite number")
        elif self.max_sleep_seconds <= 0:
            errors.append("'max_sleep_seconds' must be positive")
        elif self.max_sleep_seconds > MAX_SLEEP_LIMIT_SECONDS:
            errors.append(
                f"'max_sleep_seconds' cannot exceed {MAX_SLEEP_LIMIT_SECONDS:g}"
            )

        return errors

    @property
    def max_sleep(self) -> timedelta:
        return timedelta(seconds=self.max_sleep_seconds)
