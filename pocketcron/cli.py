"""
Command-line entry point.

    pocketcron [-v] [--log-file PATH] [--check] CRONTAB [CRONTAB ...]

Loads every crontab, then runs the scheduler loop until killed. A crontab
that fails to load stops the process before anything is scheduled.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pocketcron.config import SchedulerConfig
from pocketcron.crontab import CrontabError, load_crontabs
from pocketcron.jobs import JobRunner
from pocketcron.service import SchedulerService

logger = logging.getLogger(__name__)

# Handlers installed by setup_logging, replaced on the next call
_handlers: List[logging.Handler] = []


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Setup logging configuration."""
    root_logger = logging.getLogger()
    for handler in _handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)
    _handlers.append(console_handler)

    # File handler
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        _handlers.append(file_handler)

    root_logger.setLevel(level)
    for handler in _handlers:
        root_logger.addHandler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='pocketcron',
        description="Run shell commands on crontab schedules"
    )
    parser.add_argument(
        'crontabs',
        nargs='+',
        metavar='crontab',
        help='Crontab file(s) to load'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        help='Also write logs to this file'
    )
    parser.add_argument(
        '--check',
        action='store_true',
        help='Load the crontabs, print the jobs and exit without running them'
    )
    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = SchedulerConfig.from_env()
    except ValueError as e:
        setup_logging()
        logger.error(str(e))
        sys.exit(1)

    if args.verbose:
        config.log_level = "DEBUG"
    if args.log_file:
        config.log_file = args.log_file
    setup_logging(config.log_level, config.log_file)

    try:
        jobs = load_crontabs(args.crontabs)
    except CrontabError as e:
        logger.error(str(e))
        sys.exit(1)

    service = SchedulerService(
        jobs,
        runner=JobRunner(shell=config.shell),
        max_sleep=config.max_sleep
    )

    if args.check:
        service.print_jobs()
        return

    service.install_signal_handlers()
    service.run_forever()


if __name__ == '__main__':
    main()
