"""
Tests for loading crontab files into the job table.
"""

import logging
from datetime import datetime, timezone

import pytest

from pocketcron.crontab import CrontabError, load_crontab, load_crontabs, split_line

UTC = timezone.utc
NOW = datetime(2024, 1, 3, 12, 0, 30, tzinfo=UTC)


def write_crontab(directory, name, *lines):
    path = directory / name
    path.write_text('\n'.join(lines) + '\n')
    return path


def test_load_basic_crontab(tmp_path):
    path = write_crontab(tmp_path, 'crontab', '* * * * * echo hi', '@hourly echo bye')

    jobs = load_crontab(path, now=NOW, timezone=UTC)

    assert [job.id for job in jobs] == [1, 2]
    assert [job.command for job in jobs] == ['echo hi', 'echo bye']
    assert jobs[0].next_fire == datetime(2024, 1, 3, 12, 1, tzinfo=UTC)
    assert jobs[1].next_fire == datetime(2024, 1, 3, 13, 0, tzinfo=UTC)
    assert not any(job.running for job in jobs)


@pytest.mark.parametrize('line, schedule, command', [
    ('* * * * * echo hi', '* * * * *', 'echo hi'),
    ('*/5\t*  *\t* *   ls -l', '*/5\t*  *\t* *', 'ls -l'),
    ('0 3 * * 1 echo  "a   b"   c', '0 3 * * 1', 'echo  "a   b"   c'),
    ('@daily   printf "%s\\n"  x', '@daily', 'printf "%s\\n"  x'),
    ('  @hourly run.sh  ', '@hourly', 'run.sh'),
])
def test_split_line_preserves_command(line, schedule, command):
    assert split_line(line) == (schedule, command)


@pytest.mark.parametrize('line', [
    '* * * * *',
    '* * * *',
    '@hourly',
    '@hourly   ',
])
def test_split_line_not_enough_elements(line):
    with pytest.raises(ValueError, match='not enough elements'):
        split_line(line)


def test_command_loaded_verbatim(tmp_path):
    command = 'sh -c \'echo "two  spaces"\'  >>  /tmp/out.log'
    path = write_crontab(tmp_path, 'crontab', f'*/10 * * * *   {command}')

    jobs = load_crontab(path, now=NOW, timezone=UTC)

    assert jobs[0].command == command


def test_comments_and_blank_lines_are_skipped(tmp_path, caplog):
    path = write_crontab(
        tmp_path, 'crontab',
        '# nightly jobs',
        '',
        '    ',
        '   # indented comment',
        '@daily echo ok',
    )

    with caplog.at_level(logging.WARNING):
        jobs = load_crontab(path, now=NOW, timezone=UTC)

    assert len(jobs) == 1
    assert jobs[0].command == 'echo ok'
    assert caplog.records == []


def test_too_few_fields_is_fatal(tmp_path):
    path = write_crontab(
        tmp_path, 'crontab',
        '# header',
        '* * * * echo hi',
        '* * * * * echo fine',
    )
    jobs = []

    with pytest.raises(CrontabError) as exc_info:
        load_crontab(path, jobs, now=NOW, timezone=UTC)

    assert exc_info.value.line_no == 1
    assert str(exc_info.value).startswith(f"{path}:1: error:")
    assert jobs == []


def test_schedule_without_command_is_fatal(tmp_path):
    path = write_crontab(tmp_path, 'crontab', '0 * * *')

    with pytest.raises(CrontabError) as exc_info:
        load_crontab(path, now=NOW, timezone=UTC)

    assert str(exc_info.value) == f"{path}:0: error: not enough elements"


def test_invalid_schedule_includes_parser_message(tmp_path):
    path = write_crontab(tmp_path, 'crontab', '@daily true', '99 * * * * true')

    with pytest.raises(CrontabError) as exc_info:
        load_crontab(path, now=NOW, timezone=UTC)

    message = str(exc_info.value)
    assert message.startswith(f"{path}:1: error: ")
    assert len(message) > len(f"{path}:1: error: ")


def test_unknown_alias_is_fatal(tmp_path):
    path = write_crontab(tmp_path, 'crontab', '@reboot echo hi')

    with pytest.raises(CrontabError, match='unknown schedule alias'):
        load_crontab(path, now=NOW, timezone=UTC)


def test_missing_file(tmp_path):
    path = tmp_path / 'does-not-exist'

    with pytest.raises(CrontabError) as exc_info:
        load_crontab(path, now=NOW, timezone=UTC)

    assert exc_info.value.line_no is None
    assert str(exc_info.value).startswith(f"{path}: open failed:")


def test_undecodable_file(tmp_path):
    path = tmp_path / 'crontab'
    path.write_bytes(b'* * * * * echo \xff\xfe\n')

    with pytest.raises(CrontabError, match='read failed'):
        load_crontab(path, now=NOW, timezone=UTC)


def test_ids_continue_across_files(tmp_path):
    first = write_crontab(tmp_path, 'first', '* * * * * a', '* * * * * b')
    second = write_crontab(tmp_path, 'second', '# only one', '@daily c')

    jobs = load_crontabs([first, second], now=NOW, timezone=UTC)

    assert [(job.id, job.command) for job in jobs] == [(1, 'a'), (2, 'b'), (3, 'c')]


def test_bad_second_file_fails_whole_load(tmp_path):
    first = write_crontab(tmp_path, 'first', '* * * * * a')
    second = write_crontab(tmp_path, 'second', 'garbage')

    with pytest.raises(CrontabError) as exc_info:
        load_crontabs([first, second], now=NOW, timezone=UTC)

    assert exc_info.value.path == str(second)


def test_schedules_start_after_load_time(tmp_path):
    # Exactly on a minute boundary: that minute has already been reached
    now = datetime(2024, 1, 3, 12, 0, 0, tzinfo=UTC)
    path = write_crontab(tmp_path, 'crontab', '* * * * * a', '0 12 * * * b')

    jobs = load_crontab(path, now=now, timezone=UTC)

    assert jobs[0].next_fire == datetime(2024, 1, 3, 12, 1, tzinfo=UTC)
    assert jobs[1].next_fire == datetime(2024, 1, 4, 12, 0, tzinfo=UTC)
    assert all(job.next_fire > now for job in jobs)
