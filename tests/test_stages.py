"""
Tests for table enumeration, dump and import stages, and cleanup helpers.
"""

import gzip
import os
import sys
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from drush_reload.errors import (
    DropError,
    DumpError,
    PostMigrationError,
    TableImportError,
    TableListError,
)
from drush_reload.stages import (
    DumpResult,
    ProgressMeter,
    drop_tables,
    dump_job_for,
    dump_table,
    enumerate_tables,
    filter_tables,
    import_dump,
    make_dump_dir,
    post_migrate,
    remove_dump_dir,
    write_decompressed,
)
from drush_reload.targets import Target
from fake_drush import FakeDrush

SOURCE = Target('site.prod', is_local=False, core_count=2)
DEST = Target('site.local', is_local=True, core_count=2)


def test_filter_removes_sentinel():
    assert filter_tables(['node', 'user', '.'], []) == ['node', 'user']


def test_filter_applies_skip_list():
    assert filter_tables(['cache', 'queue'], ['queue']) == ['cache']


def test_filter_removes_blanks_and_duplicates():
    assert filter_tables(['node', '', ' node ', 'users', '.', 'users\r']) == ['node', 'users']


def test_enumerate_tables():
    runner = FakeDrush(tables=['cache', 'node', 'watchdog', '.'])
    assert enumerate_tables(runner, SOURCE, ['watchdog']) == ['cache', 'node']


def test_enumerate_tables_rejects_invalid_utf8():
    runner = FakeDrush()
    with patch.object(runner, 'list_tables', return_value=b'node\n\xff\xfeusers\n'):
        with pytest.raises(TableListError):
            enumerate_tables(runner, SOURCE)


def test_dump_job_path(tmp_path):
    job = dump_job_for('node', str(tmp_path))
    assert job.output_path == os.path.join(str(tmp_path), 'node.sql')


def test_dump_table_writes_decompressed_file(tmp_path):
    runner = FakeDrush(tables=['node'])
    job = dump_job_for('node', str(tmp_path))

    result = dump_table(runner, SOURCE, job)

    assert result == DumpResult(table='node', file_path=job.output_path)
    assert Path(job.output_path).read_bytes() == b"CREATE TABLE `node` (id int);\n"
    assert runner.commands('sql-dump') == [('sql-dump', 'site.prod', 'node')]


def test_write_decompressed_large_payload(tmp_path):
    payload = os.urandom(300 * 1024)
    out = tmp_path / 'big.sql'

    write_decompressed(gzip.compress(payload), str(out))

    assert out.read_bytes() == payload


def test_dump_table_command_failure(tmp_path):
    runner = FakeDrush(fail_dump=['user'])
    with pytest.raises(DumpError) as excinfo:
        dump_table(runner, SOURCE, dump_job_for('user', str(tmp_path)))
    assert excinfo.value.table == 'user'


def test_dump_table_corrupt_stream(tmp_path):
    runner = FakeDrush(corrupt_dump=['node'])
    with pytest.raises(DumpError, match='decompress'):
        dump_table(runner, SOURCE, dump_job_for('node', str(tmp_path)))


def test_dump_table_truncated_stream(tmp_path):
    runner = FakeDrush()
    truncated = gzip.compress(b'x' * 1000)[:-8]
    with patch.object(runner, 'sql_dump', return_value=truncated):
        with pytest.raises(DumpError):
            dump_table(runner, SOURCE, dump_job_for('node', str(tmp_path)))


def test_dump_table_write_failure(tmp_path):
    runner = FakeDrush()
    job = dump_job_for('node', str(tmp_path / 'missing-dir'))
    with pytest.raises(DumpError, match='could not write'):
        dump_table(runner, SOURCE, job)


def test_import_dump_ticks_progress(tmp_path):
    dump = tmp_path / 'node.sql'
    dump.write_bytes(b'SELECT 1;\n')
    runner = FakeDrush()
    meter = ProgressMeter(1, disable=True)

    import_dump(runner, DEST, DumpResult('node', str(dump)), meter)

    assert meter.count == 1
    assert runner.imported == ['node']


def test_import_dump_failure_does_not_tick(tmp_path):
    dump = tmp_path / 'node.sql'
    dump.write_bytes(b'SELECT 1;\n')
    meter = ProgressMeter(1, disable=True)

    with pytest.raises(TableImportError):
        import_dump(FakeDrush(fail_import=['node']), DEST, DumpResult('node', str(dump)), meter)
    assert meter.count == 0


def test_progress_meter_concurrent_increments():
    meter = ProgressMeter(800, disable=True)

    def tick():
        for _ in range(100):
            meter.increment()

    threads = [threading.Thread(target=tick) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    meter.close()

    assert meter.count == 800


def test_make_and_remove_dump_dir(tmp_path):
    path = make_dump_dir('@site.prod', 'site.local', str(tmp_path))
    name = os.path.basename(path)
    timestamp, rest = name.split('-', 1)

    assert os.path.isdir(path)
    assert timestamp.isdigit()
    assert rest == 'site.prod-site.local'

    Path(path, 'node.sql').write_text('x')
    assert remove_dump_dir(path) is True
    assert not os.path.exists(path)


def test_remove_missing_dump_dir_is_logged(tmp_path):
    assert remove_dump_dir(str(tmp_path / 'gone')) is False


def test_drop_tables_failure():
    with pytest.raises(DropError):
        drop_tables(FakeDrush(fail_drop=True), DEST)


def test_post_migrate_runs_updb():
    runner = FakeDrush()
    post_migrate(runner, DEST)
    assert runner.commands('updb') == [('updb', 'site.local')]

    with pytest.raises(PostMigrationError):
        post_migrate(FakeDrush(fail_updb=True), DEST)
