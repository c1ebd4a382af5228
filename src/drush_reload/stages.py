"""
Pipeline stages: table enumeration, per-table dump and import, cleanup
"""

import logging
import os
import shutil
import tempfile
import threading
import time
import zlib
from dataclasses import dataclass
from typing import Iterable, List, Optional

from tqdm import tqdm

from .drush import DrushRunner
from .errors import (
    CleanupError,
    DropError,
    DrushCommandError,
    DumpError,
    PostMigrationError,
    TableImportError,
    TableListError,
)
from .targets import Target

logger = logging.getLogger(__name__)

# Entries the table listing may contain that are not tables
SENTINEL_TABLES = frozenset(['', '.'])
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class DumpJob:
    table: str
    output_path: str


@dataclass(frozen=True)
class DumpResult:
    table: str
    file_path: str


class ProgressMeter:
    """Count completed imports and render them on a progress bar

    increment() is safe to call from several import workers at once; every
    call adds exactly one.
    """

    def __init__(self, total: int, label: str = 'Reloading', disable: Optional[bool] = None):
        self.total = total
        self.count = 0
        self._lock = threading.Lock()
        self._bar = tqdm(total=total, desc=label, unit='table', ncols=80, disable=disable)

    def increment(self) -> int:
        with self._lock:
            self.count += 1
            self._bar.update(1)
            return self.count

    def close(self):
        self._bar.close()


def filter_tables(names: Iterable[str], skip_tables: Iterable[str] = ()) -> List[str]:
    """Drop sentinels, skipped tables and duplicates, keeping listing order"""
    skip = set(skip_tables)
    seen = set()
    tables = []
    for name in names:
        name = name.strip()
        if name in SENTINEL_TABLES or name in skip or name in seen:
            continue
        seen.add(name)
        tables.append(name)
    return tables


def enumerate_tables(runner: DrushRunner, source: Target, skip_tables: Iterable[str] = ()) -> List[str]:
    """List the tables to migrate from the source"""
    try:
        output = runner.list_tables(source.alias)
    except DrushCommandError as err:
        raise TableListError(f"Could not list tables on {source.alias}: {err}") from err

    try:
        names = output.decode('utf-8').splitlines()
    except UnicodeDecodeError as err:
        raise TableListError(f"Table listing on {source.alias} is not valid UTF-8: {err}") from err
    tables = filter_tables(names, skip_tables)
    logger.info(f"Found {len(tables)} tables on {source.alias}")
    return tables


def dump_job_for(table: str, dump_dir: str) -> DumpJob:
    return DumpJob(table=table, output_path=os.path.join(dump_dir, f"{table}.sql"))


def write_decompressed(data: bytes, output_path: str):
    """Gunzip data into output_path chunk by chunk

    Raises zlib.error on corrupt input, EOFError on a truncated stream and
    OSError on write failures.
    """
    decompressor = zlib.decompressobj(zlib.MAX_WBITS | 16)
    view = memoryview(data)
    with open(output_path, 'wb') as f:
        for start in range(0, len(view), CHUNK_SIZE):
            f.write(decompressor.decompress(view[start:start + CHUNK_SIZE]))
        f.write(decompressor.flush())
    if not decompressor.eof:
        raise EOFError("compressed dump ended before the end-of-stream marker")


def dump_table(runner: DrushRunner, source: Target, job: DumpJob) -> DumpResult:
    """Dump one table from the source into job.output_path

    Returns only once the decompressed file has been written and closed.
    """
    logger.debug(f"Dumping {job.table}.")
    try:
        compressed = runner.sql_dump(source.alias, job.table)
    except DrushCommandError as err:
        raise DumpError(job.table, str(err)) from err

    try:
        write_decompressed(compressed, job.output_path)
    except (zlib.error, EOFError) as err:
        raise DumpError(job.table, f"could not decompress dump: {err}") from err
    except OSError as err:
        raise DumpError(job.table, f"could not write {job.output_path}: {err}") from err

    return DumpResult(table=job.table, file_path=job.output_path)


def import_dump(runner: DrushRunner, dest: Target, result: DumpResult,
                progress: Optional[ProgressMeter] = None):
    """Load a dumped table into the destination"""
    logger.debug(f"Importing {result.table}.")
    try:
        runner.sql_import(dest.alias, result.file_path)
    except DrushCommandError as err:
        raise TableImportError(result.table, str(err)) from err

    if progress is not None:
        progress.increment()


def make_dump_dir(source: str, dest: str, root: Optional[str] = None) -> str:
    """Create the per-run directory <root>/<unix-ms>-<source>-<dest>"""
    name = f"{int(time.time() * 1000)}-{source.lstrip('@')}-{dest.lstrip('@')}"
    path = os.path.join(root or tempfile.gettempdir(), name)
    os.makedirs(path)
    logger.debug(f"Created dump directory {path}")
    return path


def remove_dump_dir(path: str) -> bool:
    """Remove the dump directory; failures are logged, never raised"""
    try:
        shutil.rmtree(path)
    except OSError as err:
        logger.warning(str(CleanupError(f"The temporary dump directory {path} was not correctly removed: {err}")))
        return False
    logger.info("Dump directory removed")
    return True


def drop_tables(runner: DrushRunner, dest: Target):
    logger.info(f"Dropping all tables on {dest.alias}")
    try:
        runner.sql_drop(dest.alias)
    except DrushCommandError as err:
        raise DropError(f"Could not drop tables on {dest.alias}: {err}") from err


def post_migrate(runner: DrushRunner, dest: Target):
    """Run pending database updates on the destination"""
    logger.info(f"Running database updates on {dest.alias}")
    try:
        runner.update_db(dest.alias)
    except DrushCommandError as err:
        raise PostMigrationError(f"Database updates on {dest.alias} failed: {err}") from err
