"""
Two-stage dump/import pipeline

Dumps run on a pool sized to the source's cores, imports on a pool sized to
the destination's cores. A finished dump hands its result straight to the
import pool and frees its own worker slot. One WaitGroup counts outstanding
jobs across both pools, so the run only drains once both are empty.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Iterable, List, Optional

from .drush import DrushRunner
from .errors import ReloadError, describe
from .stages import (
    DumpJob,
    DumpResult,
    ProgressMeter,
    dump_job_for,
    dump_table,
    enumerate_tables,
    import_dump,
)
from .targets import Target

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    IDLE = 'idle'
    ENUMERATING = 'enumerating'
    RUNNING = 'running'
    DRAINING = 'draining'
    DONE = 'done'
    FAILED = 'failed'


class WaitGroup:
    """Counter of outstanding jobs; wait() returns when it reaches zero"""

    def __init__(self):
        self._count = 0
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def add(self, n: int = 1):
        with self._cond:
            self._count += n

    def done(self):
        with self._cond:
            if self._count <= 0:
                raise ValueError("WaitGroup.done() called more times than add()")
            self._count -= 1
            if self._count == 0:
                self._cond.notify_all()

    def wait(self):
        with self._cond:
            while self._count > 0:
                self._cond.wait()


class ReloadPipeline:
    """Copy every source table into the destination, dump then import

    run() returns the imported table names, or raises the first error any
    job hit. Jobs that have not started when a failure is recorded are
    skipped; jobs already running finish before run() raises.
    """

    def __init__(self, runner: DrushRunner, source: Target, dest: Target, dump_dir: str,
                 skip_tables: Iterable[str] = (), progress_disable: Optional[bool] = None):
        self.runner = runner
        self.source = source
        self.dest = dest
        self.dump_dir = dump_dir
        self.skip_tables = list(skip_tables)
        self.progress_disable = progress_disable

        self.state = PipelineState.IDLE
        self.tables: List[str] = []
        self.imported: List[str] = []
        self.progress: Optional[ProgressMeter] = None
        self.error: Optional[BaseException] = None

        self.max_active_dumps = 0
        self.max_active_imports = 0
        self._active_dumps = 0
        self._active_imports = 0

        self._lock = threading.Lock()
        self._abort = threading.Event()
        self._pending = WaitGroup()
        self._dump_pool: Optional[ThreadPoolExecutor] = None
        self._import_pool: Optional[ThreadPoolExecutor] = None

    @property
    def failed(self) -> bool:
        return self._abort.is_set()

    def _fail(self, err: BaseException, table: str):
        with self._lock:
            if self.error is not None:
                logger.debug(f"Ignoring later failure {describe(err, table)}")
                return
            self.error = err
            self.state = PipelineState.FAILED
        self._abort.set()
        logger.error(describe(err, table))

    def _enter(self, stage: str) -> None:
        with self._lock:
            if stage == 'dump':
                self._active_dumps += 1
                self.max_active_dumps = max(self.max_active_dumps, self._active_dumps)
            else:
                self._active_imports += 1
                self.max_active_imports = max(self.max_active_imports, self._active_imports)

    def _leave(self, stage: str) -> None:
        with self._lock:
            if stage == 'dump':
                self._active_dumps -= 1
            else:
                self._active_imports -= 1

    def _dump_worker(self, job: DumpJob):
        try:
            if self.failed:
                return
            self._enter('dump')
            try:
                result = dump_table(self.runner, self.source, job)
            finally:
                self._leave('dump')
            if self.failed:
                return
            # Registered before this dump's own slot is released, so the
            # outstanding count cannot touch zero in between.
            self._pending.add()
            try:
                self._import_pool.submit(self._import_worker, result)
            except BaseException:
                self._pending.done()
                raise
        except Exception as err:
            self._fail(err, job.table)
        finally:
            self._pending.done()

    def _import_worker(self, result: DumpResult):
        try:
            if self.failed:
                return
            self._enter('import')
            try:
                import_dump(self.runner, self.dest, result, self.progress)
            finally:
                self._leave('import')
            with self._lock:
                self.imported.append(result.table)
        except Exception as err:
            self._fail(err, result.table)
        finally:
            self._pending.done()

    def run(self) -> List[str]:
        if self.state is not PipelineState.IDLE:
            raise ReloadError("A pipeline can only be run once")

        self.state = PipelineState.ENUMERATING
        try:
            self.tables = enumerate_tables(self.runner, self.source, self.skip_tables)
        except ReloadError:
            self.state = PipelineState.FAILED
            raise

        self.progress = ProgressMeter(len(self.tables), f"Reloading {self.dest.alias}",
                                      disable=self.progress_disable)
        self._dump_pool = ThreadPoolExecutor(max_workers=max(1, self.source.core_count),
                                             thread_name_prefix='dump')
        self._import_pool = ThreadPoolExecutor(max_workers=max(1, self.dest.core_count),
                                               thread_name_prefix='import')
        logger.info(f"Reloading {len(self.tables)} tables with {self.source.core_count} dump "
                    f"and {self.dest.core_count} import workers")

        try:
            # Scheduling starts only now that the full table list is known.
            with self._lock:
                if self.state is PipelineState.ENUMERATING:
                    self.state = PipelineState.RUNNING
            for table in self.tables:
                self._pending.add()
                self._dump_pool.submit(self._dump_worker, dump_job_for(table, self.dump_dir))

            self._pending.wait()
            with self._lock:
                if self.error is None:
                    self.state = PipelineState.DRAINING
        except BaseException:
            # Interrupted: queued jobs see the abort flag and return at once.
            with self._lock:
                self.state = PipelineState.FAILED
            self._abort.set()
            raise
        finally:
            self._dump_pool.shutdown(wait=True)
            self._import_pool.shutdown(wait=True)
            self.progress.close()

        logger.debug(f"Peak concurrency: {self.max_active_dumps} dumps, {self.max_active_imports} imports")
        if self.error is not None:
            raise self.error

        self.state = PipelineState.DONE
        return list(self.imported)
