#!/usr/bin/env python3
"""
Job Driver
Splits the input, runs map tasks on a worker pool, waits for the map barrier,
runs reduce tasks over the shuffled partitions, retries failed attempts and
publishes the output directory atomically
"""

import logging
import os
import shutil
import tempfile
import threading
from concurrent.futures import FIRST_COMPLETED, CancelledError, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from wordcount_engine.common.config import JobConfig
from wordcount_engine.common.errors import (
    JobCancelled, JobConfigError, JobFailure, MapReduceError, OutputWriteError, TaskExecutionError
)
from wordcount_engine.coordinator.job_manager import Job, JobManager, JobStatus, Task
from wordcount_engine.coordinator.metrics import JobMetrics, MetricsCollector
from wordcount_engine.coordinator.shuffle import ShuffleEngine
from wordcount_engine.worker.function_loader import FunctionLoader, JobFunctions
from wordcount_engine.worker.map_executor import MapExecutor, MapResult
from wordcount_engine.worker.reduce_executor import ReduceExecutor, ReduceResult

logger = logging.getLogger(__name__)

SUCCESS_MARKER = '_SUCCESS'

# How often the driver re-checks for cancellation while tasks are running
POLL_INTERVAL = 0.2


@dataclass
class JobResult:
    """Outcome of a successful job run"""
    job_id: str
    status: JobStatus
    output_path: str
    output_files: List[str] = field(default_factory=list)
    counters: Dict[str, int] = field(default_factory=dict)
    metrics: Optional[JobMetrics] = None

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.COMPLETED


def _remove_tree(path: str):
    """Delete a directory tree, logging instead of raising when that fails"""
    if not path or not os.path.exists(path):
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning(f"Cleanup failed for {path}: {e}")


class JobDriver:
    """Runs one word count job from input splitting to output commit"""

    def __init__(self, config: JobConfig, functions: Optional[JobFunctions] = None,
                 metrics: Optional[MetricsCollector] = None,
                 job_manager: Optional[JobManager] = None):
        self.config = config.validate()
        self.functions = functions
        self.metrics = metrics or MetricsCollector()
        self.job_manager = job_manager or JobManager()
        self.job: Optional[Job] = None

        self._cancel_requested = threading.Event()
        # Set on cancel or on a permanent task failure; running tasks stop at the next record
        self._stop_event = threading.Event()

    def cancel(self):
        """
        Cancel all outstanding tasks. run() raises JobCancelled and publishes nothing.

        Only sets events, so it is safe to call from a signal handler.
        """
        self._cancel_requested.set()
        self._stop_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested.is_set()

    def run(self) -> JobResult:
        """
        Run the job to completion

        Returns:
            JobResult of the completed job

        Raises:
            InputError: If the input is missing or unreadable (before any dispatch)
            OutputWriteError: If the output path already exists (before any dispatch)
            JobFailure: If a task exhausted its retries or the output commit failed
            JobCancelled: If cancel() was called before the job completed
        """
        config = self.config
        functions = self.functions or self._load_functions()
        output_path = os.path.abspath(config.output_path)

        job = self.job_manager.create_job(config)
        self.job = job
        logger.info(f"Job {job.job_id} ({config.job_name}): input={config.input_paths} output={output_path}")

        try:
            map_tasks = self.job_manager.generate_map_tasks(job)
            if os.path.exists(output_path):
                raise OutputWriteError(f"Output path already exists: {output_path}")
        except MapReduceError as e:
            self.job_manager.set_job_status(job.job_id, JobStatus.FAILED, str(e))
            logger.error(f"Job {job.job_id} rejected: {e}")
            raise
        reduce_tasks = self.job_manager.generate_reduce_tasks(job)

        staging_dir = os.path.join(os.path.dirname(output_path),
                                   f".{os.path.basename(output_path)}._temporary-{job.job_id}")
        work_dir = None
        shuffle = None
        succeeded = False
        try:
            try:
                os.makedirs(staging_dir)
            except OSError as e:
                raise OutputWriteError(f"Cannot create staging directory {staging_dir}: {e}") from e
            try:
                work_dir = tempfile.mkdtemp(prefix=f"{job.job_id}-", dir=config.work_dir)
            except OSError as e:
                raise JobFailure(f"Cannot create work directory in {config.work_dir}: {e}") from e

            shuffle = ShuffleEngine(config.num_reduce_partitions, len(map_tasks),
                                    merge_factor=config.merge_factor, scratch_dir=work_dir)
            input_size = sum(os.path.getsize(path) for path in job.input_files)
            self.metrics.start_job(job.job_id, len(map_tasks), len(reduce_tasks),
                                   config.use_combiner, input_size)

            # MAP PHASE
            self._check_cancelled()
            self.job_manager.set_job_status(job.job_id, JobStatus.MAP_PHASE)
            self._run_phase(
                job, map_tasks,
                execute=lambda task, attempt: self._execute_map(functions, work_dir, task, attempt),
                on_success=lambda task, result: self._on_map_success(shuffle, task, result)
            )
            self.metrics.end_map_phase(job.job_id)

            # REDUCE PHASE, only after every map task committed
            self._check_cancelled()
            self.metrics.start_reduce_phase(job.job_id, shuffle.intermediate_size_bytes())
            self.job_manager.set_job_status(job.job_id, JobStatus.REDUCE_PHASE)
            reduce_results: List[ReduceResult] = []
            self._run_phase(
                job, reduce_tasks,
                execute=lambda task, attempt: self._execute_reduce(functions, shuffle, staging_dir, task, attempt),
                on_success=lambda task, result: self._on_reduce_success(shuffle, task, result, reduce_results)
            )
            self.metrics.end_reduce_phase(job.job_id)

            self._check_cancelled()
            self._commit_output(staging_dir, output_path)
            succeeded = True

        except JobCancelled:
            self._abort(job, shuffle, JobStatus.CANCELLED, "cancelled")
            logger.warning(f"Job {job.job_id} cancelled, output discarded")
            raise
        except MapReduceError as e:
            self._abort(job, shuffle, JobStatus.FAILED, str(e))
            logger.error(f"Job {job.job_id} failed: {e}")
            if isinstance(e, JobFailure):
                raise
            raise JobFailure(str(e)) from e
        except Exception as e:
            self._abort(job, shuffle, JobStatus.FAILED, str(e))
            logger.exception(f"Job {job.job_id} failed with an unexpected error")
            raise JobFailure(f"Job {job.job_id} failed: {e}") from e
        finally:
            _remove_tree(staging_dir)
            _remove_tree(work_dir)
            self.metrics.end_job(job.job_id, output_path if succeeded else None)

        self.job_manager.set_job_status(job.job_id, JobStatus.COMPLETED)
        self.metrics.log_summary(job.job_id)
        logger.info(f"Job {job.job_id} completed successfully")

        metrics = self.metrics.get_metrics(job.job_id)
        output_files = sorted(os.path.join(output_path, os.path.basename(r.output_file)) for r in reduce_results)
        return JobResult(
            job_id=job.job_id,
            status=JobStatus.COMPLETED,
            output_path=output_path,
            output_files=output_files,
            counters=dict(metrics.counters) if metrics else {},
            metrics=metrics
        )

    def _load_functions(self) -> JobFunctions:
        try:
            return FunctionLoader(self.config.job_file).load()
        except (OSError, ImportError, AttributeError) as e:
            raise JobConfigError(f"Cannot load job functions from {self.config.job_file}: {e}") from e

    def _check_cancelled(self):
        if self._cancel_requested.is_set():
            raise JobCancelled(f"Job {self.job.job_id} cancelled")

    def _abort(self, job: Job, shuffle: Optional[ShuffleEngine], status: JobStatus, reason: str):
        """Stop remaining work, release reducers waiting on the shuffle and record the final status"""
        self._stop_event.set()
        if shuffle is not None:
            shuffle.abort(reason)
        self.job_manager.set_job_status(job.job_id, status, reason)

    def _run_phase(self, job: Job, tasks: List[Task],
                   execute: Callable[[Task, int], object],
                   on_success: Callable[[Task, object], None]):
        """
        Run every task of one phase, retrying failed attempts.

        Blocks until every task reached a terminal state (the phase barrier).

        Raises:
            JobCancelled: If the job was cancelled
            JobFailure: If any task failed permanently
        """
        if not tasks:
            return

        failed: List[str] = []
        failed_attempts = 0
        futures = {}
        max_workers = min(self.config.max_workers, len(tasks))

        with ThreadPoolExecutor(max_workers=max_workers,
                                thread_name_prefix=f"{tasks[0].task_type}-worker") as pool:

            def submit(task):
                attempt = self.job_manager.mark_task_running(job.job_id, task)
                logger.debug(f"Dispatching {task.task_type} task {task.task_id} attempt {attempt}")
                futures[pool.submit(execute, task, attempt)] = (task, attempt)

            for task in tasks:
                submit(task)

            try:
                while futures:
                    if self._stop_event.is_set():
                        # Drop attempts that have not started yet
                        for future in list(futures):
                            if future.cancel():
                                futures.pop(future)

                    done, _ = wait(list(futures), timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)
                    for future in done:
                        task, attempt = futures.pop(future)
                        try:
                            result = future.result()
                        except (JobCancelled, CancelledError):
                            self.job_manager.mark_task_failed(job.job_id, task, "cancelled", retryable=False)
                            continue
                        except Exception as e:
                            error = TaskExecutionError(task.task_type, task.task_id, attempt, e)
                            failed_attempts += 1
                            retryable = not isinstance(e, OutputWriteError) and not self._stop_event.is_set()
                            if self.job_manager.mark_task_failed(job.job_id, task, str(error), retryable):
                                logger.warning(f"{error}; retrying ({task.attempts}/{task.max_attempts} attempts used)")
                                submit(task)
                            else:
                                logger.error(f"{task.task_type.capitalize()} task {task.task_id} failed "
                                             f"permanently after {task.attempts} attempts: {e}")
                                failed.append(f"{task.task_type}-{task.task_id}")
                                self._stop_event.set()
                            continue

                        try:
                            on_success(task, result)
                        except MapReduceError as e:
                            self.job_manager.mark_task_failed(job.job_id, task, str(e), retryable=False)
                            failed.append(f"{task.task_type}-{task.task_id}")
                            self._stop_event.set()
                            continue
                        self.job_manager.mark_task_completed(job.job_id, task)
                        logger.debug(f"{task.task_type.capitalize()} task {task.task_id} completed "
                                     f"on attempt {attempt} in {getattr(result, 'execution_time_ms', 0)}ms")
            except BaseException:
                # Running attempts stop at their next record before the pool shuts down
                self._stop_event.set()
                raise

        if failed_attempts:
            self.metrics.add_counters(job.job_id, {'failed_task_attempts': failed_attempts})
        self._check_cancelled()
        if failed:
            raise JobFailure(f"{len(failed)} task(s) exhausted their retries: {', '.join(failed)}",
                             failed_tasks=failed)

    def _execute_map(self, functions: JobFunctions, work_dir: str, task, attempt: int) -> MapResult:
        attempt_dir = os.path.join(work_dir, f"map-{task.task_id:05d}", f"attempt-{attempt}")
        executor = MapExecutor(
            task_id=task.task_id,
            input_path=task.input_path,
            start_offset=task.start_offset,
            end_offset=task.end_offset,
            num_reduce_tasks=self.config.num_reduce_partitions,
            functions=functions,
            use_combiner=self.config.use_combiner,
            output_dir=attempt_dir,
            spill_threshold=self.config.spill_threshold,
            merge_factor=self.config.merge_factor,
            cancel_event=self._stop_event
        )
        try:
            return executor.execute()
        except Exception:
            # A failed attempt leaves nothing behind for the shuffle
            _remove_tree(attempt_dir)
            raise

    def _on_map_success(self, shuffle: ShuffleEngine, task, result: MapResult):
        shuffle.commit_map_output(task.task_id, result.segments)
        self.metrics.add_counters(self.job.job_id, result.counters)

    def _execute_reduce(self, functions: JobFunctions, shuffle: ShuffleEngine,
                        staging_dir: str, task, attempt: int) -> ReduceResult:
        if not shuffle.wait_ready(task.partition_id):
            raise RuntimeError(f"Partition {task.partition_id} is not ready")

        executor = ReduceExecutor(
            task_id=task.task_id,
            partition_id=task.partition_id,
            key_groups=shuffle.fetch(task.partition_id),
            functions=functions,
            output_dir=staging_dir,
            attempt=attempt,
            cancel_event=self._stop_event
        )
        return executor.execute()

    def _on_reduce_success(self, shuffle: ShuffleEngine, task, result: ReduceResult,
                           results: List[ReduceResult]):
        shuffle.mark_consumed(task.partition_id)
        self.metrics.add_counters(self.job.job_id, result.counters)
        results.append(result)

    def _commit_output(self, staging_dir: str, output_path: str):
        """Mark the staging directory successful and move it to the output path"""
        try:
            with open(os.path.join(staging_dir, SUCCESS_MARKER), 'w'):
                pass
            if os.path.exists(output_path):
                raise OutputWriteError(f"Output path appeared while the job was running: {output_path}")
            os.rename(staging_dir, output_path)
        except OSError as e:
            raise OutputWriteError(f"Failed to commit output to {output_path}: {e}") from e
        logger.info(f"Output committed to {output_path}")


def run_job(input_path, output_path: str, num_reduce_partitions: Optional[int] = None,
            functions: Optional[JobFunctions] = None, **overrides) -> bool:
    """
    Run a word count job and report whether it succeeded

    Args:
        input_path: Input file, directory or glob (or a list of them)
        output_path: Output directory, must not exist yet
        num_reduce_partitions: Number of reduce partitions R
        functions: Job functions to use instead of loading config.job_file
        **overrides: Any other JobConfig field

    Returns:
        True only if every map and reduce task completed and the output was committed
    """
    config = JobConfig(input_path=input_path, output_path=output_path)
    if num_reduce_partitions is not None:
        overrides['num_reduce_partitions'] = num_reduce_partitions
    config = config.with_overrides(**overrides)

    try:
        JobDriver(config, functions=functions).run()
        return True
    except MapReduceError as e:
        logger.error(f"Job did not complete: {e}")
        return False
