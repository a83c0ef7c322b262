#!/usr/bin/env python3
"""
Job Manager for the word count driver
Handles job state management, task generation, and progress tracking
"""

import glob
import logging
import math
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Union

from wordcount_engine.common.config import JobConfig
from wordcount_engine.common.errors import InputError

logger = logging.getLogger(__name__)

# A file's last split may be up to 10% larger than the goal size
SPLIT_SLOP = 1.1


class JobStatus(Enum):
    """Status of a MapReduce job"""
    PENDING = "pending"
    MAP_PHASE = "map_phase"
    SHUFFLE_PHASE = "shuffle_phase"
    REDUCE_PHASE = "reduce_phase"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskStatus(Enum):
    """Status of individual map or reduce tasks"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class MapTask:
    """Represents a single map task over one input split"""
    task_id: int
    input_path: str
    start_offset: int
    end_offset: int
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    max_attempts: int = 4
    error_message: str = ""
    start_time: float = 0.0
    end_time: float = 0.0
    task_type: ClassVar[str] = "map"


@dataclass
class ReduceTask:
    """Represents a single reduce task over one partition"""
    task_id: int
    partition_id: int
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    max_attempts: int = 4
    error_message: str = ""
    start_time: float = 0.0
    end_time: float = 0.0
    task_type: ClassVar[str] = "reduce"


Task = Union[MapTask, ReduceTask]


@dataclass
class Job:
    """Represents a complete MapReduce job"""
    job_id: str
    config: JobConfig
    input_files: List[str] = field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    map_tasks: List[MapTask] = field(default_factory=list)
    reduce_tasks: List[ReduceTask] = field(default_factory=list)
    start_time: float = 0.0
    end_time: float = 0.0
    error_message: str = ""


def _is_hidden(name: str) -> bool:
    return name.startswith('_') or name.startswith('.')


def list_input_files(paths: List[str]) -> List[str]:
    """
    Expand input paths into the list of files to read

    Args:
        paths: Files, directories or glob patterns

    Returns:
        Sorted list of readable files. Directory entries starting with '_' or
        '.' are skipped.

    Raises:
        InputError: If a path does not exist or a file is not readable
    """
    files = []
    for path in paths:
        if glob.has_magic(path):
            matches = sorted(glob.glob(path))
            if not matches:
                raise InputError(f"Input pattern matched no files: {path}")
        else:
            matches = [path]

        for match in matches:
            if os.path.isdir(match):
                for name in sorted(os.listdir(match)):
                    entry = os.path.join(match, name)
                    if not _is_hidden(name) and os.path.isfile(entry):
                        files.append(entry)
            elif os.path.isfile(match):
                files.append(match)
            else:
                raise InputError(f"Input path does not exist: {match}")

    for path in files:
        if not os.access(path, os.R_OK):
            raise InputError(f"Input file is not readable: {path}")
    return files


class JobManager:
    """Manages all MapReduce jobs and their lifecycle"""

    def __init__(self):
        self.jobs: Dict[str, Job] = {}
        self.lock = threading.Lock()

    def create_job(self, config: JobConfig, job_id: Optional[str] = None) -> Job:
        """Create new job from configuration"""
        with self.lock:
            job = Job(
                job_id=job_id or f"job_{time.strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}",
                config=config,
                start_time=time.time()
            )
            self.jobs[job.job_id] = job
            return job

    def generate_map_tasks(self, job: Job) -> List[MapTask]:
        """Split the job's input files into map tasks of roughly equal size"""
        job.input_files = list_input_files(job.config.input_paths)
        sizes = {path: os.path.getsize(path) for path in job.input_files}
        total_size = sum(sizes.values())
        goal_size = max(1, math.ceil(total_size / job.config.num_map_tasks))

        map_tasks = []

        def add(path, start, end):
            map_tasks.append(MapTask(
                task_id=len(map_tasks),
                input_path=path,
                start_offset=start,
                end_offset=end,
                max_attempts=job.config.max_attempts
            ))

        for path in job.input_files:
            file_size = sizes[path]
            if file_size == 0:
                add(path, 0, 0)
                continue

            start = 0
            remaining = file_size
            while remaining > goal_size * SPLIT_SLOP:
                add(path, start, start + goal_size)
                start += goal_size
                remaining -= goal_size
            add(path, start, file_size)

        logger.info(f"Job {job.job_id}: {len(job.input_files)} input files, "
                    f"{total_size} bytes, {len(map_tasks)} map tasks")
        job.map_tasks = map_tasks
        return map_tasks

    def generate_reduce_tasks(self, job: Job) -> List[ReduceTask]:
        """Create one reduce task per partition"""
        reduce_tasks = [
            ReduceTask(
                task_id=partition_id,
                partition_id=partition_id,
                max_attempts=job.config.max_attempts
            )
            for partition_id in range(job.config.num_reduce_partitions)
        ]
        job.reduce_tasks = reduce_tasks
        return reduce_tasks

    def set_job_status(self, job_id: str, status: JobStatus, error_message: str = ""):
        with self.lock:
            job = self.jobs.get(job_id)
            if not job:
                return
            job.status = status
            if error_message:
                job.error_message = error_message
            if status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED):
                job.end_time = time.time()

    def mark_task_running(self, job_id: str, task: Task) -> int:
        """Start a new attempt of a task and return its attempt number"""
        with self.lock:
            task.status = TaskStatus.RUNNING
            task.attempts += 1
            task.start_time = time.time()
            return task.attempts

    def mark_task_completed(self, job_id: str, task: Task):
        """Mark task as completed"""
        with self.lock:
            task.status = TaskStatus.COMPLETED
            task.end_time = time.time()

            job = self.jobs.get(job_id)
            # Check if all map tasks completed
            if job and isinstance(task, MapTask) and \
                    all(t.status == TaskStatus.COMPLETED for t in job.map_tasks):
                job.status = JobStatus.SHUFFLE_PHASE

    def mark_task_failed(self, job_id: str, task: Task, error_msg: str, retryable: bool = True) -> bool:
        """
        Record a failed attempt

        Returns:
            True if the task may be retried, False if it failed permanently
        """
        with self.lock:
            task.error_message = error_msg
            task.end_time = time.time()
            if retryable and task.attempts < task.max_attempts:
                task.status = TaskStatus.PENDING
                return True
            task.status = TaskStatus.FAILED
            return False

    def get_job_status(self, job_id: str) -> Optional[Dict]:
        """Get current job status with progress"""
        with self.lock:
            job = self.jobs.get(job_id)
            if not job:
                return None

            map_completed = sum(1 for t in job.map_tasks if t.status == TaskStatus.COMPLETED)
            reduce_completed = sum(1 for t in job.reduce_tasks if t.status == TaskStatus.COMPLETED)
            total_tasks = len(job.map_tasks) + len(job.reduce_tasks)
            completed_tasks = map_completed + reduce_completed

            progress = int((completed_tasks / total_tasks * 100)) if total_tasks > 0 else 0

            return {
                'status': job.status.value,
                'progress': progress,
                'map_completed': map_completed,
                'map_total': len(job.map_tasks),
                'reduce_completed': reduce_completed,
                'reduce_total': len(job.reduce_tasks),
                'error_message': job.error_message
            }
