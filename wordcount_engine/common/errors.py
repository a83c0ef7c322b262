"""
Exception hierarchy for word count jobs.
"""

from typing import List, Optional


class MapReduceError(Exception):
    """Base class for all engine errors"""


class JobConfigError(MapReduceError, ValueError):
    """Invalid job configuration"""


class InputError(MapReduceError):
    """Input path missing or unreadable. Raised before any task is dispatched."""


class OutputWriteError(MapReduceError):
    """Writing or committing the final output failed"""


class TaskExecutionError(MapReduceError):
    """A single map or reduce task attempt raised during processing"""

    def __init__(self, task_type: str, task_id: int, attempt: int, cause: Optional[BaseException] = None):
        self.task_type = task_type
        self.task_id = task_id
        self.attempt = attempt
        self.cause = cause
        message = f"{task_type} task {task_id} attempt {attempt} failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class JobFailure(MapReduceError):
    """Terminal job state: a task exhausted its retries or the output commit failed"""

    def __init__(self, message: str, failed_tasks: Optional[List[str]] = None):
        super().__init__(message)
        self.failed_tasks = failed_tasks or []


class JobCancelled(MapReduceError):
    """The job was cancelled before it completed"""
