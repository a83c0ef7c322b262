"""
Job configuration.
Defaults can be overridden through WORDCOUNT_* environment variables.
"""

import os
from dataclasses import dataclass, replace
from typing import List, Optional, Union

from wordcount_engine.common.errors import JobConfigError
from wordcount_engine.common.records import MERGE_FACTOR

# Configuration from environment
DEFAULT_NUM_REDUCE_TASKS = int(os.getenv('WORDCOUNT_NUM_REDUCE_TASKS', '1'))
DEFAULT_NUM_MAP_TASKS = int(os.getenv('WORDCOUNT_NUM_MAP_TASKS', '4'))
DEFAULT_RETRY_LIMIT = int(os.getenv('WORDCOUNT_RETRY_LIMIT', '3'))
DEFAULT_MAX_WORKERS = int(os.getenv('WORDCOUNT_MAX_WORKERS', str(min(8, os.cpu_count() or 1))))
DEFAULT_SPILL_THRESHOLD = int(os.getenv('WORDCOUNT_SPILL_THRESHOLD', '100000'))
DEFAULT_MERGE_FACTOR = int(os.getenv('WORDCOUNT_MERGE_FACTOR', str(MERGE_FACTOR)))
DEFAULT_WORK_DIR = os.getenv('WORDCOUNT_WORK_DIR') or None

BUILTIN_JOB = 'wordcount_engine.jobs.word_count'


@dataclass
class JobConfig:
    """Everything the driver needs to run one job"""
    input_path: Union[str, List[str]]
    output_path: str
    num_reduce_partitions: int = DEFAULT_NUM_REDUCE_TASKS
    retry_limit: int = DEFAULT_RETRY_LIMIT
    num_map_tasks: int = DEFAULT_NUM_MAP_TASKS
    max_workers: int = DEFAULT_MAX_WORKERS
    use_combiner: bool = True
    spill_threshold: int = DEFAULT_SPILL_THRESHOLD
    merge_factor: int = DEFAULT_MERGE_FACTOR
    work_dir: Optional[str] = DEFAULT_WORK_DIR
    job_file: str = BUILTIN_JOB
    job_name: str = 'word count'

    @property
    def input_paths(self) -> List[str]:
        if isinstance(self.input_path, (list, tuple)):
            return list(self.input_path)
        return [self.input_path]

    @property
    def max_attempts(self) -> int:
        """First attempt plus retries"""
        return self.retry_limit + 1

    def validate(self):
        """Raise JobConfigError for values the driver cannot run with"""
        if not self.input_paths or not all(self.input_paths):
            raise JobConfigError("input_path must be set")
        if not self.output_path:
            raise JobConfigError("output_path must be set")
        if self.num_reduce_partitions < 1:
            raise JobConfigError(f"num_reduce_partitions must be >= 1, got {self.num_reduce_partitions}")
        if self.num_map_tasks < 1:
            raise JobConfigError(f"num_map_tasks must be >= 1, got {self.num_map_tasks}")
        if self.retry_limit < 0:
            raise JobConfigError(f"retry_limit must be >= 0, got {self.retry_limit}")
        if self.max_workers < 1:
            raise JobConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.spill_threshold < 1:
            raise JobConfigError(f"spill_threshold must be >= 1, got {self.spill_threshold}")
        if self.merge_factor < 2:
            raise JobConfigError(f"merge_factor must be >= 2, got {self.merge_factor}")
        return self

    def with_overrides(self, **overrides) -> 'JobConfig':
        """Copy of this config with the given fields replaced"""
        unknown = [name for name in overrides if name not in self.__dataclass_fields__]
        if unknown:
            raise JobConfigError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)
