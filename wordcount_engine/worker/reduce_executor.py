#!/usr/bin/env python3
"""
Reduce Task Executor
Executes reduce tasks by consuming the grouped data of one partition,
applying the reduce function, and writing the partition's output file
"""

import logging
import os
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from wordcount_engine.common.errors import JobCancelled, OutputWriteError
from wordcount_engine.common.records import ENCODING, ERRORS
from wordcount_engine.worker.function_loader import JobFunctions, normalize_output

logger = logging.getLogger(__name__)


def part_file_name(partition_id: int) -> str:
    return f"part-r-{partition_id:05d}"


@dataclass
class ReduceResult:
    """Output of one successful reduce attempt"""
    task_id: int
    partition_id: int
    output_file: str
    counters: Dict[str, int] = field(default_factory=dict)
    execution_time_ms: int = 0


class ReduceExecutor:
    """Executes a single reduce task attempt"""

    def __init__(self, task_id: int, partition_id: int,
                 key_groups: Iterable[Tuple[str, Iterator[int]]],
                 functions: JobFunctions, output_dir: str, attempt: int = 1,
                 cancel_event: Optional[threading.Event] = None):
        """
        Initialize the reduce executor

        Args:
            task_id: Unique ID for this reduce task
            partition_id: Partition ID this reduce task is responsible for
            key_groups: (key, values) groups of the partition, values are one-pass
            functions: Job functions (reduce)
            output_dir: Staging directory where the part file is written
            attempt: Attempt number, used to name the in-progress file
            cancel_event: Set when the job is cancelled
        """
        self.task_id = task_id
        self.partition_id = partition_id
        self.key_groups = key_groups
        self.functions = functions
        self.output_dir = output_dir
        self.attempt = attempt
        self.cancel_event = cancel_event
        self.counters = defaultdict(int)

    def execute(self) -> ReduceResult:
        """
        Execute the reduce task

        Returns:
            ReduceResult naming the committed part file

        Raises:
            OutputWriteError: If the part file cannot be written
            JobCancelled: If the cancel event is set while reducing
            Exception: Anything raised by the reduce function
        """
        start_time = time.time()
        reduce_func = self.functions.reduce_function

        results: List[Tuple[str, int]] = []
        for key, values in self.key_groups:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise JobCancelled(f"Reduce task {self.task_id} cancelled")

            self.counters['reduce_input_groups'] += 1
            output = reduce_func(key, self._count_values(values))
            for out_key, out_value in normalize_output(key, output):
                results.append((out_key, out_value))

        self.counters['reduce_output_records'] += len(results)
        output_file = self._write_output(results)

        execution_time = int((time.time() - start_time) * 1000)
        logger.debug(f"Reduce task {self.task_id}: {self.counters['reduce_input_groups']} keys, "
                     f"{len(results)} output records in {execution_time}ms")

        return ReduceResult(
            task_id=self.task_id,
            partition_id=self.partition_id,
            output_file=output_file,
            counters=dict(self.counters),
            execution_time_ms=execution_time
        )

    def _count_values(self, values: Iterable[int]) -> Iterator[int]:
        for value in values:
            self.counters['reduce_input_records'] += 1
            yield value

    def _write_output(self, results: list) -> str:
        """
        Write the results to an attempt file and move it into place

        Args:
            results: List of (key, value) tuples to write

        Returns:
            Path of the committed part file
        """
        name = part_file_name(self.partition_id)
        output_file = os.path.join(self.output_dir, name)
        attempt_file = os.path.join(self.output_dir, f".{name}.attempt-{self.attempt}")

        try:
            with open(attempt_file, 'w', encoding=ENCODING, errors=ERRORS, newline='\n') as f:
                for key, value in results:
                    f.write(f"{key}\t{value}\n")
            os.replace(attempt_file, output_file)
        except OSError as e:
            if os.path.exists(attempt_file):
                os.remove(attempt_file)
            raise OutputWriteError(f"Failed to write {output_file}: {e}") from e

        return output_file
