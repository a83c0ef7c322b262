#!/usr/bin/env python3
"""
Map Task Executor
Executes map tasks by reading input splits, applying map functions,
combining and partitioning output, and spilling intermediate segments
"""

import logging
import os
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from wordcount_engine.common.errors import JobCancelled
from wordcount_engine.common.records import (
    MERGE_FACTOR, Record, decode_line, merge_passes, merge_segments, write_segment
)
from wordcount_engine.worker.combiner import combine
from wordcount_engine.worker.function_loader import JobFunctions
from wordcount_engine.worker.partitioner import partition

logger = logging.getLogger(__name__)


@dataclass
class MapResult:
    """Output of one successful map attempt"""
    task_id: int
    segments: Dict[int, List[str]] = field(default_factory=dict)
    counters: Dict[str, int] = field(default_factory=dict)
    execution_time_ms: int = 0


class MapExecutor:
    """Executes a single map task attempt"""

    def __init__(self, task_id: int, input_path: str, start_offset: int,
                 end_offset: int, num_reduce_tasks: int, functions: JobFunctions,
                 use_combiner: bool, output_dir: str, spill_threshold: int = 100000,
                 cancel_event: Optional[threading.Event] = None, merge_factor: int = MERGE_FACTOR,
                 partitioner: Callable[[str, int], int] = partition):
        """
        Initialize the map executor

        Args:
            task_id: Unique ID for this map task
            input_path: Path to input file
            start_offset: Byte offset where this task's split starts
            end_offset: Byte offset where this task's split ends
            num_reduce_tasks: Number of reduce partitions
            functions: Job functions (map and optional combiner)
            use_combiner: Whether to apply the combiner before spilling
            output_dir: Directory owned by this attempt for its segments
            spill_threshold: Buffered pairs that trigger a spill
            cancel_event: Set when the job is cancelled
            merge_factor: Most segments opened at once when merging spills
            partitioner: Callable(key, num_partitions) -> partition id
        """
        self.task_id = task_id
        self.input_path = input_path
        self.start_offset = start_offset
        self.end_offset = end_offset
        self.num_reduce_tasks = num_reduce_tasks
        self.functions = functions
        self.use_combiner = use_combiner
        self.output_dir = output_dir
        self.spill_threshold = spill_threshold
        self.cancel_event = cancel_event
        self.merge_factor = merge_factor
        self.partitioner = partitioner

        self.counters = defaultdict(int)
        self.segments: Dict[int, List[str]] = defaultdict(list)
        self._spill_count = 0

    def execute(self) -> MapResult:
        """
        Execute the map task

        Returns:
            MapResult with the segment paths per partition and task counters

        Raises:
            JobCancelled: If the cancel event is set while mapping
            Exception: Anything raised while reading input or mapping
        """
        start_time = time.time()
        os.makedirs(self.output_dir, exist_ok=True)
        map_func = self.functions.map_function

        buffer = defaultdict(list)
        buffered = 0

        for record in self._read_input_split():
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise JobCancelled(f"Map task {self.task_id} cancelled")

            self.counters['map_input_records'] += 1
            for out_key, out_value in map_func(record.offset, record.text):
                buffer[self.partitioner(out_key, self.num_reduce_tasks)].append((out_key, out_value))
                buffered += 1

            if buffered >= self.spill_threshold:
                self._spill(buffer)
                buffer = defaultdict(list)
                buffered = 0

        self._spill(buffer)
        self._merge_spills()

        execution_time = int((time.time() - start_time) * 1000)
        logger.debug(f"Map task {self.task_id}: {self.counters['map_input_records']} records, "
                     f"{self._spill_count} spills in {execution_time}ms")

        return MapResult(
            task_id=self.task_id,
            segments=dict(self.segments),
            counters=dict(self.counters),
            execution_time_ms=execution_time
        )

    def _read_input_split(self) -> Iterator[Record]:
        """
        Read the lines of this task's split.

        A line belongs to the split its first byte falls in, with the line
        starting exactly at end_offset read here and skipped by the next split.

        Yields:
            Record(offset, text) for every line of the split
        """
        with open(self.input_path, 'rb') as f:
            f.seek(self.start_offset)
            pos = self.start_offset

            # Skip the partial line, the previous split owns it
            if self.start_offset > 0:
                pos += len(f.readline())

            while pos <= self.end_offset:
                raw = f.readline()
                if not raw:
                    break
                yield Record(pos, decode_line(raw))
                pos += len(raw)

    def _spill(self, buffer: Dict[int, list]):
        """
        Combine, sort and write one segment per non-empty partition

        Args:
            buffer: Dictionary mapping partition_id to list of (key, value) pairs
        """
        if not buffer:
            return

        for partition_id, kv_pairs in sorted(buffer.items()):
            if not kv_pairs:
                continue
            self.counters['map_output_records'] += len(kv_pairs)

            if self.use_combiner and self.functions.combiner_function is not None:
                self.counters['combine_input_records'] += len(kv_pairs)
                kv_pairs = combine(kv_pairs, self.functions.combiner_function)
                self.counters['combine_output_records'] += len(kv_pairs)

            kv_pairs.sort(key=lambda kv: kv[0])
            path = os.path.join(self.output_dir, f"spill-{self._spill_count}-part-{partition_id}.jsonl")
            self.counters['spilled_records'] += write_segment(path, kv_pairs)
            self.segments[partition_id].append(path)

        self._spill_count += 1

    def _merge_spills(self):
        """Merge each partition's spills into one sorted segment"""
        for partition_id, spills in self.segments.items():
            if len(spills) < 2:
                continue

            remaining = merge_passes(spills, self.merge_factor, self.output_dir,
                                     prefix=f"merge-part-{partition_id}")
            merged = os.path.join(self.output_dir, f"map-part-{partition_id}.jsonl")
            merge_segments(remaining, merged)
            for path in set(spills) | set(remaining):
                os.remove(path)
            self.segments[partition_id] = [merged]
