"""
Shuffle engine.

Collects the intermediate segments every map task produced for each reduce
partition and serves them to reducers grouped by key. Each partition counts
down the map tasks that still have to commit; it becomes READY only when all
of them have, which is the barrier between the map and reduce phases.
"""

import heapq
import itertools
import logging
import os
import shutil
import tempfile
import threading
from enum import Enum
from operator import itemgetter
from typing import Dict, Iterator, List, Optional, Tuple

from wordcount_engine.common.errors import JobFailure
from wordcount_engine.common.records import MERGE_FACTOR, merge_passes, read_segment

logger = logging.getLogger(__name__)


class PartitionState(Enum):
    COLLECTING = "collecting"
    READY = "ready"
    CONSUMED = "consumed"
    ABORTED = "aborted"


class ShuffleEngine:
    """Per-partition segment registry with a map-phase barrier"""

    def __init__(self, num_partitions: int, num_map_tasks: int, merge_factor: int = MERGE_FACTOR,
                 scratch_dir: Optional[str] = None):
        if num_partitions < 1:
            raise ValueError(f"num_partitions must be >= 1, got {num_partitions}")
        self.num_partitions = num_partitions
        self.num_map_tasks = num_map_tasks
        self.merge_factor = merge_factor
        self.scratch_dir = scratch_dir

        self._condition = threading.Condition()
        self._segments: Dict[int, List[str]] = {p: [] for p in range(num_partitions)}
        self._waiting_on: Dict[int, set] = {p: set(range(num_map_tasks)) for p in range(num_partitions)}
        initial = PartitionState.READY if num_map_tasks == 0 else PartitionState.COLLECTING
        self._states: Dict[int, PartitionState] = {p: initial for p in range(num_partitions)}
        self._committed = set()
        self._abort_reason: Optional[str] = None

    def _check_partition(self, partition_id: int):
        if not 0 <= partition_id < self.num_partitions:
            raise ValueError(f"Partition {partition_id} out of range [0, {self.num_partitions})")

    def state(self, partition_id: int) -> PartitionState:
        self._check_partition(partition_id)
        with self._condition:
            return self._states[partition_id]

    def commit_map_output(self, map_task_id: int, segments: Dict[int, List[str]]):
        """
        Register the segments of a successful map attempt.

        The map task is counted as done for every partition, including those
        it wrote nothing to.
        """
        if not 0 <= map_task_id < self.num_map_tasks:
            raise ValueError(f"Map task {map_task_id} out of range [0, {self.num_map_tasks})")
        for partition_id in segments:
            self._check_partition(partition_id)

        with self._condition:
            if self._abort_reason is not None:
                raise JobFailure(f"Shuffle aborted: {self._abort_reason}")
            if map_task_id in self._committed:
                raise ValueError(f"Map task {map_task_id} already committed its output")

            self._committed.add(map_task_id)
            for partition_id, paths in segments.items():
                self._segments[partition_id].extend(paths)

            for partition_id in range(self.num_partitions):
                waiting = self._waiting_on[partition_id]
                waiting.discard(map_task_id)
                if not waiting and self._states[partition_id] == PartitionState.COLLECTING:
                    self._states[partition_id] = PartitionState.READY
                    logger.debug(f"Partition {partition_id} ready with "
                                 f"{len(self._segments[partition_id])} segments")
            self._condition.notify_all()

    def abort(self, reason: str):
        """Fail every partition that has not been consumed and release all waiters"""
        with self._condition:
            self._abort_reason = reason
            for partition_id, state in self._states.items():
                if state != PartitionState.CONSUMED:
                    self._states[partition_id] = PartitionState.ABORTED
            self._condition.notify_all()
        logger.warning(f"Shuffle aborted: {reason}")

    def wait_ready(self, partition_id: int, timeout: Optional[float] = None) -> bool:
        """
        Block until the partition has left the COLLECTING state

        Returns:
            True once the partition is READY, False on timeout

        Raises:
            JobFailure: If the shuffle was aborted
        """
        self._check_partition(partition_id)
        with self._condition:
            self._condition.wait_for(
                lambda: self._states[partition_id] != PartitionState.COLLECTING, timeout)
            state = self._states[partition_id]
            if state == PartitionState.ABORTED:
                raise JobFailure(f"Shuffle aborted: {self._abort_reason}")
            return state == PartitionState.READY

    def fetch(self, partition_id: int) -> Iterator[Tuple[str, Iterator[int]]]:
        """
        Group a READY partition by key.

        Segments are sorted by key, so they are merged lazily and each key's
        values are a one-pass iterator. Partitions with more than merge_factor
        segments are first merged in passes into a scratch directory.

        Raises:
            RuntimeError: If the partition is not READY
        """
        self._check_partition(partition_id)
        with self._condition:
            state = self._states[partition_id]
            if state != PartitionState.READY:
                raise RuntimeError(f"Partition {partition_id} is {state.value}, not ready")
            segments = list(self._segments[partition_id])
        return self._group(segments)

    def _group(self, segments: List[str]) -> Iterator[Tuple[str, Iterator[int]]]:
        scratch_dir = None
        if len(segments) > self.merge_factor:
            # Merged files are private to this fetch, committed segments are never modified
            base_dir = self.scratch_dir or os.path.dirname(segments[0])
            scratch_dir = tempfile.mkdtemp(prefix='shuffle-merge-', dir=base_dir)
        try:
            if scratch_dir is not None:
                segments = merge_passes(segments, self.merge_factor, scratch_dir)
            streams = [read_segment(path) for path in segments]
            merged = heapq.merge(*streams, key=itemgetter(0))
            for key, group in itertools.groupby(merged, key=itemgetter(0)):
                yield key, (value for _, value in group)
        finally:
            if scratch_dir is not None:
                shutil.rmtree(scratch_dir, ignore_errors=True)

    def mark_consumed(self, partition_id: int):
        """READY -> CONSUMED once the partition's reduce task completed"""
        self._check_partition(partition_id)
        with self._condition:
            if self._states[partition_id] != PartitionState.READY:
                raise RuntimeError(f"Partition {partition_id} is {self._states[partition_id].value}, not ready")
            self._states[partition_id] = PartitionState.CONSUMED
            self._condition.notify_all()

    def segments(self, partition_id: int) -> List[str]:
        self._check_partition(partition_id)
        with self._condition:
            return list(self._segments[partition_id])

    def intermediate_size_bytes(self) -> int:
        with self._condition:
            paths = [path for paths in self._segments.values() for path in paths]
        return sum(os.path.getsize(path) for path in paths if os.path.exists(path))
