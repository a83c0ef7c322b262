"""
Tests for the shuffle engine: the map barrier, partition states and key grouping.
"""

import os
import threading
import time

import pytest

from wordcount_engine.common.errors import JobFailure
from wordcount_engine.common.records import write_segment
from wordcount_engine.coordinator.shuffle import PartitionState, ShuffleEngine


@pytest.fixture
def segment(temp_dir):
    """Factory writing a sorted segment file"""
    counter = iter(range(1000))

    def make(pairs):
        path = os.path.join(temp_dir, f"segment-{next(counter)}.jsonl")
        write_segment(path, sorted(pairs))
        return path
    return make


def materialize(groups):
    return [(key, list(values)) for key, values in groups]


class TestPartitionBarrier:
    """A partition is READY only after every map task committed"""

    def test_partitions_start_collecting(self):
        shuffle = ShuffleEngine(num_partitions=2, num_map_tasks=3)
        assert shuffle.state(0) == PartitionState.COLLECTING
        assert shuffle.state(1) == PartitionState.COLLECTING

    def test_ready_after_last_map_commit(self, segment):
        shuffle = ShuffleEngine(num_partitions=2, num_map_tasks=2)

        shuffle.commit_map_output(0, {0: [segment([("a", 1)])]})
        assert shuffle.state(0) == PartitionState.COLLECTING
        assert shuffle.state(1) == PartitionState.COLLECTING

        # Map task 1 writes nothing to partition 0 but still releases it
        shuffle.commit_map_output(1, {1: [segment([("b", 1)])]})
        assert shuffle.state(0) == PartitionState.READY
        assert shuffle.state(1) == PartitionState.READY

    def test_no_map_tasks_means_ready(self):
        shuffle = ShuffleEngine(num_partitions=3, num_map_tasks=0)
        assert all(shuffle.state(p) == PartitionState.READY for p in range(3))
        assert materialize(shuffle.fetch(2)) == []

    def test_fetch_before_ready_is_rejected(self):
        shuffle = ShuffleEngine(num_partitions=1, num_map_tasks=1)
        with pytest.raises(RuntimeError):
            shuffle.fetch(0)

    def test_duplicate_commit_is_rejected(self, segment):
        shuffle = ShuffleEngine(num_partitions=1, num_map_tasks=2)
        shuffle.commit_map_output(0, {0: [segment([("a", 1)])]})

        with pytest.raises(ValueError):
            shuffle.commit_map_output(0, {0: [segment([("a", 1)])]})
        assert len(shuffle.segments(0)) == 1

    def test_out_of_range_ids(self):
        shuffle = ShuffleEngine(num_partitions=2, num_map_tasks=1)
        with pytest.raises(ValueError):
            shuffle.commit_map_output(5, {})
        with pytest.raises(ValueError):
            shuffle.commit_map_output(0, {7: []})
        with pytest.raises(ValueError):
            shuffle.state(2)

    def test_wait_ready_blocks_until_commit(self, segment):
        shuffle = ShuffleEngine(num_partitions=1, num_map_tasks=1)
        path = segment([("a", 1)])

        def commit_later():
            time.sleep(0.1)
            shuffle.commit_map_output(0, {0: [path]})

        thread = threading.Thread(target=commit_later)
        thread.start()
        assert shuffle.wait_ready(0, timeout=5)
        thread.join()

    def test_wait_ready_times_out(self):
        shuffle = ShuffleEngine(num_partitions=1, num_map_tasks=1)
        assert shuffle.wait_ready(0, timeout=0.05) is False

    def test_abort_releases_waiters(self):
        shuffle = ShuffleEngine(num_partitions=1, num_map_tasks=1)
        errors = []

        def waiter():
            try:
                shuffle.wait_ready(0, timeout=5)
            except JobFailure as e:
                errors.append(e)

        thread = threading.Thread(target=waiter)
        thread.start()
        time.sleep(0.05)
        shuffle.abort("map task failed")
        thread.join(timeout=5)

        assert len(errors) == 1
        assert shuffle.state(0) == PartitionState.ABORTED
        with pytest.raises(JobFailure):
            shuffle.commit_map_output(0, {})

    def test_consumed_partition_survives_abort(self):
        shuffle = ShuffleEngine(num_partitions=2, num_map_tasks=0)
        shuffle.mark_consumed(0)
        shuffle.abort("reduce task failed")

        assert shuffle.state(0) == PartitionState.CONSUMED
        assert shuffle.state(1) == PartitionState.ABORTED

    def test_mark_consumed_requires_ready(self):
        shuffle = ShuffleEngine(num_partitions=1, num_map_tasks=1)
        with pytest.raises(RuntimeError):
            shuffle.mark_consumed(0)


class TestGrouping:
    """fetch() merges every segment of a partition into key groups"""

    def test_groups_keys_across_segments_in_order(self, segment):
        shuffle = ShuffleEngine(num_partitions=1, num_map_tasks=2)
        shuffle.commit_map_output(0, {0: [segment([("fox", 1), ("the", 2)]),
                                          segment([("lazy", 1), ("the", 1)])]})
        shuffle.commit_map_output(1, {0: [segment([("fox", 1), ("quick", 1)])]})

        groups = materialize(shuffle.fetch(0))

        assert [key for key, _ in groups] == ["fox", "lazy", "quick", "the"]
        assert dict(groups) == {"fox": [1, 1], "lazy": [1], "quick": [1], "the": [2, 1]}

    def test_fetch_can_be_repeated_for_retries(self, segment):
        shuffle = ShuffleEngine(num_partitions=1, num_map_tasks=1)
        shuffle.commit_map_output(0, {0: [segment([("a", 1), ("b", 3)])]})

        first = materialize(shuffle.fetch(0))
        second = materialize(shuffle.fetch(0))
        assert first == second == [("a", [1]), ("b", [3])]

    def test_many_segments_are_merged_with_bounded_fan_in(self, segment, temp_dir):
        scratch = os.path.join(temp_dir, 'scratch')
        os.makedirs(scratch)
        shuffle = ShuffleEngine(num_partitions=1, num_map_tasks=40, merge_factor=3, scratch_dir=scratch)
        committed = []
        for map_task_id in range(40):
            path = segment([(f"w{map_task_id % 7}", 1), ("shared", map_task_id)])
            committed.append(path)
            shuffle.commit_map_output(map_task_id, {0: [path]})

        groups = materialize(shuffle.fetch(0))

        assert [key for key, _ in groups] == ["shared", "w0", "w1", "w2", "w3", "w4", "w5", "w6"]
        assert sorted(dict(groups)["shared"]) == list(range(40))
        assert sum(len(dict(groups)[f"w{i}"]) for i in range(7)) == 40
        # Merged files are private to one fetch
        assert os.listdir(scratch) == []
        assert all(os.path.exists(path) for path in committed)
        assert materialize(shuffle.fetch(0)) == groups

    def test_intermediate_size(self, segment):
        shuffle = ShuffleEngine(num_partitions=2, num_map_tasks=1)
        paths = [segment([("a", 1)]), segment([("b", 2)])]
        shuffle.commit_map_output(0, {0: paths[:1], 1: paths[1:]})

        assert shuffle.intermediate_size_bytes() == sum(os.path.getsize(p) for p in paths)
