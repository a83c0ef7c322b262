"""
Tests for job metrics collection
"""

import json
import os
from unittest.mock import Mock

import psutil

from wordcount_engine.coordinator.metrics import COUNTER_NAMES, JobMetrics, MetricsCollector


def test_start_job_initializes_counters():
    collector = MetricsCollector()
    collector.start_job("job-1", num_map_tasks=4, num_reduce_tasks=2, use_combiner=True,
                        input_size_bytes=1024)

    metrics = collector.get_metrics("job-1")
    assert isinstance(metrics, JobMetrics)
    assert metrics.num_map_tasks == 4
    assert metrics.num_reduce_tasks == 2
    assert set(metrics.counters) == set(COUNTER_NAMES)
    assert all(value == 0 for value in metrics.counters.values())
    assert metrics.peak_memory_bytes > 0


def test_add_counters_accumulates():
    collector = MetricsCollector()
    collector.start_job("job-1", 2, 1, True, 0)

    collector.add_counters("job-1", {'map_input_records': 3, 'map_output_records': 10})
    collector.add_counters("job-1", {'map_input_records': 2})

    counters = collector.get_metrics("job-1").counters
    assert counters['map_input_records'] == 5
    assert counters['map_output_records'] == 10


def test_add_counters_for_unknown_job_is_ignored():
    collector = MetricsCollector()
    collector.add_counters("missing", {'map_input_records': 1})
    assert collector.get_metrics("missing") is None


def test_unreadable_memory_does_not_break_collection():
    collector = MetricsCollector()
    collector.process = Mock()
    collector.process.memory_info.side_effect = psutil.AccessDenied()

    collector.start_job("job-1", 1, 1, True, 0)
    collector.add_counters("job-1", {'failed_task_attempts': 1})

    metrics = collector.get_metrics("job-1")
    assert metrics.counters['failed_task_attempts'] == 1
    assert metrics.peak_memory_bytes == 0


def test_combiner_reduction_ratio():
    collector = MetricsCollector()
    collector.start_job("job-1", 1, 1, True, 0)
    collector.add_counters("job-1", {'combine_input_records': 100, 'combine_output_records': 25})

    collector.start_reduce_phase("job-1", intermediate_size_bytes=2048)

    metrics = collector.get_metrics("job-1")
    assert metrics.combiner_reduction_ratio == 0.75
    assert metrics.intermediate_size_bytes == 2048


def test_phase_timings_and_output_size(temp_dir):
    with open(os.path.join(temp_dir, 'part-r-00000'), 'w') as f:
        f.write("word\t1\n")
    with open(os.path.join(temp_dir, '_SUCCESS'), 'w'):
        pass

    collector = MetricsCollector()
    collector.start_job("job-1", 1, 1, False, 10)
    collector.end_map_phase("job-1")
    collector.start_reduce_phase("job-1", 0)
    collector.end_reduce_phase("job-1")
    collector.end_job("job-1", temp_dir)

    metrics = collector.get_metrics("job-1")
    assert metrics.total_time_seconds >= 0
    assert metrics.map_phase_time_seconds >= 0
    assert metrics.reduce_phase_time_seconds >= 0
    assert metrics.output_size_bytes == len("word\t1\n")


def test_save_to_file(temp_dir):
    collector = MetricsCollector()
    collector.start_job("job-1", 1, 1, True, 10)
    collector.end_job("job-1")
    path = os.path.join(temp_dir, 'metrics.json')

    collector.get_metrics("job-1").save_to_file(path)

    with open(path) as f:
        data = json.load(f)
    assert data['job_id'] == "job-1"
    assert 'total_time_seconds' in data
    assert data['counters']['map_input_records'] == 0


def test_log_summary(caplog):
    collector = MetricsCollector()
    collector.start_job("job-1", 1, 1, True, 10)
    collector.add_counters("job-1", {'reduce_output_records': 7})

    with caplog.at_level('INFO', logger='wordcount_engine.coordinator.metrics'):
        collector.log_summary("job-1")

    assert "reduce_output_records=7" in caplog.text
