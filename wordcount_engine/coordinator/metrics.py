"""
Performance metrics collection for word count jobs.
"""

import glob
import json
import logging
import os
import threading
import time
from dataclasses import dataclass, asdict, field
from typing import Dict, Optional

import psutil

logger = logging.getLogger(__name__)

COUNTER_NAMES = (
    'map_input_records',
    'map_output_records',
    'combine_input_records',
    'combine_output_records',
    'spilled_records',
    'reduce_input_groups',
    'reduce_input_records',
    'reduce_output_records',
    'failed_task_attempts',
)


@dataclass
class JobMetrics:
    """Metrics for a single MapReduce job execution."""

    job_id: str
    start_time: float
    end_time: float
    map_phase_start: float
    map_phase_end: float
    reduce_phase_start: float
    reduce_phase_end: float
    num_map_tasks: int
    num_reduce_tasks: int
    use_combiner: bool
    input_size_bytes: int
    intermediate_size_bytes: int
    output_size_bytes: int
    combiner_reduction_ratio: float = 0.0
    peak_memory_bytes: int = 0
    counters: Dict[str, int] = field(default_factory=lambda: {name: 0 for name in COUNTER_NAMES})

    @property
    def total_time_seconds(self) -> float:
        """Total job execution time in seconds."""
        return self.end_time - self.start_time

    @property
    def map_phase_time_seconds(self) -> float:
        """Map phase execution time in seconds."""
        return self.map_phase_end - self.map_phase_start

    @property
    def reduce_phase_time_seconds(self) -> float:
        """Reduce phase execution time in seconds."""
        return self.reduce_phase_end - self.reduce_phase_start

    def to_dict(self) -> dict:
        """Convert metrics to dictionary."""
        data = asdict(self)
        data['total_time_seconds'] = self.total_time_seconds
        data['map_phase_time_seconds'] = self.map_phase_time_seconds
        data['reduce_phase_time_seconds'] = self.reduce_phase_time_seconds
        return data

    def save_to_file(self, filepath: str):
        """Save metrics to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


class MetricsCollector:
    """Collects and manages metrics for MapReduce jobs."""

    def __init__(self):
        self.job_metrics: Dict[str, JobMetrics] = {}
        self.process = psutil.Process()
        self._lock = threading.Lock()

    def _rss(self) -> int:
        """Resident set size of this process, 0 when it cannot be read"""
        try:
            return self.process.memory_info().rss
        except (psutil.Error, OSError) as e:
            logger.debug(f"Memory sample failed: {e}")
            return 0

    def start_job(self, job_id: str, num_map_tasks: int, num_reduce_tasks: int,
                  use_combiner: bool, input_size_bytes: int):
        """Initialize metrics tracking for a new job."""
        now = time.time()
        with self._lock:
            self.job_metrics[job_id] = JobMetrics(
                job_id=job_id,
                start_time=now,
                end_time=0,
                map_phase_start=now,
                map_phase_end=0,
                reduce_phase_start=0,
                reduce_phase_end=0,
                num_map_tasks=num_map_tasks,
                num_reduce_tasks=num_reduce_tasks,
                use_combiner=use_combiner,
                input_size_bytes=input_size_bytes,
                intermediate_size_bytes=0,
                output_size_bytes=0,
                peak_memory_bytes=self._rss()
            )

    def add_counters(self, job_id: str, counters: Dict[str, int]):
        """Merge task counters into the job totals and sample memory usage."""
        rss = self._rss()
        with self._lock:
            metrics = self.job_metrics.get(job_id)
            if metrics is None:
                return
            for name, value in counters.items():
                metrics.counters[name] = metrics.counters.get(name, 0) + value
            metrics.peak_memory_bytes = max(metrics.peak_memory_bytes, rss)

    def end_map_phase(self, job_id: str):
        """Mark the end of the map phase."""
        with self._lock:
            if job_id in self.job_metrics:
                self.job_metrics[job_id].map_phase_end = time.time()

    def start_reduce_phase(self, job_id: str, intermediate_size_bytes: int):
        """Mark the start of the reduce phase and record intermediate data size."""
        with self._lock:
            metrics = self.job_metrics.get(job_id)
            if metrics is None:
                return
            metrics.reduce_phase_start = time.time()
            metrics.intermediate_size_bytes = intermediate_size_bytes

            # Share of map output records the combiner removed before the shuffle
            combine_input = metrics.counters.get('combine_input_records', 0)
            if combine_input > 0:
                metrics.combiner_reduction_ratio = \
                    1.0 - (metrics.counters.get('combine_output_records', 0) / combine_input)

    def end_job(self, job_id: str, output_path: Optional[str] = None):
        """Mark job completion and calculate output size."""
        with self._lock:
            metrics = self.job_metrics.get(job_id)
            if metrics is None:
                return
            now = time.time()
            if metrics.reduce_phase_start and not metrics.reduce_phase_end:
                metrics.reduce_phase_end = now
            metrics.end_time = now

            if output_path:
                output_files = glob.glob(os.path.join(output_path, 'part-*'))
                metrics.output_size_bytes = sum(os.path.getsize(f) for f in output_files if os.path.exists(f))

    def end_reduce_phase(self, job_id: str):
        """Mark the end of the reduce phase."""
        with self._lock:
            if job_id in self.job_metrics:
                self.job_metrics[job_id].reduce_phase_end = time.time()

    def get_metrics(self, job_id: str) -> Optional[JobMetrics]:
        """Retrieve metrics for a specific job."""
        return self.job_metrics.get(job_id)

    def log_summary(self, job_id: str):
        """Log the job counters the way a batch framework prints them on completion."""
        metrics = self.get_metrics(job_id)
        if metrics is None:
            return
        lines = [f"Counters for {job_id}:"]
        lines.extend(f"  {name}={value}" for name, value in sorted(metrics.counters.items()))
        lines.append(f"  input_size_bytes={metrics.input_size_bytes}")
        lines.append(f"  intermediate_size_bytes={metrics.intermediate_size_bytes}")
        lines.append(f"  output_size_bytes={metrics.output_size_bytes}")
        lines.append(f"  peak_memory_bytes={metrics.peak_memory_bytes}")
        logger.info("\n".join(lines))
