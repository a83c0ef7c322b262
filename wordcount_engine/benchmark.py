#!/usr/bin/env python3
"""
Benchmark suite for the word count engine.
Runs the driver in-process across several configurations and collects
runtime, throughput and job counters.
"""

import argparse
import csv
import json
import logging
import random
import shutil
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from wordcount_engine.common.config import JobConfig
from wordcount_engine.common.errors import MapReduceError
from wordcount_engine.coordinator.driver import JobDriver

logger = logging.getLogger(__name__)

RESULTS_DIR = Path("benchmark_results")

VOCABULARY = (
    "the quick brown fox jumps over lazy dog and a of to in is was for on "
    "that with as it his her at by from they we be this have not are but "
    "map reduce shuffle partition combiner task worker barrier split spill"
).split()

# Benchmark configurations
BENCHMARKS = [
    # Experiment 1: Map Task Scaling
    {"name": "map_scaling_1", "maps": 1, "reduces": 2, "combiner": True,
     "description": "1 map task"},
    {"name": "map_scaling_2", "maps": 2, "reduces": 2, "combiner": True,
     "description": "2 map tasks"},
    {"name": "map_scaling_4", "maps": 4, "reduces": 2, "combiner": True,
     "description": "4 map tasks"},
    {"name": "map_scaling_8", "maps": 8, "reduces": 2, "combiner": True,
     "description": "8 map tasks"},

    # Experiment 2: Reduce Task Scaling
    {"name": "reduce_scaling_1", "maps": 4, "reduces": 1, "combiner": True,
     "description": "1 reduce task"},
    {"name": "reduce_scaling_4", "maps": 4, "reduces": 4, "combiner": True,
     "description": "4 reduce tasks"},
    {"name": "reduce_scaling_8", "maps": 4, "reduces": 8, "combiner": True,
     "description": "8 reduce tasks"},

    # Experiment 3: Combiner On/Off
    {"name": "combiner_on", "maps": 4, "reduces": 2, "combiner": True,
     "description": "Combiner enabled"},
    {"name": "combiner_off", "maps": 4, "reduces": 2, "combiner": False,
     "description": "Combiner disabled"},
]


def generate_input(path: Path, target_size: int, seed: int = 42) -> int:
    """
    Write random lines of vocabulary words until the file reaches target_size bytes.

    Returns:
        Actual file size in bytes
    """
    rng = random.Random(seed)
    written = 0
    with open(path, 'w', encoding='utf-8') as f:
        while written < target_size:
            line = ' '.join(rng.choice(VOCABULARY) for _ in range(rng.randint(5, 15))) + '\n'
            f.write(line)
            written += len(line.encode('utf-8'))
    return path.stat().st_size


def run_benchmark(config: Dict, input_path: Path, scratch_dir: Path, run_number: int = 1,
                  max_workers: Optional[int] = None) -> Dict:
    """Run a single benchmark configuration and return its result row."""
    output_path = scratch_dir / f"{config['name']}-run{run_number}"
    job_config = JobConfig(
        input_path=str(input_path),
        output_path=str(output_path),
        num_map_tasks=config['maps'],
        num_reduce_partitions=config['reduces'],
        use_combiner=config['combiner'],
        work_dir=str(scratch_dir)
    )
    if max_workers:
        job_config.max_workers = max_workers

    input_size = input_path.stat().st_size
    start_time = time.time()
    success = True
    counters = {}
    try:
        result = JobDriver(job_config).run()
        counters = result.counters
        metrics = result.metrics
    except MapReduceError as e:
        logger.error(f"Benchmark {config['name']} failed: {e}")
        success = False
        metrics = None
    duration = time.time() - start_time

    if output_path.exists():
        shutil.rmtree(output_path)

    row = {
        "benchmark_name": config["name"],
        "description": config["description"],
        "run_number": run_number,
        "timestamp": datetime.now().isoformat(),
        "input_size_bytes": input_size,
        "input_size_mb": round(input_size / 1024 / 1024, 2),
        "num_map_tasks": config["maps"],
        "num_reduce_tasks": config["reduces"],
        "use_combiner": config["combiner"],
        "success": success,
        "total_runtime_seconds": round(duration, 3),
        "throughput_mbps": round((input_size / 1024 / 1024) / duration, 3) if duration > 0 else 0,
        "intermediate_size_bytes": metrics.intermediate_size_bytes if metrics else 0,
        "peak_memory_bytes": metrics.peak_memory_bytes if metrics else 0,
    }
    row.update({f"counter_{name}": value for name, value in sorted(counters.items())})
    return row


def save_results(results: List[Dict], results_dir: Path, timestamp: str):
    """Save results to JSON and CSV files."""
    results_dir.mkdir(parents=True, exist_ok=True)

    json_file = results_dir / f"benchmark_results_{timestamp}.json"
    with open(json_file, 'w') as f:
        json.dump(results, f, indent=2)

    csv_file = results_dir / f"benchmark_results_{timestamp}.csv"
    if results:
        fieldnames = sorted({key for row in results for key in row})
        with open(csv_file, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(results)

    print(f"✓ Results saved to: {json_file}")
    return json_file, csv_file


def print_summary(results: List[Dict]):
    """Print a summary table of results."""
    print(f"\n{'='*70}")
    print("BENCHMARK SUMMARY")
    print(f"{'='*70}")
    print(f"{'Benchmark':<25} {'Maps':>5} {'Reduces':>7} {'Runtime':>10} {'Status':>10}")
    print(f"{'-'*70}")

    for r in results:
        print(f"{r['benchmark_name']:<25} {r['num_map_tasks']:>5} "
              f"{r['num_reduce_tasks']:>7} {r['total_runtime_seconds']:>9.2f}s "
              f"{'✓' if r['success'] else '✗':>10}")

    print(f"{'='*70}")
    successful = sum(1 for r in results if r['success'])
    print(f"Total: {len(results)} benchmarks, {successful} successful, "
          f"{len(results) - successful} failed")


def run_suite(benchmarks: List[Dict], size_bytes: int, runs: int = 1,
              results_dir: Path = RESULTS_DIR, max_workers: Optional[int] = None) -> List[Dict]:
    """Generate an input, run every benchmark `runs` times and save the results."""
    scratch_dir = Path(tempfile.mkdtemp(prefix="wordcount-bench-"))
    try:
        input_path = scratch_dir / "input.txt"
        actual_size = generate_input(input_path, size_bytes)
        print(f"Input size: {actual_size / 1024 / 1024:.2f} MB")

        results = []
        for config in benchmarks:
            for run in range(1, runs + 1):
                print(f"Benchmark: {config['name']} (Run {run}) - {config['description']}")
                results.append(run_benchmark(config, input_path, scratch_dir, run, max_workers))
    finally:
        shutil.rmtree(scratch_dir, ignore_errors=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    save_results(results, results_dir, timestamp)
    print_summary(results)
    return results


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog='wordcount-benchmark', description=__doc__)
    parser.add_argument('--size-mb', type=float, default=10.0, help='Generated input size in MB')
    parser.add_argument('--runs', type=int, default=1, help='Runs per benchmark (1-5)')
    parser.add_argument('--results-dir', default=str(RESULTS_DIR))
    parser.add_argument('--max-workers', type=int, default=None)
    parser.add_argument('--only', action='append', default=[],
                        help='Run only benchmarks whose name starts with this prefix')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING)
    benchmarks = [b for b in BENCHMARKS
                  if not args.only or any(b['name'].startswith(prefix) for prefix in args.only)]
    results = run_suite(benchmarks, int(args.size_mb * 1024 * 1024), max(1, min(5, args.runs)),
                        Path(args.results_dir), args.max_workers)
    return 0 if all(r['success'] for r in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
