#!/usr/bin/env python3
"""
Word Count CLI
Runs a word count job over an input path and writes the results to an output directory
"""

import argparse
import signal
import sys
import threading

from wordcount_engine.common import config as defaults
from wordcount_engine.common.config import JobConfig
from wordcount_engine.common.errors import JobCancelled, MapReduceError
from wordcount_engine.common.logging_setup import configure_logging
from wordcount_engine.coordinator.driver import JobDriver

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='wordcount',
        description='Count the occurrences of every word in the input'
    )
    parser.add_argument('input', help='Input file, directory or glob pattern')
    parser.add_argument('output', help='Output directory (must not exist)')
    parser.add_argument('--num-reduce-tasks', '-r', type=int, default=defaults.DEFAULT_NUM_REDUCE_TASKS,
                        help='Number of reduce partitions (default: %(default)s)')
    parser.add_argument('--num-map-tasks', '-m', type=int, default=defaults.DEFAULT_NUM_MAP_TASKS,
                        help='Target number of map tasks (default: %(default)s)')
    parser.add_argument('--retry-limit', type=int, default=defaults.DEFAULT_RETRY_LIMIT,
                        help='Retries per task after the first attempt (default: %(default)s)')
    parser.add_argument('--max-workers', type=int, default=defaults.DEFAULT_MAX_WORKERS,
                        help='Worker threads per phase (default: %(default)s)')
    parser.add_argument('--spill-threshold', type=int, default=defaults.DEFAULT_SPILL_THRESHOLD,
                        help='Buffered map output pairs before a spill (default: %(default)s)')
    parser.add_argument('--merge-factor', type=int, default=defaults.DEFAULT_MERGE_FACTOR,
                        help='Most segments merged at once (default: %(default)s)')
    parser.add_argument('--no-combiner', dest='use_combiner', action='store_false',
                        help='Skip local aggregation before the shuffle')
    parser.add_argument('--job-file', default=defaults.BUILTIN_JOB,
                        help='Python file or module defining map_function/reduce_function')
    parser.add_argument('--work-dir', default=defaults.DEFAULT_WORK_DIR,
                        help='Directory for intermediate data (default: system temp)')
    parser.add_argument('--metrics-file', help='Write job metrics as JSON to this file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser


def main(argv=None) -> int:
    """Entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    config = JobConfig(
        input_path=args.input,
        output_path=args.output,
        num_reduce_partitions=args.num_reduce_tasks,
        retry_limit=args.retry_limit,
        num_map_tasks=args.num_map_tasks,
        max_workers=args.max_workers,
        use_combiner=args.use_combiner,
        spill_threshold=args.spill_threshold,
        merge_factor=args.merge_factor,
        work_dir=args.work_dir,
        job_file=args.job_file
    )

    try:
        driver = JobDriver(config)
    except MapReduceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    # Ctrl-C cancels the job instead of killing the worker threads mid-write
    previous_handler = None
    if threading.current_thread() is threading.main_thread():
        previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: driver.cancel())

    try:
        result = driver.run()
    except JobCancelled as e:
        print(f"Job cancelled: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except MapReduceError as e:
        print(f"Job failed: {e}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)
        if args.metrics_file and driver.job is not None:
            metrics = driver.metrics.get_metrics(driver.job.job_id)
            if metrics is not None:
                metrics.save_to_file(args.metrics_file)

    print(f"✓ Job {result.job_id} completed: {len(result.output_files)} output files in {result.output_path}")
    return EXIT_SUCCESS


if __name__ == '__main__':
    sys.exit(main())
