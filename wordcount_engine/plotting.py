#!/usr/bin/env python3
"""
Generate plots from benchmark results.
"""

import json
import sys
from collections import defaultdict
from pathlib import Path

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt
import numpy as np

# Configuration
PLOTS_DIR = Path("benchmark_results/plots")


def load_results(json_file):
    """Load benchmark results from JSON file."""
    with open(json_file, 'r') as f:
        return json.load(f)


def aggregate_runs(results):
    """
    Aggregate multiple runs of the same benchmark.
    Returns dict: benchmark_name -> {avg_runtime, std_runtime, config, ...}
    """
    by_benchmark = defaultdict(list)

    for r in results:
        if r['success']:  # Only include successful runs
            by_benchmark[r['benchmark_name']].append(r)

    aggregated = {}
    for name, runs in by_benchmark.items():
        runtimes = [r['total_runtime_seconds'] for r in runs]
        throughputs = [r['throughput_mbps'] for r in runs]
        intermediate = [r.get('intermediate_size_bytes', 0) for r in runs]

        # Use first run for configuration data
        first = runs[0]

        aggregated[name] = {
            'benchmark_name': name,
            'description': first['description'],
            'num_map_tasks': first['num_map_tasks'],
            'num_reduce_tasks': first['num_reduce_tasks'],
            'use_combiner': first.get('use_combiner', True),
            'input_size_mb': first['input_size_mb'],
            'avg_runtime': float(np.mean(runtimes)),
            'std_runtime': float(np.std(runtimes)),
            'min_runtime': float(np.min(runtimes)),
            'max_runtime': float(np.max(runtimes)),
            'avg_throughput': float(np.mean(throughputs)),
            'avg_intermediate_mb': float(np.mean(intermediate)) / 1024 / 1024,
            'num_runs': len(runs)
        }

    return aggregated


def _save(output_file):
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_file, dpi=150, bbox_inches='tight')
    print(f"✓ Saved: {output_file}")
    plt.close()


def plot_task_scaling(aggregated, prefix, field, label, output_file, color='orangered'):
    """Plot runtime vs number of map or reduce tasks."""
    data = [(v[field], v['avg_runtime'], v['std_runtime'])
            for k, v in aggregated.items()
            if k.startswith(prefix)]

    if not data:
        print(f"⚠️  No {prefix.rstrip('_')} data found")
        return False

    data.sort()
    tasks, runtimes, stds = zip(*data)

    plt.figure(figsize=(10, 6))
    plt.errorbar(tasks, runtimes, yerr=stds, marker='s', capsize=5,
                 linewidth=2, markersize=8, color=color)
    plt.xlabel(label, fontsize=12)
    plt.ylabel('Runtime (seconds)', fontsize=12)
    plt.title(f'Word Count Performance: {label}', fontsize=14, fontweight='bold')
    plt.xticks(tasks)
    _save(output_file)
    return True


def plot_speedup(aggregated, output_file):
    """Plot speedup for map task scaling."""
    data = [(v['num_map_tasks'], v['avg_runtime'])
            for k, v in aggregated.items()
            if k.startswith('map_scaling_')]

    if len(data) < 2:
        print("⚠️  Insufficient data for speedup plot")
        return False

    data.sort()
    map_tasks, runtimes = zip(*data)

    # Speedup relative to the smallest task count
    speedups = np.array(runtimes[0]) / np.array(runtimes)

    plt.figure(figsize=(10, 6))
    plt.plot(map_tasks, speedups, marker='o', linewidth=2, markersize=8,
             label='Actual Speedup', color='blue')
    plt.plot(map_tasks, np.array(map_tasks) / map_tasks[0], linestyle='--', linewidth=2,
             label='Ideal (Linear) Speedup', color='gray', alpha=0.7)
    plt.xlabel('Number of Map Tasks', fontsize=12)
    plt.ylabel('Speedup', fontsize=12)
    plt.title('Speedup vs Ideal Linear Speedup', fontsize=14, fontweight='bold')
    plt.xticks(map_tasks)
    plt.legend(fontsize=11)
    _save(output_file)
    return True


def plot_combiner_comparison(aggregated, output_file):
    """Bar chart of runtime and intermediate data size with and without the combiner."""
    on = aggregated.get('combiner_on')
    off = aggregated.get('combiner_off')
    if not on or not off:
        print("⚠️  No combiner comparison data found")
        return False

    labels = ['Combiner on', 'Combiner off']
    x = np.arange(len(labels))

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))
    ax1.bar(x, [on['avg_runtime'], off['avg_runtime']],
            yerr=[on['std_runtime'], off['std_runtime']], capsize=5, color=['green', 'gray'])
    ax1.set_xticks(x)
    ax1.set_xticklabels(labels)
    ax1.set_ylabel('Runtime (seconds)')
    ax2.bar(x, [on['avg_intermediate_mb'], off['avg_intermediate_mb']], color=['green', 'gray'])
    ax2.set_xticks(x)
    ax2.set_xticklabels(labels)
    ax2.set_ylabel('Intermediate data (MB)')
    fig.suptitle('Effect of the Local Combiner', fontsize=14, fontweight='bold')
    _save(output_file)
    return True


def generate_summary_table(aggregated, output_file):
    """Generate a markdown table summarizing all results."""
    lines = [
        "# Benchmark Results Summary\n",
        "| Benchmark | Maps | Reduces | Input (MB) | Avg Runtime (s) | Std Dev | Throughput (MB/s) |",
        "|-----------|------|---------|------------|-----------------|---------|-------------------|"
    ]

    for name in sorted(aggregated.keys()):
        v = aggregated[name]
        lines.append(
            f"| {v['benchmark_name']:<21} | {v['num_map_tasks']:>4} | "
            f"{v['num_reduce_tasks']:>7} | {v['input_size_mb']:>10.2f} | "
            f"{v['avg_runtime']:>15.2f} | {v['std_runtime']:>7.3f} | "
            f"{v['avg_throughput']:>17.3f} |"
        )

    with open(output_file, 'w') as f:
        f.write('\n'.join(lines) + '\n')

    print(f"✓ Saved: {output_file}")


def generate_all(json_file, plots_dir=PLOTS_DIR):
    """Generate every plot and the summary table for one results file."""
    results = load_results(json_file)
    aggregated = aggregate_runs(results)
    print(f"✓ Aggregated {len(results)} runs into {len(aggregated)} unique benchmarks")

    plots_dir = Path(plots_dir)
    plots_dir.mkdir(parents=True, exist_ok=True)

    plot_task_scaling(aggregated, 'map_scaling_', 'num_map_tasks', 'Number of Map Tasks',
                      plots_dir / "1_map_task_scaling.png")
    plot_task_scaling(aggregated, 'reduce_scaling_', 'num_reduce_tasks', 'Number of Reduce Tasks',
                      plots_dir / "2_reduce_task_scaling.png", color='green')
    plot_speedup(aggregated, plots_dir / "3_speedup_analysis.png")
    plot_combiner_comparison(aggregated, plots_dir / "4_combiner_comparison.png")
    generate_summary_table(aggregated, plots_dir / "results_table.md")
    return aggregated


def main(argv=None):
    """Generate all plots from benchmark results."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("Usage: wordcount-plot <results.json> [plots_dir]")
        return 1

    json_file = argv[0]
    if not Path(json_file).exists():
        print(f"❌ File not found: {json_file}")
        return 1

    plots_dir = Path(argv[1]) if len(argv) > 1 else PLOTS_DIR
    generate_all(json_file, plots_dir)
    print(f"All plots saved to: {plots_dir}/")
    return 0


if __name__ == "__main__":
    sys.exit(main())
