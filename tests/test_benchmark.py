"""
Tests for the benchmark suite and the plotting of its results
"""

import json

import pytest

from wordcount_engine import benchmark


def test_generate_input_reaches_target_size(tmp_path):
    path = tmp_path / "input.txt"

    size = benchmark.generate_input(path, 4096)

    assert size >= 4096
    words = path.read_text().split()
    assert set(words) <= set(benchmark.VOCABULARY)


def test_generate_input_is_deterministic(tmp_path):
    benchmark.generate_input(tmp_path / "a.txt", 2000, seed=7)
    benchmark.generate_input(tmp_path / "b.txt", 2000, seed=7)

    assert (tmp_path / "a.txt").read_bytes() == (tmp_path / "b.txt").read_bytes()


def test_run_suite_saves_results(tmp_path):
    selected = [b for b in benchmark.BENCHMARKS if b['name'].startswith('combiner_')]

    results = benchmark.run_suite(selected, 20 * 1024, runs=1, results_dir=tmp_path, max_workers=2)

    assert [r['benchmark_name'] for r in results] == ['combiner_on', 'combiner_off']
    assert all(r['success'] for r in results)
    on, off = results
    assert on['counter_reduce_output_records'] == off['counter_reduce_output_records']
    assert on['intermediate_size_bytes'] < off['intermediate_size_bytes']

    json_files = list(tmp_path.glob("benchmark_results_*.json"))
    assert len(json_files) == 1
    assert len(json.loads(json_files[0].read_text())) == 2
    assert len(list(tmp_path.glob("benchmark_results_*.csv"))) == 1


def test_plots_from_results(tmp_path):
    pytest.importorskip("matplotlib")
    from wordcount_engine import plotting

    selected = [b for b in benchmark.BENCHMARKS
                if b['name'].startswith(('map_scaling_1', 'map_scaling_2', 'combiner_'))]
    benchmark.run_suite(selected, 10 * 1024, results_dir=tmp_path, max_workers=2)
    json_file = next(tmp_path.glob("benchmark_results_*.json"))
    plots_dir = tmp_path / "plots"

    aggregated = plotting.generate_all(json_file, plots_dir)

    assert set(aggregated) == {'map_scaling_1', 'map_scaling_2', 'combiner_on', 'combiner_off'}
    assert (plots_dir / "1_map_task_scaling.png").exists()
    assert (plots_dir / "3_speedup_analysis.png").exists()
    assert (plots_dir / "4_combiner_comparison.png").exists()
    assert not (plots_dir / "2_reduce_task_scaling.png").exists()
    assert "combiner_on" in (plots_dir / "results_table.md").read_text()
