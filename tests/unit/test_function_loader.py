"""
Unit tests for FunctionLoader
"""

import os

import pytest

from wordcount_engine.worker.function_loader import FunctionLoader, JobFunctions, normalize_output


class TestFunctionLoaderBasics:
    """Tests for basic loading functionality"""

    def test_loads_valid_job_file(self, wordcount_job_file):
        """Test loading a job from a file path"""
        loader = FunctionLoader(wordcount_job_file)
        module = loader.load_module()

        assert hasattr(module, 'map_function')
        assert hasattr(module, 'reduce_function')
        assert hasattr(module, 'combiner_function')

    def test_loads_job_by_module_name(self):
        """Test loading the built-in job by dotted name"""
        loader = FunctionLoader('wordcount_engine.jobs.word_count')
        functions = loader.load()

        assert isinstance(functions, JobFunctions)
        assert list(functions.map_function(0, "a b a")) == [("a", 1), ("b", 1), ("a", 1)]

    def test_raises_error_for_nonexistent_file(self):
        """Test that loading non-existent file raises FileNotFoundError"""
        loader = FunctionLoader('/nonexistent/file.py')

        with pytest.raises(FileNotFoundError):
            loader.load_module()

    def test_raises_error_for_unknown_module(self):
        with pytest.raises(ImportError):
            FunctionLoader('wordcount_engine.jobs.does_not_exist').load_module()

    def test_get_map_function_loads_module_automatically(self, wordcount_job_file):
        """Test that get_map_function loads module if not already loaded"""
        loader = FunctionLoader(wordcount_job_file)
        map_func = loader.get_map_function()

        assert callable(map_func)
        assert loader.module is not None


class TestFunctionLoaderJobFiles:
    """Tests for user-provided job files"""

    def test_raises_error_when_map_function_missing(self, temp_dir):
        invalid_file = os.path.join(temp_dir, 'invalid.py')
        with open(invalid_file, 'w') as f:
            f.write("def reduce_function(key, values):\n    yield (key, sum(values))\n")

        loader = FunctionLoader(invalid_file)
        with pytest.raises(AttributeError, match="map_function"):
            loader.get_map_function()

    def test_combiner_defaults_to_reduce_function(self, temp_dir):
        job_file = os.path.join(temp_dir, 'no_combiner.py')
        with open(job_file, 'w') as f:
            f.write(
                "def map_function(key, value):\n"
                "    yield (value, 1)\n"
                "def reduce_function(key, values):\n"
                "    yield (key, sum(values))\n"
            )

        loader = FunctionLoader(job_file)
        assert loader.get_combiner_function() is loader.get_reduce_function()

    def test_explicit_combiner_is_used(self, temp_dir):
        job_file = os.path.join(temp_dir, 'with_combiner.py')
        with open(job_file, 'w') as f:
            f.write(
                "def map_function(key, value):\n"
                "    yield (value, 1)\n"
                "def reduce_function(key, values):\n"
                "    yield (key, sum(values))\n"
                "def combiner_function(key, values):\n"
                "    return sum(values)\n"
            )

        functions = FunctionLoader(job_file).load()
        assert functions.combiner_function is not functions.reduce_function
        assert functions.combiner_function("k", [1, 2]) == 3


class TestNormalizeOutput:
    """Tests for accepted reduce/combiner return shapes"""

    def test_generator_of_pairs(self):
        def gen():
            yield ("a", 1)
            yield ("b", 2)
        assert list(normalize_output("a", gen())) == [("a", 1), ("b", 2)]

    def test_single_pair(self):
        assert list(normalize_output("a", ("a", 4))) == [("a", 4)]

    def test_bare_value_is_paired_with_key(self):
        assert list(normalize_output("word", 7)) == [("word", 7)]

    def test_none_yields_nothing(self):
        assert list(normalize_output("word", None)) == []

    def test_tuple_of_two_pairs_yields_both(self):
        assert list(normalize_output("a", (("a", 1), ("b", 2)))) == [("a", 1), ("b", 2)]

    def test_pair_with_tuple_value_stays_one_pair(self):
        assert list(normalize_output("a", ("a", (1, 2, 3)))) == [("a", (1, 2, 3))]
