"""
Pytest configuration and shared fixtures
"""

import os
import shutil
import tempfile
from collections import Counter

import pytest

from wordcount_engine.jobs import word_count
from wordcount_engine.worker.function_loader import JobFunctions


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files"""
    dirpath = tempfile.mkdtemp()
    yield dirpath
    shutil.rmtree(dirpath)


@pytest.fixture
def sample_text():
    """Sample text for testing"""
    return """The quick brown fox jumps over the lazy dog.
The dog was really lazy.
The fox was very quick and brown.
Quick brown foxes are amazing animals.
Lazy dogs sleep all day."""


@pytest.fixture
def sample_input_file(temp_dir, sample_text):
    """Create a sample input file for testing"""
    filepath = os.path.join(temp_dir, 'input.txt')
    with open(filepath, 'w') as f:
        f.write(sample_text)
    return filepath


@pytest.fixture
def wordcount_functions():
    """The built-in word count job functions"""
    return JobFunctions(
        map_function=word_count.map_function,
        reduce_function=word_count.reduce_function,
        combiner_function=word_count.combiner_function
    )


@pytest.fixture
def wordcount_job_file():
    """Path to the built-in word count job module"""
    return word_count.__file__


def reference_counts(text):
    """Word counts computed by a plain whitespace split"""
    return Counter(text.split())


def read_output(output_dir):
    """Read every part file of an output directory into a {word: count} dict"""
    counts = {}
    for name in sorted(os.listdir(output_dir)):
        if not name.startswith('part-'):
            continue
        with open(os.path.join(output_dir, name), 'r', encoding='utf-8', errors='surrogateescape') as f:
            for line in f:
                word, count = line.rstrip('\n').split('\t')
                assert word not in counts, f"{word} appears in more than one output line"
                counts[word] = int(count)
    return counts
