"""
Classic MapReduce word count job.
Counts the occurrences of each whitespace-delimited word in the input text.
Words are case-sensitive and keep their punctuation.
"""

from wordcount_engine.worker.tokenizer import tokenize


def map_function(key, value):
    """
    Map function: emit (word, 1) for each word in the line.

    Args:
        key: Byte offset of the line (unused)
        value: Text line

    Yields:
        (word, 1) tuples
    """
    for word in tokenize(value):
        yield (word, 1)


def reduce_function(key, values):
    """
    Reduce function: sum all counts for a word.

    Args:
        key: Word
        values: Counts (1s from map, or partial sums from the combiner)

    Yields:
        (word, total_count) tuple
    """
    yield (key, sum(values))


# Summing is associative and commutative, so the reducer doubles as the combiner
combiner_function = reduce_function
