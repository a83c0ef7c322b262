"""
Local combiner.
Pre-aggregates one buffer of map output before it is spilled.
"""

from collections import defaultdict
from typing import Callable, Iterable, List, Optional

from wordcount_engine.common.records import KeyValue
from wordcount_engine.worker.function_loader import normalize_output


def sum_combiner(key, values):
    yield (key, sum(values))


def combine(pairs: Iterable[KeyValue], combiner_function: Optional[Callable] = None) -> List[KeyValue]:
    """
    Group pairs by key and apply the combiner function to each group

    Args:
        pairs: (key, value) pairs from a single map task buffer
        combiner_function: Callable(key, values) producing combined output;
            sums values when omitted

    Returns:
        Combined (key, value) pairs, one per key for summing combiners
    """
    combiner_function = combiner_function or sum_combiner

    key_groups = defaultdict(list)
    for key, value in pairs:
        key_groups[key].append(value)

    combined = []
    for key, values in key_groups.items():
        combined.extend(normalize_output(key, combiner_function(key, values)))
    return combined
