"""
Hash partitioner.
Routes every key to one of R reduce partitions using a stable MD5 hash of its
bytes, so the assignment does not depend on PYTHONHASHSEED.
"""

import hashlib

from wordcount_engine.common.records import encode_key


def partition(key: str, num_partitions: int) -> int:
    """
    Determine which reduce partition handles this key

    Args:
        key: Intermediate key (a word)
        num_partitions: Number of reduce partitions R

    Returns:
        Integer in [0, R)
    """
    if num_partitions < 1:
        raise ValueError(f"num_partitions must be >= 1, got {num_partitions}")
    if num_partitions == 1:
        return 0
    hash_value = int.from_bytes(hashlib.md5(encode_key(str(key))).digest()[:8], 'big')
    return hash_value % num_partitions
