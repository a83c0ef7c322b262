"""
Record types and the intermediate segment format.

Input bytes are decoded as UTF-8 with surrogateescape so that words are kept
byte-exact all the way to the output files. Segments are JSON lines files of
{"key": ..., "value": ...} objects, sorted by key once spilled.
"""

import heapq
import json
import os
from operator import itemgetter
from typing import Iterable, Iterator, List, NamedTuple, Tuple

ENCODING = 'utf-8'
ERRORS = 'surrogateescape'

# Most segments a merge keeps open at once
MERGE_FACTOR = 64


class Record(NamedTuple):
    """One input line. offset is the byte position of the line in its file."""
    offset: int
    text: str


KeyValue = Tuple[str, int]


def decode_line(raw: bytes) -> str:
    """Decode a raw input line and drop its line terminator"""
    if raw.endswith(b'\n'):
        raw = raw[:-1]
        if raw.endswith(b'\r'):
            raw = raw[:-1]
    return raw.decode(ENCODING, ERRORS)


def encode_key(key: str) -> bytes:
    return key.encode(ENCODING, ERRORS)


def write_segment(path: str, pairs: Iterable[KeyValue]) -> int:
    """Write pairs to a segment file and return how many were written"""
    count = 0
    with open(path, 'w', encoding='ascii') as f:
        for key, value in pairs:
            f.write(json.dumps({'key': key, 'value': value}) + '\n')
            count += 1
    return count


def read_segment(path: str) -> Iterator[KeyValue]:
    """Yield the pairs stored in a segment file"""
    with open(path, 'r', encoding='ascii') as f:
        for line in f:
            if not line.strip():
                continue
            record = json.loads(line)
            yield record['key'], record['value']


def merge_segments(paths: List[str], output_path: str) -> int:
    """Merge sorted segments into one sorted segment and return its record count"""
    streams = [read_segment(path) for path in paths]
    return write_segment(output_path, heapq.merge(*streams, key=itemgetter(0)))


def merge_passes(paths: List[str], factor: int, scratch_dir: str, prefix: str = 'merge') -> List[str]:
    """
    Merge sorted segments in batches until at most `factor` remain.

    No more than `factor` segments are open at once. Intermediate files are
    written to scratch_dir and deleted once a later pass consumed them; the
    input segments themselves are never deleted.

    Returns:
        The remaining segment paths, a mix of inputs and merged files
    """
    if factor < 2:
        raise ValueError(f"merge factor must be >= 2, got {factor}")

    paths = list(paths)
    created = set()
    merge_pass = 0
    while len(paths) > factor:
        merged = []
        for batch_number, start in enumerate(range(0, len(paths), factor)):
            batch = paths[start:start + factor]
            if len(batch) == 1:
                merged.append(batch[0])
                continue
            target = os.path.join(scratch_dir, f"{prefix}-{merge_pass}-{batch_number}.jsonl")
            merge_segments(batch, target)
            for path in batch:
                if path in created:
                    os.remove(path)
                    created.discard(path)
            created.add(target)
            merged.append(target)
        paths = merged
        merge_pass += 1
    return paths
