"""
SOG Splat Codec
Copyright (c) 2026 Francesco Fugazzi (@franzipol)

This software is released under the MIT License.
For more information about the license, please see the LICENSE file.
"""

import math
from multiprocessing import cpu_count
from multiprocessing.pool import ThreadPool
from .utility_functions import debug_print

# Below this many points per worker the pool costs more than it saves
MIN_CHUNK = 65536

def default_workers():
    return max(1, cpu_count() - 1)

def chunk_ranges(count, num_workers, min_chunk=MIN_CHUNK):
    """
    Splits [0, count) into contiguous, disjoint [start, end) ranges.
    Every index lands in exactly one range.
    """
    if count <= 0:
        return []
    chunk_size = max(1, min_chunk, int(math.ceil(count / max(1, num_workers))))
    return [(start, min(start + chunk_size, count)) for start in range(0, count, chunk_size)]

def parallel_chunks(count, worker, num_workers=None, min_chunk=MIN_CHUNK):
    """
    Runs worker(start, end) over disjoint index ranges covering [0, count).

    Each worker owns its slice of the output buffers, so no locking is needed.
    Workers are threads: the per-range work is numpy and releases the GIL.
    Exceptions raised by a worker propagate to the caller.
    """
    if num_workers is None:
        num_workers = default_workers()

    ranges = chunk_ranges(count, num_workers, min_chunk)
    if len(ranges) <= 1:
        for start, end in ranges:
            worker(start, end)
        return

    debug_print(f"[DEBUG] parallel_chunks: {count} items over {len(ranges)} ranges")
    with ThreadPool(processes=min(num_workers, len(ranges))) as pool:
        pool.starmap(worker, ranges)
