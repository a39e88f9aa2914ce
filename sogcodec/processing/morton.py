import numpy as np
from ..utils import config
from ..utils.utility_functions import debug_print

def part1by2(v):
    """Spreads the low 10 bits of v so there are two zero bits between each."""
    x = np.asarray(v, dtype=np.uint32) & np.uint32(0x000003ff)
    x = (x ^ (x << np.uint32(16))) & np.uint32(0xff0000ff)
    x = (x ^ (x << np.uint32(8))) & np.uint32(0x0300f00f)
    x = (x ^ (x << np.uint32(4))) & np.uint32(0x030c30c3)
    x = (x ^ (x << np.uint32(2))) & np.uint32(0x09249249)
    return x

def encode_morton3(ix, iy, iz):
    return (part1by2(iz) << np.uint32(2)) | (part1by2(iy) << np.uint32(1)) | part1by2(ix)

def _morton_codes(points):
    """
    Quantizes points (M, 3) to 10 bits per axis inside their own bounds.
    Returns None when the bounds are a single point.
    """
    mins = points.min(axis=0)
    extent = points.max(axis=0) - mins

    if not np.any(extent):
        return None

    # A flat axis quantizes to 0
    safe_extent = np.where(extent == 0, 1.0, extent)
    mul = np.where(extent == 0, 0.0, 1024.0 / safe_extent)

    q = np.floor((points - mins) * mul)
    q = np.minimum(q, 1023).astype(np.uint32)
    return encode_morton3(q[:, 0], q[:, 1], q[:, 2])

def _order_range(indices, start, end, positions, bucket_size):
    count = end - start
    if count <= 1:
        return

    idx = indices[start:end]
    codes = _morton_codes(positions[idx])
    if codes is None:
        return

    order = np.argsort(codes, kind='stable')
    indices[start:end] = idx[order]
    codes = codes[order]

    # Runs of equal code collapsed into one cell; refine the crowded ones
    boundaries = np.flatnonzero(codes[1:] != codes[:-1]) + 1
    bucket_starts = np.concatenate(([0], boundaries))
    bucket_ends = np.concatenate((boundaries, [count]))

    for b in np.flatnonzero(bucket_ends - bucket_starts > bucket_size):
        _order_range(indices, start + int(bucket_starts[b]), start + int(bucket_ends[b]), positions, bucket_size)

def reorder(positions, bucket_size=None) -> np.ndarray:
    """
    Computes a spatially coherent ordering of the points.

    Points are sorted by a 30-bit Morton code of their position inside the
    bounding box. Any run of more than bucket_size points sharing a code is
    sorted again inside its own, tighter bounding box.

    Args:
        positions: (N, 3) array of point positions.
        bucket_size: largest equal-code run left as is (default config.MORTON_BUCKET_SIZE).

    Returns:
        np.ndarray: int64 permutation of [0, N).
    """
    if bucket_size is None:
        bucket_size = config.MORTON_BUCKET_SIZE

    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    indices = np.arange(len(positions), dtype=np.int64)
    _order_range(indices, 0, len(indices), positions, bucket_size)

    debug_print(f"[DEBUG] Morton ordering computed for {len(indices)} points.")
    return indices
