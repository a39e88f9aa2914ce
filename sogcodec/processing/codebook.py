import math
import numpy as np
from . import gpu_ops
from ..utils import config
from ..utils.utility_functions import debug_print

class Codebook:
    """
    Sorted cluster centroids plus one label per clustered row.

    centroids is (K,) for 1-D codebooks and (K, D) otherwise. Rows are in
    ascending order (lexicographic for D > 1) and labels index that order.
    """
    def __init__(self, centroids: np.ndarray, labels: np.ndarray):
        self.centroids = centroids
        self.labels = labels

    def __len__(self):
        return len(self.centroids)

    def values(self):
        """Codebook as plain floats, for the manifest."""
        return [float(c) for c in np.asarray(self.centroids).reshape(-1)]

def _sort_order(centroids):
    if centroids.shape[1] == 1:
        return np.argsort(centroids[:, 0], kind='stable')
    # lexsort treats its last key as primary
    return np.lexsort(centroids.T[::-1])

def compress(values, levels, iterations=None, use_gpu=True):
    """
    Quantizes values (M,) or (M, D) into at most `levels` representatives.

    The raw clustering order is arbitrary, so centroids are sorted ascending
    and every label is remapped to its centroid's sorted position.

    Returns:
        Codebook, or None when clustering produced no centroids.
    """
    if iterations is None:
        iterations = config.DEFAULT_ITERATIONS

    values = np.asarray(values, dtype=np.float32)
    one_d = values.ndim == 1
    if one_d:
        values = values.reshape(-1, 1)

    centroids, labels = gpu_ops.kmeans(values, levels, max_iter=iterations, use_gpu=use_gpu)
    if len(centroids) == 0:
        return None

    order = _sort_order(centroids)
    inv_order = np.empty(len(order), dtype=np.int64)
    inv_order[order] = np.arange(len(order))

    label_dtype = np.uint8 if levels <= 256 else np.uint16
    sorted_centroids = centroids[order]
    if one_d:
        sorted_centroids = sorted_centroids[:, 0]

    return Codebook(sorted_centroids, inv_order[labels].astype(label_dtype))

def cluster1d(columns, iterations=None, use_gpu=True, levels=None):
    """
    Builds one shared 1-D codebook for every column of columns (N, C).

    Values are flattened column by column before clustering. Labels come
    back reshaped to (C, N), so labels[c][i] belongs to row i, column c.
    """
    if levels is None:
        levels = config.CODEBOOK_LEVELS

    columns = np.asarray(columns, dtype=np.float32)
    num_rows, num_columns = columns.shape
    debug_print(f"[DEBUG] Running k-means clustering: dims=1 points={num_rows * num_columns} clusters={levels} iterations={iterations}")

    result = compress(columns.T.reshape(-1), levels, iterations, use_gpu)
    if result is None:
        return None
    result.labels = result.labels.reshape(num_columns, num_rows)
    return result

def sh_palette_size(count):
    """
    Number of SH palette entries for count points: a power of two multiple of
    1024, at most 64 * 1024 and at most count, but never below 1024.
    """
    ratio = count / 1024.0
    pow2 = 2 ** int(math.floor(math.log2(ratio))) if ratio >= 1 else 0
    size = min(64, pow2) * 1024
    size = min(size, count)
    return max(size, 1024)
