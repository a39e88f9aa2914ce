import numpy as np
import logging

logger = logging.getLogger(__name__)

# Attempt to import Taichi
HAS_TAICHI = False
try:
    import os
    os.environ["TI_LOG_LEVEL"] = "error"
    import taichi as ti
    try:
        ti.init(arch=ti.gpu, offline_cache=True, log_level='error')
    except Exception as e:
        if "already initialized" not in str(e) and "Multi-threading" not in str(e):
            logger.info("Taichi GPU backend unavailable (%s), using the Taichi CPU backend", e)
            ti.init(arch=ti.cpu, log_level='error')

    HAS_TAICHI = True
except ImportError:
    pass

from sklearn.cluster import MiniBatchKMeans

# Fixed seed: the same input must always produce the same archive
SEED = 0

def kmeans(data: np.ndarray, k: int, max_iter=10, use_gpu=True):
    """
    Clusters rows of data (N, D) into at most k centroids.

    Returns (centroids (K, D) float32, labels (N,) int32). When k >= N every
    row is its own centroid. Empty input yields empty arrays.

    Scalar data (D == 1) always takes the exact sorted-boundary path; vectors
    go to Taichi when available and requested, otherwise to scikit-learn.
    use_gpu therefore only has an effect when D > 1.
    """
    data = np.asarray(data, dtype=np.float32)
    if data.ndim == 1:
        data = data.reshape(-1, 1)
    N, D = data.shape

    if N == 0 or k <= 0:
        return np.zeros((0, D), dtype=np.float32), np.zeros(0, dtype=np.int32)

    if k >= N:
        return data.copy(), np.arange(N, dtype=np.int32)

    if D == 1:
        return _kmeans_1d(data[:, 0], k, max_iter)

    if not HAS_TAICHI or not use_gpu:
        logger.debug("kmeans: scikit-learn (CPU) for N=%d D=%d K=%d", N, D, k)
        return _kmeans_sklearn(data, k, max_iter)

    try:
        return _kmeans_taichi(data, k, max_iter)
    except Exception as e:
        logger.warning("Taichi execution failed: %s. Falling back to scikit-learn (CPU).", e)
        return _kmeans_sklearn(data, k, max_iter)

def _kmeans_1d(values, k, max_iter):
    """
    Lloyd iterations on scalars. With sorted centroids the nearest one is
    found by bisecting the midpoints, so each pass is O(N log K).
    """
    values = values.astype(np.float64)
    uniq = np.unique(values)

    if len(uniq) <= k:
        centroids = uniq
    else:
        # Quantiles of the distinct values: sorted, distinct, dense where data is
        centroids = uniq[np.round(np.linspace(0, len(uniq) - 1, k)).astype(np.int64)]
        for _ in range(max_iter):
            labels = np.searchsorted((centroids[:-1] + centroids[1:]) * 0.5, values)
            sums = np.bincount(labels, weights=values, minlength=len(centroids))
            counts = np.bincount(labels, minlength=len(centroids))
            # An emptied cluster keeps its previous position
            updated = np.where(counts > 0, sums / np.maximum(counts, 1), centroids)
            if np.array_equal(updated, centroids):
                break
            centroids = updated

    labels = np.searchsorted((centroids[:-1] + centroids[1:]) * 0.5, values)
    return centroids.astype(np.float32).reshape(-1, 1), labels.astype(np.int32)

def _kmeans_sklearn(data, k, max_iter):
    bs = min(4096 * 4, len(data))
    km = MiniBatchKMeans(n_clusters=k, max_iter=max_iter, batch_size=bs, n_init='auto',
                         compute_labels=True, random_state=SEED)
    km.fit(data)
    return km.cluster_centers_.astype(np.float32), km.labels_.astype(np.int32)

# --- Taichi Kernels ---

if HAS_TAICHI:
    @ti.kernel
    def assign_nearest(data: ti.types.ndarray(), centroids: ti.types.ndarray(), labels: ti.types.ndarray(), N: int, K: int, D: int):
        for i in range(N):
            best_dist = 1e30
            best_k = 0
            for c in range(K):
                dist = 0.0
                for dim in range(D):
                    diff = data[i, dim] - centroids[c, dim]
                    dist += diff * diff
                if dist < best_dist:
                    best_dist = dist
                    best_k = c
            labels[i] = best_k

    @ti.kernel
    def accumulate_clusters(data: ti.types.ndarray(), labels: ti.types.ndarray(), sums: ti.types.ndarray(), counts: ti.types.ndarray(), N: int, D: int):
        for i in range(N):
            l = labels[i]
            for dim in range(D):
                ti.atomic_add(sums[l, dim], data[i, dim])
            ti.atomic_add(counts[l], 1)

def _kmeans_taichi(data, K, max_iter):
    N, D = data.shape
    data = np.ascontiguousarray(data, dtype=np.float32)

    rng = np.random.default_rng(SEED)
    centroids = data[np.sort(rng.choice(N, K, replace=False))].copy()
    labels = np.zeros(N, dtype=np.int32)
    sums = np.zeros((K, D), dtype=np.float32)
    counts = np.zeros(K, dtype=np.int32)

    for _ in range(max_iter):
        assign_nearest(data, centroids, labels, N, K, D)
        sums.fill(0.0)
        counts.fill(0)
        accumulate_clusters(data, labels, sums, counts, N, D)
        ti.sync()
        occupied = counts > 0
        centroids[occupied] = sums[occupied] / counts[occupied, None]

    # Labels must refer to the final centroids
    assign_nearest(data, centroids, labels, N, K, D)
    ti.sync()
    return centroids, labels
