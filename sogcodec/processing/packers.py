import numpy as np
from .codebook import cluster1d, compress, sh_palette_size
from .raster import PackedPlane, new_plane
from ..utils.utility import parallel_chunks
from ..utils.utility_functions import debug_print

SQRT2 = np.sqrt(2.0)

# Components kept for each dropped (largest) quaternion component
OTHER_COMPONENTS = np.array([[1, 2, 3], [0, 2, 3], [0, 1, 3], [0, 1, 2]])

def log_transform(v):
    """Sign-preserving log: sign(v) * ln(|v| + 1)."""
    return np.sign(v) * np.log(np.abs(v) + 1.0)

def inv_log_transform(v):
    return np.sign(v) * (np.exp(np.abs(v)) - 1.0)

def sigmoid(x):
    with np.errstate(over='ignore'):
        return 1.0 / (1.0 + np.exp(-np.asarray(x, dtype=np.float64)))

def opacity_to_alpha(logits):
    """
    Opacity logits to alpha bytes, never below 1.

    The lossless WebP codec may treat alpha=0 pixels as fully transparent and
    drop their RGB, which would lose the color indices stored there.
    """
    alpha = np.round(np.clip(sigmoid(logits), 0.0, 1.0) * 255.0)
    return np.maximum(alpha, 1).astype(np.uint8)

# --- Positions ---

def pack_positions(positions, permutation, width, height, num_workers=None):
    """
    Encodes positions as 16-bit log-space values split over two planes.

    means_l holds the low byte and means_u the high byte of each axis, in RGB.
    Returns ([means_l, means_u], manifest fragment).
    """
    count = len(permutation)
    logs = log_transform(np.asarray(positions, dtype=np.float64)[permutation])

    mins = logs.min(axis=0)
    maxs = logs.max(axis=0)
    extent = maxs - mins
    # Flat axes encode 0
    scale = np.where(extent > 0, 65535.0 / np.where(extent > 0, extent, 1.0), 0.0)

    means_l = new_plane('means_l.webp', width, height)
    means_u = new_plane('means_u.webp', width, height)

    def worker(start, end):
        q = np.clip((logs[start:end] - mins) * scale, 0.0, 65535.0).astype(np.uint16)
        means_l.data[start:end, :3] = q & 0xff
        means_u.data[start:end, :3] = q >> 8

    parallel_chunks(count, worker, num_workers)

    meta = {
        "mins": [float(m) for m in mins],
        "maxs": [float(m) for m in maxs],
        "files": [means_l.name, means_u.name],
    }
    return [means_l, means_u], meta

# --- Rotations ---

def encode_quaternions(quats):
    """
    Smallest-three encoding of (M, 4) quaternions in (w, x, y, z) order.

    Returns (bytes (M, 4) uint8, degenerate mask). Zero-length or non-finite
    quaternions are encoded as the identity and flagged in the mask.
    """
    q = np.asarray(quats, dtype=np.float64).reshape(-1, 4)
    length = np.linalg.norm(q, axis=1)
    degenerate = ~np.isfinite(length) | (length == 0)

    q = q / np.where(degenerate, 1.0, length)[:, None]
    q[degenerate] = (1.0, 0.0, 0.0, 0.0)

    max_idx = np.abs(q).argmax(axis=1)
    max_val = np.take_along_axis(q, max_idx[:, None], axis=1)

    # q and -q are the same rotation; keep the largest component positive
    q = np.where(max_val < 0, -q, q) * SQRT2

    rest = np.take_along_axis(q, OTHER_COMPONENTS[max_idx], axis=1)

    out = np.empty((len(q), 4), dtype=np.uint8)
    out[:, :3] = np.round(np.clip(rest * 0.5 + 0.5, 0.0, 1.0) * 255.0)
    out[:, 3] = 252 + max_idx
    return out, degenerate

def decode_quaternions(packed):
    """Inverse of encode_quaternions, up to quantization. Returns (M, 4) float64."""
    packed = np.asarray(packed, dtype=np.uint8).reshape(-1, 4)
    rest = (packed[:, :3].astype(np.float64) / 255.0 - 0.5) * 2.0 / SQRT2
    max_idx = packed[:, 3].astype(np.int64) - 252

    missing = np.sqrt(np.maximum(1.0 - np.sum(rest ** 2, axis=1), 0.0))

    q = np.empty((len(packed), 4), dtype=np.float64)
    np.put_along_axis(q, OTHER_COMPONENTS[max_idx], rest, axis=1)
    np.put_along_axis(q, max_idx[:, None], missing[:, None], axis=1)
    return q

def pack_rotations(rotations, permutation, width, height, num_workers=None):
    """Returns ([quats plane], manifest fragment, number of degenerate quaternions)."""
    count = len(permutation)
    rotations = np.asarray(rotations)
    quats = new_plane('quats.webp', width, height)
    degenerate = np.zeros(count, dtype=bool)

    def worker(start, end):
        encoded, bad = encode_quaternions(rotations[permutation[start:end]])
        quats.data[start:end] = encoded
        degenerate[start:end] = bad

    parallel_chunks(count, worker, num_workers)

    return [quats], {"files": [quats.name]}, int(np.count_nonzero(degenerate))

# --- Clustered channels ---

def _scatter_labels(plane, labels, permutation, num_workers):
    """Writes labels (C, N) through the permutation into the plane's first C channels."""
    channels = labels.shape[0]

    def worker(start, end):
        plane.data[start:end, :channels] = labels[:, permutation[start:end]].T

    parallel_chunks(len(permutation), worker, num_workers)

def pack_scales(scales, permutation, width, height, iterations=None, use_gpu=True, num_workers=None):
    """
    Per-axis 8-bit indices into a shared 256-entry scale codebook.
    Returns None when no codebook could be built.
    """
    codebook = cluster1d(np.asarray(scales).reshape(-1, 3), iterations, use_gpu)
    if codebook is None:
        return None

    plane = new_plane('scales.webp', width, height)
    _scatter_labels(plane, codebook.labels, permutation, num_workers)
    return [plane], {"codebook": codebook.values(), "files": [plane.name]}

def pack_colors(colors_dc, opacities, permutation, width, height, iterations=None, use_gpu=True, num_workers=None):
    """
    Per-axis 8-bit color codebook indices in RGB, opacity in alpha.
    Returns None when no codebook could be built.
    """
    codebook = cluster1d(np.asarray(colors_dc).reshape(-1, 3), iterations, use_gpu)
    if codebook is None:
        return None

    plane = new_plane('sh0.webp', width, height)
    _scatter_labels(plane, codebook.labels, permutation, num_workers)

    opacities = np.asarray(opacities).reshape(-1)

    def worker(start, end):
        plane.data[start:end, 3] = opacity_to_alpha(opacities[permutation[start:end]])

    parallel_chunks(len(permutation), worker, num_workers)
    return [plane], {"codebook": codebook.values(), "files": [plane.name]}

# --- Spherical harmonics ---

def flatten_sh(colors_sh):
    """(N, K, 3) coefficients to (N, 3K) vectors, all of R first, then G, then B."""
    colors_sh = np.asarray(colors_sh, dtype=np.float32)
    n, coeffs, _ = colors_sh.shape
    return colors_sh.transpose(0, 2, 1).reshape(n, 3 * coeffs)

def pack_sh(colors_sh, sh_degree, permutation, width, height, iterations=None, use_gpu=True, num_workers=None):
    """
    Two-level vector quantization of the higher-order SH coefficients.

    Each point's coefficients are clustered into a palette; the palette
    values are clustered again into a 256-entry scalar codebook. Returns
    ([shN_centroids, shN_labels], manifest fragment), or None when either
    clustering pass produced nothing.
    """
    count = len(permutation)
    vectors = flatten_sh(colors_sh)
    coeffs = vectors.shape[1] // 3

    palette_size = sh_palette_size(count)
    debug_print(f"[DEBUG] Running k-means clustering: dims={vectors.shape[1]} points={count} clusters={palette_size} iterations={iterations}")

    palette = compress(vectors, palette_size, iterations, use_gpu)
    if palette is None:
        return None
    actual_palette_size = len(palette)

    codebook = cluster1d(palette.centroids, iterations, use_gpu)
    if codebook is None:
        return None

    # Pixel i * coeffs + j holds coefficient j of palette entry i, one channel per color
    centroids_width = 64 * coeffs
    centroids_height = (actual_palette_size + 63) // 64
    centroids = PackedPlane('shN_centroids.webp', centroids_width, centroids_height,
                            np.zeros((centroids_width * centroids_height, 4), dtype=np.uint8))
    texels = codebook.labels.reshape(3, coeffs, actual_palette_size).transpose(2, 1, 0).reshape(-1, 3)
    centroids.data[:len(texels), :3] = texels
    centroids.data[:len(texels), 3] = 255

    labels = new_plane('shN_labels.webp', width, height)
    point_labels = palette.labels.astype(np.uint16)

    def worker(start, end):
        idx = point_labels[permutation[start:end]]
        labels.data[start:end, 0] = idx & 0xff
        labels.data[start:end, 1] = idx >> 8

    parallel_chunks(count, worker, num_workers)

    meta = {
        "count": int(actual_palette_size),
        "palette_size": int(actual_palette_size),
        "bands": int(sh_degree),
        "coeffs": int(coeffs),
        "codebook": codebook.values(),
        "files": [centroids.name, labels.name],
    }
    return [centroids, labels], meta
