import numpy as np
from .utils.utility_functions import debug_print

# Higher-order SH coefficients per color channel for degree 0..3
SH_COEFFS = [0, 3, 8, 15]

def sh_degree_for_coeffs(coeffs):
    if coeffs not in SH_COEFFS:
        raise ValueError(f"Invalid SH coefficient count {coeffs}; expected one of {SH_COEFFS}")
    return SH_COEFFS.index(coeffs)

class GaussianStruct:
    @staticmethod
    def get_standard_order(has_rgb=False):
        """
        Returns the standard 3DGS attribute names in strict order.
        """
        order = [
            'x', 'y', 'z', 'nx', 'ny', 'nz',
            'f_dc_0', 'f_dc_1', 'f_dc_2',
            *[f'f_rest_{i}' for i in range(45)],
            'opacity',
            'scale_0', 'scale_1', 'scale_2',
            'rot_0', 'rot_1', 'rot_2', 'rot_3'
        ]
        if has_rgb:
            order.extend(['red', 'green', 'blue'])
        return order

    @staticmethod
    def define_dtype(sh_degree=3, extra_fields=None):
        """
        Defines the structured numpy dtype for 3DGS data, optionally including extra fields.
        """
        # Degree 0: 0, 1: 9, 2: 24, 3: 45 rest coefficients
        n_coeffs = 3 * SH_COEFFS[sh_degree]

        dtype = [
            ('x', 'f4'), ('y', 'f4'), ('z', 'f4'),
            ('nx', 'f4'), ('ny', 'f4'), ('nz', 'f4'),
            ('f_dc_0', 'f4'), ('f_dc_1', 'f4'), ('f_dc_2', 'f4'),
            *[(f'f_rest_{i}', 'f4') for i in range(n_coeffs)],
            ('opacity', 'f4'),
            ('scale_0', 'f4'), ('scale_1', 'f4'), ('scale_2', 'f4'),
            ('rot_0', 'f4'), ('rot_1', 'f4'), ('rot_2', 'f4'), ('rot_3', 'f4')
        ]

        # Add extra fields (preserving their original types)
        if extra_fields:
            for field_name, field_type in extra_fields:
                # Avoid duplicates
                if not any(d[0] == field_name for d in dtype):
                    dtype.append((field_name, field_type))

        return dtype

def stored_sh_degree(data: np.ndarray) -> int:
    """SH degree implied by the f_rest_* columns present, regardless of content."""
    names = data.dtype.names
    count_sh = sum(1 for i in range(45) if f'f_rest_{i}' in names)

    if count_sh >= 45: return 3
    elif count_sh >= 24: return 2
    elif count_sh >= 9: return 1
    return 0

def detect_sh_degree(data: np.ndarray) -> int:
    """
    Effective SH degree of a structured vertex array.

    Starts from the f_rest_* columns present, then drops trailing bands that
    are all zero (zero-padded files).
    """
    sh_degree = stored_sh_degree(data)
    if sh_degree == 0:
        return 0

    # f_rest is channel-major: f_rest[c * K + j]. A band is active when any
    # channel has a non-zero coefficient in it.
    coeffs = SH_COEFFS[sh_degree]
    last_active = -1
    for j in range(coeffs - 1, -1, -1):
        if any(np.any(data[f'f_rest_{c * coeffs + j}'] != 0) for c in range(3)):
            last_active = j
            break

    if last_active >= 8: effective = 3
    elif last_active >= 3: effective = 2
    elif last_active >= 0: effective = 1
    else: effective = 0

    debug_print(f"[DEBUG] Effective SH degree detected: {effective} (columns allow {sh_degree})")
    return effective

class PointSet:
    """
    Gaussian splat attributes as parallel numpy arrays.

    positions (N, 3), rotations (N, 4) as (w, x, y, z), scales (N, 3) in log
    space, opacities (N,) as logits, colors_dc (N, 3) and colors_sh (N, K, 3)
    with K in {0, 3, 8, 15}.
    """
    def __init__(self, positions, rotations, scales, opacities, colors_dc, colors_sh=None):
        self.positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        n = len(self.positions)
        self.rotations = np.asarray(rotations, dtype=np.float32).reshape(n, 4)
        self.scales = np.asarray(scales, dtype=np.float32).reshape(n, 3)
        self.opacities = np.asarray(opacities, dtype=np.float32).reshape(n)
        self.colors_dc = np.asarray(colors_dc, dtype=np.float32).reshape(n, 3)
        if colors_sh is None:
            colors_sh = np.zeros((n, 0, 3), dtype=np.float32)
        colors_sh = np.asarray(colors_sh, dtype=np.float32)
        if colors_sh.ndim != 3:
            colors_sh = colors_sh.reshape(n, -1, 3)
        if colors_sh.shape[0] != n or colors_sh.shape[2] != 3:
            raise ValueError(f"colors_sh must be (N, K, 3) with N={n}, got {colors_sh.shape}")
        self.colors_sh = colors_sh
        self.sh_degree = sh_degree_for_coeffs(self.colors_sh.shape[1])

    def __len__(self):
        return len(self.positions)

    def with_sh_degree(self, degree):
        """A copy limited to the given SH degree (never raises the degree)."""
        degree = min(degree, self.sh_degree)
        return PointSet(self.positions, self.rotations, self.scales, self.opacities,
                        self.colors_dc, self.colors_sh[:, :SH_COEFFS[degree], :])

    @classmethod
    def from_structured(cls, data: np.ndarray, sh_degree=None):
        """
        Builds a PointSet from a structured vertex array.

        sh_degree defaults to the effective degree found in the data.
        """
        stored = stored_sh_degree(data)
        if sh_degree is None:
            sh_degree = detect_sh_degree(data)
        sh_degree = min(sh_degree, stored)
        coeffs = SH_COEFFS[sh_degree]
        # Channels are laid out with the stride of the stored degree
        stride = SH_COEFFS[stored]

        def columns(names):
            return np.column_stack([data[name] for name in names])

        colors_sh = np.zeros((len(data), coeffs, 3), dtype=np.float32)
        for c in range(3):
            for j in range(coeffs):
                colors_sh[:, j, c] = data[f'f_rest_{c * stride + j}']

        return cls(
            positions=columns(['x', 'y', 'z']),
            rotations=columns(['rot_0', 'rot_1', 'rot_2', 'rot_3']),
            scales=columns(['scale_0', 'scale_1', 'scale_2']),
            opacities=data['opacity'],
            colors_dc=columns(['f_dc_0', 'f_dc_1', 'f_dc_2']),
            colors_sh=colors_sh,
        )

    def to_structured(self) -> np.ndarray:
        coeffs = self.colors_sh.shape[1]
        out = np.zeros(len(self), dtype=GaussianStruct.define_dtype(sh_degree=self.sh_degree))
        for i, axis in enumerate('xyz'):
            out[axis] = self.positions[:, i]
        for i in range(3):
            out[f'scale_{i}'] = self.scales[:, i]
            out[f'f_dc_{i}'] = self.colors_dc[:, i]
        for i in range(4):
            out[f'rot_{i}'] = self.rotations[:, i]
        out['opacity'] = self.opacities
        for c in range(3):
            for j in range(coeffs):
                out[f'f_rest_{c * coeffs + j}'] = self.colors_sh[:, j, c]
        return out
