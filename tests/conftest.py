"""Shared fixtures for the codec tests."""

import numpy as np
import pytest

from sogcodec.structures import PointSet, SH_COEFFS


def _make_points(n, sh_degree=0, seed=0, spread=5.0):
    """Random but well-formed splats: unit quaternions, log scales, logit opacities."""
    rng = np.random.default_rng(seed)
    rotations = rng.normal(size=(n, 4))
    rotations /= np.linalg.norm(rotations, axis=1, keepdims=True)
    return PointSet(
        positions=rng.uniform(-spread, spread, size=(n, 3)),
        rotations=rotations,
        scales=rng.uniform(-6.0, 0.0, size=(n, 3)),
        opacities=rng.normal(0.0, 3.0, size=n),
        colors_dc=rng.uniform(-1.5, 1.5, size=(n, 3)),
        colors_sh=rng.uniform(-0.5, 0.5, size=(n, SH_COEFFS[sh_degree], 3)),
    )


@pytest.fixture
def make_points():
    return _make_points
