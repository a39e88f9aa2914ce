"""Tests for the command-line entry point."""

import os

import numpy as np
import pytest

from sogcodec.formats.ply_3dgs import Ply3DGSFormat
from sogcodec.main import build_parser, main
from sogcodec.processing import morton


@pytest.fixture
def ply_path(tmp_path, make_points):
    points = make_points(500, sh_degree=1, seed=4)
    path = tmp_path / "scene.ply"
    Ply3DGSFormat().write(points, str(path))
    return path, points


class TestCli:
    """PLY to SOG and back."""

    def test_round_trip(self, tmp_path, ply_path):
        source, points = ply_path
        bundle = tmp_path / "scene.sog"
        back = tmp_path / "back.ply"

        assert main(["-i", str(source), "-o", str(bundle), "--cpu", "--iterations", "3"]) == 0
        assert bundle.exists()
        assert main(["-i", str(bundle), "-o", str(back), "--cpu"]) == 0

        data = Ply3DGSFormat().read(str(back))
        assert len(data) == 500
        assert "f_rest_8" in data.dtype.names
        perm = morton.reorder(points.positions.astype(np.float32).astype(np.float64))
        positions = np.column_stack([data[a] for a in "xyz"])
        assert np.allclose(positions, points.positions[perm], atol=1e-3)

    def test_sh_level_cap(self, tmp_path, ply_path):
        source, _ = ply_path
        out = tmp_path / "out"

        assert main(["-i", str(source), "-o", str(out), "--cpu", "--sh_level", "0"]) == 0
        assert sorted(os.listdir(out)) == sorted([
            "meta.json", "means_l.webp", "means_u.webp", "quats.webp", "scales.webp", "sh0.webp",
        ])

    def test_missing_input(self, tmp_path):
        assert main(["-i", str(tmp_path / "nope.ply"), "-o", str(tmp_path / "a.sog")]) == 1

    def test_bad_output(self, tmp_path, ply_path):
        source, _ = ply_path
        assert main(["-i", str(source), "-o", str(tmp_path / "a.png"), "--cpu"]) == 1
        assert sorted(os.listdir(tmp_path)) == ["scene.ply"]

    def test_defaults(self):
        args = build_parser().parse_args(["-i", "a.ply", "-o", "b.sog"])
        assert args.iterations == 10
        assert not args.cpu
        assert args.sh_level is None
