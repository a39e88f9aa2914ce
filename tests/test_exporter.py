"""End-to-end tests for write_sog and the SOG reader."""

import io
import json
import os
import zipfile

import numpy as np
from PIL import Image

from sogcodec import SogFormat, SogWriteOptions, write_sog
from sogcodec.processing import morton, packers
from sogcodec.processing.raster import decode_webp


def options(path, **kwargs):
    kwargs.setdefault("use_gpu", False)
    kwargs.setdefault("iterations", 3)
    return SogWriteOptions(path, **kwargs)


def read_bundle(path):
    with zipfile.ZipFile(path) as zf:
        meta = json.loads(zf.read("meta.json"))
        blobs = {name: zf.read(name) for name in zf.namelist()}
    return meta, blobs


def image_size(blob):
    return Image.open(io.BytesIO(blob)).size


class TestBundle:
    """Successful exports to a .sog bundle."""

    def test_single_splat(self, tmp_path, make_points):
        path = tmp_path / "one.sog"
        result = write_sog(make_points(1), options(path))

        assert result.ok, result.message
        assert result.count == 1
        meta, blobs = read_bundle(path)
        assert meta["count"] == 1
        for name in ["means_l.webp", "means_u.webp", "quats.webp", "scales.webp", "sh0.webp"]:
            assert image_size(blobs[name]) == (4, 4)

    def test_manifest_without_sh(self, tmp_path, make_points):
        path = tmp_path / "scene.sog"
        result = write_sog(make_points(1024), options(path))

        assert result.ok, result.message
        assert result.warnings == []
        meta, blobs = read_bundle(path)

        assert meta["version"] == 2
        assert meta["asset"] == {"generator": "sogcodec"}
        assert set(meta) - {"version", "asset", "count"} == {"means", "quats", "scales", "sh0"}
        assert len(meta["means"]["mins"]) == 3 and len(meta["means"]["maxs"]) == 3
        assert len(meta["scales"]["codebook"]) <= 256

        files = [f for key in ("means", "quats", "scales", "sh0") for f in meta[key]["files"]]
        assert sorted(files + ["meta.json"]) == sorted(blobs)
        assert all(len(blobs[f]) > 0 for f in files)
        for f in files:
            assert image_size(blobs[f]) == (32, 32)

    def test_sh_planes(self, tmp_path, make_points):
        path = tmp_path / "sh.sog"
        result = write_sog(make_points(300, sh_degree=1), options(path))

        assert result.ok, result.message
        meta, blobs = read_bundle(path)
        shn = meta["shN"]
        assert shn["bands"] == 1
        assert shn["coeffs"] == 3
        assert shn["count"] == shn["palette_size"] == 300
        assert image_size(blobs["shN_centroids.webp"]) == (64 * 3, 5)
        assert image_size(blobs["shN_labels.webp"]) == (20, 16)

    def test_round_trip(self, tmp_path, make_points):
        points = make_points(2000, sh_degree=2, seed=3)
        # Clustered SH, with more distinct vectors than one byte can index
        rng = np.random.default_rng(3)
        prototypes = rng.uniform(-0.5, 0.5, size=(600, 8, 3))
        points.colors_sh = (prototypes[rng.integers(0, 600, 2000)] + rng.normal(0, 0.002, size=(2000, 8, 3))).astype(np.float32)
        path = tmp_path / "scene.sog"
        assert write_sog(points, options(path, iterations=5)).ok

        decoded = SogFormat().read(path)
        perm = morton.reorder(points.positions)
        assert len(decoded) == 2000

        positions = np.column_stack([decoded[a] for a in "xyz"])
        assert np.allclose(positions, points.positions[perm], atol=1e-3)

        rotations = np.column_stack([decoded[f"rot_{i}"] for i in range(4)])
        dots = np.abs(np.sum(rotations * points.rotations[perm], axis=1))
        assert dots.min() > 0.99

        alpha = packers.sigmoid(decoded["opacity"])
        assert np.allclose(alpha, packers.sigmoid(points.opacities[perm]), atol=5e-3)

        assert "f_rest_23" in decoded.dtype.names
        assert "f_rest_24" not in decoded.dtype.names
        # f_rest[c * 8 + j] is coefficient j of channel c
        rest = np.column_stack([decoded[f"f_rest_{i}"] for i in range(24)])
        expected = points.colors_sh[perm].transpose(0, 2, 1).reshape(2000, 24)
        assert np.abs(rest - expected).mean() < 0.05

        _, blobs = read_bundle(path)
        labels = decode_webp(blobs["shN_labels.webp"])[:2000]
        assert labels[:, 1].max() > 0

    def test_stage_sequence(self, tmp_path, make_points):
        calls = []

        def on_progress(progress, stage):
            calls.append((progress, stage))
            return True

        result = write_sog(make_points(100, sh_degree=1), options(tmp_path / "a.sog", progress_callback=on_progress))

        assert result.ok
        assert [stage for _, stage in calls] == [
            "Initializing", "Reordering", "Positions", "Rotations",
            "Scales k-means", "Colors k-means", "SH k-means", "Writing meta", "Complete",
        ]
        progress = [p for p, _ in calls]
        assert progress == sorted(progress)
        assert progress[0] == 0.0 and progress[-1] == 1.0

    def test_zero_rotation_warns(self, tmp_path, make_points):
        points = make_points(50)
        points.rotations[10] = 0.0
        result = write_sog(points, options(tmp_path / "a.sog"))

        assert result.ok
        assert len(result.warnings) == 1
        assert "zero-length rotation" in result.warnings[0]

    def test_skipped_channel_warns(self, tmp_path, monkeypatch, make_points):
        monkeypatch.setattr(packers, "pack_scales", lambda *args, **kwargs: None)
        path = tmp_path / "a.sog"
        result = write_sog(make_points(50), options(path))

        assert result.ok
        assert any("'scales'" in w for w in result.warnings)
        meta, blobs = read_bundle(path)
        assert "scales" not in meta
        assert "scales.webp" not in blobs


class TestDirectory:
    """Loose files with a sidecar manifest."""

    def test_directory_output(self, tmp_path, make_points):
        out = tmp_path / "out"
        points = make_points(200)
        result = write_sog(points, options(out))

        assert result.ok, result.message
        assert sorted(os.listdir(out)) == sorted([
            "meta.json", "means_l.webp", "means_u.webp", "quats.webp", "scales.webp", "sh0.webp",
        ])
        assert len(SogFormat().read(out)) == 200

    def test_manifest_name(self, tmp_path, make_points):
        out = tmp_path / "out"
        result = write_sog(make_points(20), options(out / "scene.json"))

        assert result.ok, result.message
        assert "scene.json" in os.listdir(out)
        assert "meta.json" not in os.listdir(out)
        assert len(SogFormat().read(out / "scene.json")) == 20


class TestFailures:
    """Errors and cancellation leave nothing behind."""

    def test_empty_point_set(self, tmp_path, make_points):
        result = write_sog(make_points(0), options(tmp_path / "a.sog"))
        assert result.status == "error"
        assert result.stage == "Initializing"
        assert os.listdir(tmp_path) == []

    def test_bad_extension(self, tmp_path, make_points):
        result = write_sog(make_points(10), options(tmp_path / "a.png"))
        assert result.status == "error"
        assert ".png" in result.message
        assert os.listdir(tmp_path) == []

    def test_missing_parent(self, tmp_path, make_points):
        result = write_sog(make_points(10), options(tmp_path / "missing" / "a.sog"))
        assert result.status == "error"
        assert not result.ok
        assert not (tmp_path / "missing").exists()

    def test_cancel_early(self, tmp_path, make_points):
        calls = []

        def on_progress(progress, stage):
            calls.append(stage)
            return len(calls) < 2

        path = tmp_path / "a.sog"
        result = write_sog(make_points(100), options(path, progress_callback=on_progress))

        assert result.cancelled
        assert not result
        assert result.stage == "Reordering"
        assert os.listdir(tmp_path) == []

    def test_cancel_mid_write(self, tmp_path, make_points):
        def on_progress(progress, stage):
            return stage != "Colors k-means"

        for target in (tmp_path / "a.sog", tmp_path / "out"):
            result = write_sog(make_points(100), options(target, progress_callback=on_progress))
            assert result.cancelled
            assert result.stage == "Colors k-means"
        assert os.listdir(tmp_path) == []

    def test_none_return_continues(self, tmp_path, make_points):
        result = write_sog(make_points(10), options(tmp_path / "a.sog", progress_callback=lambda p, s: None))
        assert result.ok

    def test_non_finite_position(self, tmp_path, make_points):
        points = make_points(20)
        points.positions[3, 1] = np.nan
        points.positions[7, 0] = np.inf
        result = write_sog(points, options(tmp_path / "a.sog"))

        assert result.status == "error"
        assert result.stage == "Initializing"
        assert "2 splat(s)" in result.message
        assert os.listdir(tmp_path) == []

    def test_failing_complete_callback_keeps_archive(self, tmp_path, make_points):
        def on_progress(progress, stage):
            if stage == "Complete":
                raise RuntimeError("window closed")
            return True

        path = tmp_path / "a.sog"
        result = write_sog(make_points(30), options(path, progress_callback=on_progress))

        assert result.ok
        assert any("window closed" in w for w in result.warnings)
        assert os.listdir(tmp_path) == ["a.sog"]
