"""Tests for texture sizing and lossless WebP planes."""

import numpy as np
import pytest

from sogcodec.processing import raster


class TestTextureSize:
    """Per-point texture dimensions."""

    @pytest.mark.parametrize("count, expected", [
        (1, (4, 4)),
        (5, (4, 4)),
        (17, (8, 4)),
        (1000, (32, 32)),
        (1024, (32, 32)),
        (1025, (36, 32)),
    ])
    def test_known_sizes(self, count, expected):
        assert raster.texture_size(count) == expected

    @pytest.mark.parametrize("count", [1, 2, 15, 16, 17, 255, 4097, 123457])
    def test_holds_every_point(self, count):
        width, height = raster.texture_size(count)
        assert width % 4 == 0 and height % 4 == 0
        assert width * height >= count


class TestPlanes:
    """Plane buffers and WebP encoding."""

    def test_new_plane_is_opaque(self):
        plane = raster.new_plane("x.webp", 8, 4)
        assert plane.data.shape == (32, 4)
        assert np.all(plane.data[:, :3] == 0)
        assert np.all(plane.data[:, 3] == 255)

    def test_rejects_mismatched_buffer(self):
        with pytest.raises(ValueError):
            raster.PackedPlane("x.webp", 4, 4, np.zeros((15, 4), dtype=np.uint8))

    def test_webp_is_lossless(self):
        rng = np.random.default_rng(0)
        plane = raster.new_plane("x.webp", 12, 8)
        plane.data[:, :3] = rng.integers(0, 256, size=(96, 3))
        plane.data[:, 3] = rng.integers(1, 256, size=96)

        blob = raster.encode_webp(plane)
        assert blob[:4] == b"RIFF" and blob[8:12] == b"WEBP"

        decoded = raster.decode_webp(blob, expected_pixels=96)
        assert np.array_equal(decoded, plane.data)

    def test_decode_rejects_small_image(self):
        blob = raster.encode_webp(raster.new_plane("x.webp", 4, 4))
        with pytest.raises(ValueError):
            raster.decode_webp(blob, expected_pixels=17)
