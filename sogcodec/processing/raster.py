import io
import math
import numpy as np
from PIL import Image
from ..utils import config

def texture_size(count):
    """
    Width and height of the per-point textures, both multiples of 4.
    The texture holds at least count pixels; trailing pixels are padding.
    """
    width = int(math.ceil(math.sqrt(count) / 4) * 4)
    height = int(math.ceil(count / width / 4) * 4)
    return width, height

class PackedPlane:
    """One RGBA image stored as a flat (width * height, 4) uint8 buffer."""

    def __init__(self, name, width, height, data=None):
        self.name = name
        self.width = width
        self.height = height
        if data is None:
            # Zero RGB, opaque alpha: padding pixels are ignored by decoders
            data = np.zeros((width * height, 4), dtype=np.uint8)
            data[:, 3] = 255
        if data.shape != (width * height, 4):
            raise ValueError(f"Plane {name}: buffer shape {data.shape} does not match {width}x{height}")
        self.data = data

    def __repr__(self):
        return f"PackedPlane({self.name!r}, {self.width}x{self.height})"

def new_plane(name, width, height):
    return PackedPlane(name, width, height)

def encode_webp(plane: PackedPlane, method=None) -> bytes:
    """
    Losslessly encodes a plane as WebP.

    The payload is index data, so any lossy step would corrupt it. Raises
    OSError or ValueError from Pillow if encoding fails.
    """
    if method is None:
        method = config.WEBP_METHOD
    img = Image.frombytes('RGBA', (plane.width, plane.height), np.ascontiguousarray(plane.data).tobytes())
    bio = io.BytesIO()
    # exact=True keeps RGB under alpha=0, which the decoder may still read
    img.save(bio, format='WEBP', lossless=True, quality=100, method=method, exact=True)
    return bio.getvalue()

def decode_webp(blob: bytes, expected_pixels=None) -> np.ndarray:
    """Decodes a WebP image into a flat (width * height, 4) uint8 buffer."""
    img = Image.open(io.BytesIO(blob))
    if img.mode != 'RGBA':
        img = img.convert('RGBA')
    width, height = img.size
    if expected_pixels is not None and width * height < expected_pixels:
        raise ValueError(f"Image too small: {width * height} < {expected_pixels}")
    return np.asarray(img, dtype=np.uint8).reshape(-1, 4)
