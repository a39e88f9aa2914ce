import numpy as np
import os
import json
import zipfile
from .base import BaseFormat
from .sinks import MANIFEST_NAME
from ..structures import GaussianStruct, PointSet, SH_COEFFS
from ..processing.packers import decode_quaternions, inv_log_transform
from ..processing.raster import decode_webp
from ..utils.utility_functions import debug_print, status_print

class _BundleReader:
    def __init__(self, path):
        self.zf = zipfile.ZipFile(path, 'r')
        self.manifest_name = MANIFEST_NAME

    def read(self, name):
        return self.zf.read(name)

    def close(self):
        self.zf.close()

class _DirectoryReader:
    def __init__(self, directory, manifest_name=MANIFEST_NAME):
        self.directory = directory
        self.manifest_name = manifest_name

    def read(self, name):
        with open(os.path.join(self.directory, name), 'rb') as f:
            return f.read()

    def close(self):
        pass

def _open_reader(path):
    if os.path.isdir(path):
        return _DirectoryReader(path)
    if path.lower().endswith('.json'):
        return _DirectoryReader(os.path.dirname(os.path.abspath(path)), os.path.basename(path))
    if zipfile.is_zipfile(path):
        return _BundleReader(path)
    raise ValueError(f"SOG Format: {path} is neither a .sog bundle, a manifest nor a directory.")

class SogFormat(BaseFormat):
    def read(self, path: str, **kwargs) -> np.ndarray:
        debug_print(f"[DEBUG] Reading SOG from {path}")
        reader = _open_reader(os.fspath(path))
        try:
            return self._decode(reader)
        finally:
            reader.close()

    def _decode(self, reader):
        meta = json.loads(reader.read(reader.manifest_name))
        count = meta['count']

        def read_plane(filename, expected_count=count):
            return decode_webp(reader.read(filename), expected_count)[:expected_count]

        # --- Positions ---
        means_l = read_plane(meta['means']['files'][0]).astype(np.uint16)
        means_u = read_plane(meta['means']['files'][1]).astype(np.uint16)
        q16 = (means_l[:, :3] | (means_u[:, :3] << 8)).astype(np.float64)

        mins = np.array(meta['means']['mins'])
        maxs = np.array(meta['means']['maxs'])
        positions = inv_log_transform(q16 / 65535.0 * (maxs - mins) + mins)

        # --- Rotations ---
        rotations = decode_quaternions(read_plane(meta['quats']['files'][0]))

        sh_degree = meta['shN']['bands'] if 'shN' in meta else 0
        out = np.zeros(count, dtype=GaussianStruct.define_dtype(sh_degree=sh_degree))
        out['x'], out['y'], out['z'] = positions.T
        for i in range(4):
            out[f'rot_{i}'] = rotations[:, i]

        # --- Scales ---
        if 'scales' in meta:
            idx = read_plane(meta['scales']['files'][0])
            codebook = np.array(meta['scales']['codebook'], dtype=np.float32)
            for i in range(3):
                out[f'scale_{i}'] = codebook[idx[:, i]]

        # --- Colors (SH0) and opacity ---
        if 'sh0' in meta:
            sh0 = read_plane(meta['sh0']['files'][0])
            codebook = np.array(meta['sh0']['codebook'], dtype=np.float32)
            for i in range(3):
                out[f'f_dc_{i}'] = codebook[sh0[:, i]]

            # Linear alpha back to logit opacity
            alpha = np.clip(sh0[:, 3].astype(np.float64) / 255.0, 1.0 / 255.0, 0.9999)
            out['opacity'] = -np.log(1.0 / alpha - 1.0)

        # --- Higher-order SH ---
        if 'shN' in meta:
            shn = meta['shN']
            coeffs = shn.get('coeffs', SH_COEFFS[sh_degree])
            palette_size = shn.get('palette_size', shn['count'])

            centroids = read_plane(shn['files'][0], palette_size * coeffs)
            codebook = np.array(shn['codebook'], dtype=np.float32)
            # Pixel i * coeffs + j, channel c -> palette entry i, f_rest[c * coeffs + j]
            palette = codebook[centroids[:, :3]].reshape(palette_size, coeffs, 3)
            palette = palette.transpose(0, 2, 1).reshape(palette_size, 3 * coeffs)

            labels = read_plane(shn['files'][1]).astype(np.uint16)
            labels = labels[:, 0] | (labels[:, 1] << 8)

            values = palette[labels]
            for i in range(3 * coeffs):
                out[f'f_rest_{i}'] = values[:, i]

        return out

    def write(self, data: np.ndarray, path: str, **kwargs) -> None:
        # Imported here: the exporter itself depends on this package
        from ..exporter import SogWriteOptions, write_sog, SogCodecError

        points = data if isinstance(data, PointSet) else PointSet.from_structured(data)
        debug_print(f"[DEBUG] Writing SOG to {path} ({len(points)} points, SH degree {points.sh_degree})")

        options = SogWriteOptions(
            path,
            iterations=kwargs.get('iterations'),
            use_gpu=kwargs.get('use_gpu', True),
            progress_callback=kwargs.get('progress_callback'),
            num_workers=kwargs.get('num_workers'),
        )
        result = write_sog(points, options)
        if not result.ok:
            raise SogCodecError(result.message, stage=result.stage)
        status_print(f"SOG write completed to {path}. {len(points)} points bundled.")
        return result
