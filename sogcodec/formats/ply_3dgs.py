import numpy as np
from plyfile import PlyData, PlyElement
from .base import BaseFormat
from ..structures import GaussianStruct, PointSet, stored_sh_degree
from ..utils.utility_functions import debug_print, status_print

REQUIRED_FIELDS = ['x', 'y', 'z', 'f_dc_0', 'f_dc_1', 'f_dc_2', 'opacity',
                   'scale_0', 'scale_1', 'scale_2', 'rot_0', 'rot_1', 'rot_2', 'rot_3']

class Ply3DGSFormat(BaseFormat):
    def read(self, path: str, **kwargs) -> np.ndarray:
        debug_print(f"[DEBUG] Reading 3DGS PLY file from {path}")
        plydata = PlyData.read(path)

        if 'vertex' not in plydata:
            raise ValueError("PLY file does not contain 'vertex' element")

        vertices = plydata['vertex'].data
        source_names = vertices.dtype.names

        missing = [name for name in REQUIRED_FIELDS if name not in source_names]
        if missing:
            raise ValueError(f"PLY file is not a 3DGS splat file; missing properties: {', '.join(missing)}")

        # Identify extra fields, kept with their original types
        std_names = set(GaussianStruct.get_standard_order(has_rgb=True))
        extra_fields = [(name, vertices.dtype[name].str) for name in source_names if name not in std_names]

        internal_dtype = GaussianStruct.define_dtype(sh_degree=stored_sh_degree(vertices), extra_fields=extra_fields)
        converted_data = np.zeros(len(vertices), dtype=internal_dtype)

        for name_entry in internal_dtype:
            target_name = name_entry[0]
            if target_name in source_names:
                converted_data[target_name] = vertices[target_name]

        debug_print(f"[DEBUG] Read {len(converted_data)} vertices.")
        return converted_data

    def write(self, data: np.ndarray, path: str, **kwargs) -> None:
        debug_print(f"[DEBUG] Writing 3DGS PLY file to {path}")
        if isinstance(data, PointSet):
            data = data.to_structured()

        std_order = GaussianStruct.get_standard_order()
        actual_fields = data.dtype.names

        # Standard fields in order; normals are always present in 3DGS files
        output_dtype_list = []
        for name in std_order:
            if name in actual_fields:
                output_dtype_list.append((name, data.dtype[name].str))
            elif name in ['nx', 'ny', 'nz']:
                output_dtype_list.append((name, 'f4'))

        # Extra fields at the end
        for name in actual_fields:
            if name not in std_order:
                output_dtype_list.append((name, data.dtype[name].str))

        output_data = np.zeros(len(data), dtype=np.dtype(output_dtype_list))
        for name in output_data.dtype.names:
            if name in actual_fields:
                output_data[name] = data[name]

        el = PlyElement.describe(output_data, 'vertex')
        PlyData([el], byte_order='<').write(path)
        status_print(f"3DGS PLY write completed. {len(data)} points.")
