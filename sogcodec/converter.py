import os
from tqdm import tqdm
from .formats.ply_3dgs import Ply3DGSFormat
from .formats.sog import SogFormat
from .formats.sinks import resolve_output
from .exporter import SogWriteOptions, ExportResult, SogInputError, write_sog
from .structures import PointSet, detect_sh_degree
from .utils.utility_functions import debug_print, status_print

class Converter:
    """Reads a 3DGS PLY or a SOG and writes it as SOG (bundle or directory) or PLY."""

    def __init__(self, input_path, output_path):
        self.input_path = os.fspath(input_path)
        self.output_path = os.fspath(output_path)
        self.source_format = self._detect_format(self.input_path)
        if not self.source_format:
            raise SogInputError(f"Could not detect source format of '{self.input_path}'")
        self.target_format = self._detect_target(self.output_path)
        self.data = None

    def _detect_format(self, path):
        lower = path.lower()
        if lower.endswith('.ply'):
            return '3dgs'
        if lower.endswith('.sog') or lower.endswith('.json') or os.path.isdir(path):
            return 'sog'
        return None

    def _detect_target(self, path):
        if path.lower().endswith('.ply'):
            return '3dgs'
        try:
            resolve_output(path)
        except ValueError as e:
            raise SogInputError(str(e)) from e
        return 'sog'

    def _get_format_handler(self, format_name):
        if format_name == '3dgs':
            return Ply3DGSFormat()
        elif format_name == 'sog':
            return SogFormat()
        raise ValueError(f"Unsupported format: {format_name}")

    def load_source(self, sh_level=None) -> PointSet:
        debug_print(f"[DEBUG] Detected source format: {self.source_format}")
        self.data = self._get_format_handler(self.source_format).read(self.input_path)

        source_sh_degree = detect_sh_degree(self.data)
        final_sh_degree = source_sh_degree
        if sh_level is not None:
            if sh_level > source_sh_degree:
                status_print(f"Warning: Requested SH degree {sh_level} exceeds source data degree ({source_sh_degree}). Capping to {source_sh_degree}.")
            final_sh_degree = min(source_sh_degree, sh_level)
        if final_sh_degree < source_sh_degree:
            status_print(f"SH Reduction: Source degree {source_sh_degree} -> Target degree {final_sh_degree}")

        return PointSet.from_structured(self.data, sh_degree=final_sh_degree)

    def run(self, iterations=None, use_gpu=True, num_workers=None, sh_level=None) -> ExportResult:
        debug_print(f"[DEBUG] Starting conversion: {self.input_path} -> {self.output_path} ({self.target_format})")

        with tqdm(total=100, desc="Reading Source", bar_format='{desc}: {percentage:3.0f}% |{bar}| {n_fmt}/{total_fmt}') as pbar:
            points = self.load_source(sh_level)
            status_print(f"Number of splats: {len(points)} (SH degree {points.sh_degree})")
            pbar.update(10)

            if self.target_format == '3dgs':
                pbar.set_description("Writing 3DGS")
                Ply3DGSFormat().write(points, self.output_path)
                pbar.update(90)
                return ExportResult(ExportResult.OK, "PLY written", path=self.output_path, count=len(points))

            def on_progress(progress, stage):
                pbar.set_description(stage)
                pbar.n = 10 + int(progress * 90)
                pbar.refresh()
                return True

            options = SogWriteOptions(self.output_path, iterations=iterations, use_gpu=use_gpu,
                                      progress_callback=on_progress, num_workers=num_workers)
            return write_sog(points, options)
