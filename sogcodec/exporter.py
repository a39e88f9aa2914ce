import json
import os
import numpy as np
from .formats.sinks import open_sink, resolve_output
from .processing import morton, packers
from .processing.raster import texture_size, encode_webp
from .structures import PointSet
from .utils import config
from .utils.utility_functions import debug_print, status_print

MANIFEST_VERSION = 2
DEFAULT_GENERATOR = "sogcodec"

class SogCodecError(Exception):
    """Export failure. `stage` names the stage or file that failed."""
    def __init__(self, message, stage=None):
        super().__init__(message)
        self.stage = stage

class SogInputError(SogCodecError):
    """The point set or the options are unusable; nothing was written."""

class ExportCancelled(SogCodecError):
    """The progress callback asked to stop."""

class SogWriteOptions:
    def __init__(self, output_path, iterations=None, use_gpu=True, progress_callback=None,
                 num_workers=None, generator=DEFAULT_GENERATOR):
        self.output_path = os.fspath(output_path)
        self.iterations = config.DEFAULT_ITERATIONS if iterations is None else int(iterations)
        self.use_gpu = use_gpu
        # (progress: float in [0, 1], stage: str) -> bool; False cancels
        self.progress_callback = progress_callback
        self.num_workers = num_workers
        self.generator = generator

class ExportResult:
    OK = 'ok'
    CANCELLED = 'cancelled'
    ERROR = 'error'

    def __init__(self, status, message='', warnings=None, path=None, count=0, stage=None):
        self.status = status
        self.message = message
        self.warnings = list(warnings or [])
        self.path = path
        self.count = count
        self.stage = stage

    @property
    def ok(self):
        return self.status == self.OK

    @property
    def cancelled(self):
        return self.status == self.CANCELLED

    def __bool__(self):
        return self.ok

    def __repr__(self):
        return f"ExportResult({self.status!r}, {self.message!r}, warnings={len(self.warnings)})"

def _validate(points: PointSet, options: SogWriteOptions):
    if len(points) == 0:
        raise SogInputError("No splats to write", stage="Initializing")
    bad = np.count_nonzero(~np.isfinite(points.positions).all(axis=1))
    if bad:
        raise SogInputError(f"{bad} splat(s) have non-finite positions", stage="Initializing")
    try:
        resolve_output(options.output_path)
    except ValueError as e:
        raise SogInputError(str(e), stage="Initializing") from e
    if options.iterations < 1:
        raise SogInputError(f"iterations must be at least 1, got {options.iterations}", stage="Initializing")

class _Export:
    """State of one write_sog call. Discarded when the call returns."""

    def __init__(self, points: PointSet, options: SogWriteOptions):
        self.points = points
        self.options = options
        self.warnings = []
        self.sink = None

    def report(self, progress, stage):
        callback = self.options.progress_callback
        if callback is not None and callback(progress, stage) is False:
            raise ExportCancelled("Export cancelled", stage=stage)
        debug_print(f"[DEBUG] SOG stage '{stage}' ({progress:.0%})")

    def warn(self, message):
        self.warnings.append(message)
        status_print(f"Warning: {message}")

    def write_planes(self, planes):
        for plane in planes:
            try:
                blob = encode_webp(plane)
            except (OSError, ValueError) as e:
                raise SogCodecError(f"Failed to encode {plane.name}: {e}", stage=plane.name) from e
            try:
                self.sink.write_named_blob(plane.name, blob)
            except OSError as e:
                raise SogCodecError(str(e), stage=plane.name) from e

    def run(self):
        points, options = self.points, self.options
        kwargs = dict(iterations=options.iterations, use_gpu=options.use_gpu, num_workers=options.num_workers)

        self.report(0.0, "Initializing")
        _validate(points, options)

        count = len(points)
        width, height = texture_size(count)
        debug_print(f"[DEBUG] SOG: {width}x{height} for {count} splats")

        self.report(0.05, "Reordering")
        permutation = morton.reorder(points.positions)

        try:
            self.sink = open_sink(options.output_path)
        except OSError as e:
            raise SogCodecError(str(e), stage="Opening output") from e

        with self.sink:
            meta = {
                "version": MANIFEST_VERSION,
                "asset": {"generator": options.generator},
                "count": count,
            }

            self.report(0.10, "Positions")
            planes, meta["means"] = packers.pack_positions(points.positions, permutation, width, height, options.num_workers)
            self.write_planes(planes)

            self.report(0.20, "Rotations")
            planes, meta["quats"], degenerate = packers.pack_rotations(points.rotations, permutation, width, height, options.num_workers)
            if degenerate:
                self.warn(f"{degenerate} zero-length rotation(s) replaced with identity")
            self.write_planes(planes)

            self.report(0.30, "Scales k-means")
            packed = packers.pack_scales(points.scales, permutation, width, height, **kwargs)
            self._add_channel(meta, "scales", packed)

            self.report(0.45, "Colors k-means")
            packed = packers.pack_colors(points.colors_dc, points.opacities, permutation, width, height, **kwargs)
            self._add_channel(meta, "sh0", packed)

            if points.sh_degree > 0:
                self.report(0.60, "SH k-means")
                packed = packers.pack_sh(points.colors_sh, points.sh_degree, permutation, width, height, **kwargs)
                self._add_channel(meta, "shN", packed)

            self.report(0.90, "Writing meta")
            try:
                self.sink.write_named_blob(self.sink.manifest_name, json.dumps(meta).encode('utf-8'))
            except OSError as e:
                raise SogCodecError(str(e), stage=self.sink.manifest_name) from e

        # Leaving the block committed the sink
        if self.options.progress_callback is not None:
            # The archive is already committed
            try:
                self.options.progress_callback(1.0, "Complete")
            except Exception as e:
                self.warn(f"Progress callback failed after completion: {e}")
        status_print(f"SOG export complete: {count} splats written to {options.output_path}")
        return ExportResult(ExportResult.OK, "SOG export complete", self.warnings, options.output_path, count)

    def _add_channel(self, meta, key, packed):
        if packed is None:
            self.warn(f"Clustering produced no centroids; channel '{key}' skipped")
            return
        planes, meta[key] = packed
        self.write_planes(planes)

def write_sog(points: PointSet, options: SogWriteOptions) -> ExportResult:
    """
    Writes points as a SOG bundle (.sog) or a directory of WebP files with a
    JSON manifest.

    Never raises: failures and cancellation come back as an ExportResult.
    Nothing is left at the output location unless the export succeeds.
    """
    export = _Export(points, options)
    try:
        return export.run()
    except ExportCancelled as e:
        status_print(f"SOG export cancelled at '{e.stage}'")
        return ExportResult(ExportResult.CANCELLED, str(e), export.warnings, stage=e.stage)
    except SogCodecError as e:
        return ExportResult(ExportResult.ERROR, str(e), export.warnings, stage=e.stage)
    except Exception as e:
        return ExportResult(ExportResult.ERROR, f"SOG export failed: {e}", export.warnings)
