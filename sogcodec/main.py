"""
SOG Splat Codec
Copyright (c) 2026 Francesco Fugazzi (@franzipol)

This software is released under the MIT License.
For more information about the license, please see the LICENSE file.
"""

import argparse
import os
import sys
from . import __version__
from .converter import Converter
from .exporter import SogCodecError
from .utils import config
from .utils.argument_actions import AboutAction
from .utils.utility_functions import status_print

def build_parser():
    parser = argparse.ArgumentParser(description="Compress 3D Gaussian Splat PLY files into SOG bundles (and back).")

    parser.add_argument("--input", "-i", required=True, help="Source .ply, .sog, meta.json or SOG directory.")
    parser.add_argument("--output", "-o", required=True, help="Destination: .sog bundle, meta.json / directory for loose files, or .ply.")
    parser.add_argument("--iterations", type=int, default=config.DEFAULT_ITERATIONS, help=f"k-means iterations (default: {config.DEFAULT_ITERATIONS}).")
    parser.add_argument("--cpu", action="store_true", help="Cluster on the CPU even when Taichi is available.")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads for per-point packing (default: CPU count - 1).")
    parser.add_argument("--sh_level", type=int, choices=[0, 1, 2, 3], default=None, help="Cap the spherical harmonics degree written.")
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug prints.")
    parser.add_argument('--about', action=AboutAction, help='Show copyright and license info')
    return parser

def main(argv=None):
    args = build_parser().parse_args(argv)
    config.DEBUG = args.debug

    status_print(f"SOG Splat Codec: {__version__}")

    if not os.path.exists(args.input):
        status_print(f"Error: input '{args.input}' does not exist.")
        return 1

    try:
        converter = Converter(args.input, args.output)
        result = converter.run(iterations=args.iterations, use_gpu=not args.cpu,
                               num_workers=args.workers, sh_level=args.sh_level)
    except KeyboardInterrupt:
        status_print("Caught KeyboardInterrupt, aborting.")
        return 130
    except (SogCodecError, ValueError, OSError) as e:
        status_print(f"Error: {e}")
        return 1

    if result.warnings:
        status_print(f"Finished with {len(result.warnings)} warning(s).")

    if result.cancelled:
        status_print("Conversion cancelled.")
        return 130
    if not result.ok:
        status_print(f"Error: {result.message}")
        return 1

    status_print(f"Conversion completed: Saved to {args.output}")
    return 0

if __name__ == "__main__":
    sys.exit(main())
