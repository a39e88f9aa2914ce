"""
SOG Splat Codec
Copyright (c) 2026 Francesco Fugazzi (@franzipol)

This software is released under the MIT License.
For more information about the license, please see the LICENSE file.
"""

import argparse

class AboutAction(argparse.Action):
    def __init__(self, option_strings, dest, nargs=0, **kwargs):
        super(AboutAction, self).__init__(option_strings, dest, nargs=0, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        copyright_info = """
        SOG Splat Codec
        Copyright (c) 2026 Francesco Fugazzi

        Morton-ordered, k-means quantized WebP bundles for 3D Gaussian Splats.
        This software is released under the MIT License.
        For more information about the license, please see the LICENSE file.
        """
        print(copyright_info)
        parser.exit()  # Exit after displaying the information.
