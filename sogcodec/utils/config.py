"""
SOG Splat Codec
Copyright (c) 2026 Francesco Fugazzi (@franzipol)

This software is released under the MIT License.
For more information about the license, please see the LICENSE file.
"""

DEBUG = False

# k-means iterations used when the caller does not pick a value
DEFAULT_ITERATIONS = 10

# Equal-code runs longer than this are re-ordered inside their own bounds
MORTON_BUCKET_SIZE = 256

# 1-D codebooks (scales, colors, SH second level) are always this long
CODEBOOK_LEVELS = 256

# Pillow WebP effort: 0 fastest, 6 smallest
WEBP_METHOD = 1
