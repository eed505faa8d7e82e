"""
Preprocessing modules for capillaroscopy images.

Includes:
- grayscale: luminance conversion and Sobel edge primitives
- deskew: projection-variance skew-angle estimation
- enhancement: CLAHE, auto-levels and unsharp sharpening
"""

from .grayscale import (
    luminance,
    to_grayscale,
    to_inverted_grayscale,
    sobel_x,
)

from .deskew import (
    projection_variance,
    calculate_skew_angle,
    rotate_image,
)

from .enhancement import (
    apply_clahe,
    auto_levels,
    unsharp_sharpen,
    enhance_pixels,
    enhance_image,
    EnhancementCache,
)

__all__ = [
    # Grayscale / edges
    'luminance',
    'to_grayscale',
    'to_inverted_grayscale',
    'sobel_x',
    # Deskew
    'projection_variance',
    'calculate_skew_angle',
    'rotate_image',
    # Enhancement
    'apply_clahe',
    'auto_levels',
    'unsharp_sharpen',
    'enhance_pixels',
    'enhance_image',
    'EnhancementCache',
]
