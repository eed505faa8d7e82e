"""
I/O utilities for the capillary pipeline.

Provides:
- load_image: decode files/bytes into RGBA pixel buffers
- ensure_rgba: validate in-memory buffers
- resize_to_width / downsample_max_dim: working-resolution rescaling
- encode_jpeg / save_image: re-encoding results
"""

from .image_loader import (
    ImageLoadError,
    UnsupportedImageError,
    ensure_rgba,
    load_image,
    resize_to_width,
    downsample_max_dim,
    encode_jpeg,
    save_image,
)

__all__ = [
    'ImageLoadError',
    'UnsupportedImageError',
    'ensure_rgba',
    'load_image',
    'resize_to_width',
    'downsample_max_dim',
    'encode_jpeg',
    'save_image',
]
