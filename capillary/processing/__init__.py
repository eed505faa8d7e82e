"""
Background execution helpers for the analysis pipeline.
"""

from .dispatch import (
    get_executor,
    submit,
    detect_loops_async,
    calculate_skew_angle_async,
    enhance_image_async,
    map_images,
    shutdown,
)

__all__ = [
    'get_executor',
    'submit',
    'detect_loops_async',
    'calculate_skew_angle_async',
    'enhance_image_async',
    'map_images',
    'shutdown',
]
