"""
Detection strategies for capillary loops.
"""

from .base import DetectionStrategy
from .capillary_loop import CapillaryLoopStrategy, detect_loops

__all__ = [
    'DetectionStrategy',
    'CapillaryLoopStrategy',
    'detect_loops',
]
