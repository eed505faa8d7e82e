"""
Automatic capillary loop detection.

Provides:
- Adaptive thresholding and cross-element morphology
- Union-find connected-component labeling
- Blob measurement and loop shape gates
- Skyline selection of the outermost loop row
- CapillaryLoopStrategy / detect_loops: the full pipeline
"""

from .threshold import (
    integral_image,
    adaptive_threshold,
)

from .morphology import (
    erode_cross,
    dilate_cross,
    morphology_open,
)

from .labeling import (
    UnionFind,
    connected_components,
)

from .blobs import (
    BlobStats,
    analyze_blob,
    analyze_blobs,
    is_valid_loop,
)

from .skyline import (
    filter_outermost,
    to_detected_loops,
)

from .loops import (
    Morphology,
    DetectedLoop,
)

from .strategies import (
    DetectionStrategy,
    CapillaryLoopStrategy,
    detect_loops,
)

__all__ = [
    # Thresholding / morphology
    'integral_image',
    'adaptive_threshold',
    'erode_cross',
    'dilate_cross',
    'morphology_open',
    # Labeling
    'UnionFind',
    'connected_components',
    # Blobs
    'BlobStats',
    'analyze_blob',
    'analyze_blobs',
    'is_valid_loop',
    # Skyline
    'filter_outermost',
    'to_detected_loops',
    # Records
    'Morphology',
    'DetectedLoop',
    # Strategies
    'DetectionStrategy',
    'CapillaryLoopStrategy',
    'detect_loops',
]
