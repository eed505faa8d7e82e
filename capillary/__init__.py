"""
Capillary package: nailfold capillaroscopy image analysis.

Provides the image-processing back end of a capillary annotator:
- Automatic detection of the outermost capillary loops
- Deskew angle estimation
- CLAHE-based contrast enhancement

Usage:
    from capillary.io import load_image
    from capillary.detection import detect_loops
    from capillary.preprocessing import calculate_skew_angle, enhance_image
    from capillary.processing import detect_loops_async
    from capillary.utils import get_logger, setup_logging, load_config
"""

# Version
__version__ = "0.1.0"

# Individual modules should be imported explicitly:
#   from capillary.detection import detect_loops
#   from capillary.utils.logging import get_logger

__all__ = [
    "io",
    "detection",
    "processing",
    "preprocessing",
    "utils",
    "cli",
]
