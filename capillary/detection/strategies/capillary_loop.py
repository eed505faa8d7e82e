"""
Automatic outermost capillary loop detection.

Best-effort aid for placing loop markers, not a validated clinical tool.
Stages:
1. Rescale to a fixed working width (800 px) for speed
2. Inverted grayscale - capillaries are dark on a lighter background
3. Adaptive threshold (integral image, 15 px window, C = 2)
4. Morphological opening with a cross element to drop speckles
5. 4-connected component labeling (union-find)
6. Blob gates: area 100-2000 px, aspect >= 1.5, solidity >= 0.6
7. Skyline selection: the bottom-most blob in each 50 px column

All thresholds are in working-resolution pixels and were tuned empirically
on a single capillaroscope; override them per device.
"""

from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from capillary.detection.blobs import BlobStats, analyze_blobs, is_valid_loop
from capillary.detection.labeling import connected_components
from capillary.detection.loops import DetectedLoop
from capillary.detection.morphology import morphology_open
from capillary.detection.skyline import filter_outermost
from capillary.detection.threshold import adaptive_threshold
from capillary.io.image_loader import ensure_rgba, resize_to_width
from capillary.preprocessing.grayscale import to_inverted_grayscale
from capillary.utils.config import DETECTION_DEFAULTS
from capillary.utils.logging import get_logger

from .base import DetectionStrategy

logger = get_logger(__name__)


class CapillaryLoopStrategy(DetectionStrategy):
    """
    Threshold + blob-shape detection of the outermost capillary loops.

    Parameters:
        resize_width: Working width in pixels (default 800)
        window_size: Adaptive threshold window, odd (default 15)
        c: Adaptive threshold constant (default 2)
        min_area: Minimum blob area in px (default 100)
        max_area: Maximum blob area in px (default 2000)
        min_aspect_ratio: Minimum bbox height/width (default 1.5)
        min_solidity: Minimum area / bbox area (default 0.6)
        column_width: Skyline column width in px (default 50)
    """

    def __init__(
        self,
        resize_width: int = DETECTION_DEFAULTS["resize_width"],
        window_size: int = DETECTION_DEFAULTS["window_size"],
        c: float = DETECTION_DEFAULTS["c"],
        min_area: int = DETECTION_DEFAULTS["min_area"],
        max_area: int = DETECTION_DEFAULTS["max_area"],
        min_aspect_ratio: float = DETECTION_DEFAULTS["min_aspect_ratio"],
        min_solidity: float = DETECTION_DEFAULTS["min_solidity"],
        column_width: int = DETECTION_DEFAULTS["column_width"],
    ):
        if window_size < 1 or window_size % 2 == 0:
            raise ValueError(f"window_size must be a positive odd integer, got {window_size}")
        if resize_width < 1:
            raise ValueError(f"resize_width must be positive, got {resize_width}")

        self.resize_width = resize_width
        self.window_size = window_size
        self.c = c
        self.min_area = min_area
        self.max_area = max_area
        self.min_aspect_ratio = min_aspect_ratio
        self.min_solidity = min_solidity
        self.column_width = column_width

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "CapillaryLoopStrategy":
        """
        Build from a full config (with a ``detection`` section) or a flat
        detection dict. Unknown keys are ignored.
        """
        params = dict(DETECTION_DEFAULTS)
        if config:
            section = config.get("detection", config)
            params.update({k: v for k, v in section.items() if k in DETECTION_DEFAULTS})
        return cls(**params)

    @property
    def name(self) -> str:
        return "capillary_loop"

    def get_config(self) -> Dict[str, Any]:
        return {key: getattr(self, key) for key in DETECTION_DEFAULTS}

    def prepare(self, pixels: np.ndarray) -> Tuple[np.ndarray, float]:
        rgba = ensure_rgba(pixels)
        working, ratio = resize_to_width(rgba, self.resize_width)
        logger.debug(
            "Working resolution %dx%d (ratio %.4f)", working.shape[1], working.shape[0], ratio
        )
        return working, ratio

    def segment(self, image: np.ndarray) -> Tuple[np.ndarray, int]:
        gray = to_inverted_grayscale(image)
        binary = adaptive_threshold(gray, window_size=self.window_size, c=self.c)
        opened = morphology_open(binary)
        logger.debug(
            "Foreground pixels: %d thresholded, %d after opening",
            int(binary.sum()), int(opened.sum()),
        )
        return connected_components(opened)

    def filter(
        self,
        labels: np.ndarray,
        count: int,
        image_width: int,
    ) -> List[BlobStats]:
        candidates = [
            blob for blob in analyze_blobs(labels, count)
            if is_valid_loop(
                blob,
                min_area=self.min_area,
                max_area=self.max_area,
                min_aspect_ratio=self.min_aspect_ratio,
                min_solidity=self.min_solidity,
            )
        ]
        outermost = filter_outermost(candidates, image_width, column_width=self.column_width)
        logger.debug(
            "%d of %d blobs passed shape gates, %d kept by skyline",
            len(candidates), count, len(outermost),
        )
        return outermost


def detect_loops(pixels: np.ndarray, **params: Any) -> List[DetectedLoop]:
    """
    Detect the outermost capillary loops in a decoded image.

    Args:
        pixels: RGBA/RGB/grayscale buffer of the original image
        **params: Overrides for any CapillaryLoopStrategy parameter

    Returns:
        DetectedLoop records (Normal, outermost) in original image
        coordinates, ordered left to right

    Raises:
        UnsupportedImageError: If the buffer cannot be processed.
    """
    return CapillaryLoopStrategy(**params).detect(pixels)
