"""
Base class for loop detection strategies.

A strategy encapsulates the complete pipeline that turns a decoded image
into DetectedLoop records:

1. prepare(): rescale to the working resolution
2. segment(): produce a label map of candidate components
3. filter(): measure components and keep the ones that look like loops
4. detect(): run 1-3 and map survivors back to original coordinates
"""

from abc import ABC, abstractmethod
from typing import List, Tuple

import numpy as np

from capillary.detection.blobs import BlobStats
from capillary.detection.loops import DetectedLoop
from capillary.detection.skyline import to_detected_loops
from capillary.utils.logging import get_logger, ProcessingTimer

logger = get_logger(__name__)


class DetectionStrategy(ABC):
    """
    Abstract base class for capillary loop detection strategies.

    Example usage:
        strategy = CapillaryLoopStrategy(min_area=150)
        loops = strategy.detect(pixels)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the strategy name."""
        pass

    @abstractmethod
    def prepare(self, pixels: np.ndarray) -> Tuple[np.ndarray, float]:
        """
        Convert the input into the working-resolution buffer.

        Args:
            pixels: Decoded image (RGBA/RGB/grayscale)

        Returns:
            Tuple of (working buffer, ratio) where ``ratio`` is
            working size / original size.
        """
        pass

    @abstractmethod
    def segment(self, image: np.ndarray) -> Tuple[np.ndarray, int]:
        """
        Generate candidate components from a working-resolution image.

        Returns:
            Tuple of (label map, component count)
        """
        pass

    @abstractmethod
    def filter(
        self,
        labels: np.ndarray,
        count: int,
        image_width: int,
    ) -> List[BlobStats]:
        """
        Measure components and keep those that pass the strategy's rules.

        Returns:
            Accepted blobs in working-resolution coordinates
        """
        pass

    def detect(self, pixels: np.ndarray) -> List[DetectedLoop]:
        """
        Complete detection pipeline: prepare + segment + filter.

        Runs to completion or raises; no partial result is returned.

        Args:
            pixels: Decoded image

        Returns:
            DetectedLoop records in original image coordinates
        """
        with ProcessingTimer(logger, f"{self.name} detection"):
            image, ratio = self.prepare(pixels)
            labels, count = self.segment(image)
            if count == 0:
                logger.info("No candidate components found")
                return []
            blobs = self.filter(labels, count, image.shape[1])
            loops = to_detected_loops(blobs, ratio)

        logger.info("Detected %d outermost loops from %d components", len(loops), count)
        return loops
