"""
Skyline selection of the outermost capillary row.

The image is divided into fixed-width vertical columns and only the most
extreme blob of each column is kept. Nailfold images are captured
"upside-down", so the outermost loop tips sit at the bottom of the frame:
the extreme blob is the one with the largest centroid y.

This is a deliberate simplification. No skeleton or adjacency graph of the
capillary row is built, so two outermost loops sharing a column collapse
into one and a deeper loop alone in its column is still reported.
"""

import math
from typing import List, Optional

from capillary.detection.blobs import BlobStats
from capillary.detection.loops import DetectedLoop, Morphology
from capillary.utils.config import DETECTION_DEFAULTS


def filter_outermost(
    blobs: List[BlobStats],
    image_width: int,
    column_width: int = DETECTION_DEFAULTS["column_width"],
) -> List[BlobStats]:
    """
    Keep the bottom-most blob of every column.

    Args:
        blobs: Candidate blobs (already validated)
        image_width: Width of the image the blobs were measured in
        column_width: Column width in the same pixel units

    Returns:
        At most one blob per column, ordered left to right. Within a column
        the first blob with the maximum ``center_y`` wins.
    """
    if not blobs:
        return []
    if column_width <= 0:
        raise ValueError(f"column_width must be positive, got {column_width}")

    n_columns = math.ceil(image_width / column_width)
    skyline: List[Optional[BlobStats]] = [None] * n_columns

    for blob in blobs:
        column = math.floor(blob.center_x / column_width)
        if 0 <= column < n_columns:
            best = skyline[column]
            if best is None or blob.center_y > best.center_y:
                skyline[column] = blob

    return [blob for blob in skyline if blob is not None]


def to_detected_loops(blobs: List[BlobStats], ratio: float) -> List[DetectedLoop]:
    """
    Map working-resolution blobs back to original image coordinates.

    Args:
        blobs: Selected blobs
        ratio: ``working_width / original_width`` used for the downscale

    Returns:
        One DetectedLoop per blob, morphology Normal, flagged outermost
    """
    return [
        DetectedLoop(
            x=blob.center_x / ratio,
            y=blob.center_y / ratio,
            morphology=Morphology.NORMAL,
            diameter=0.0,
            is_outermost=True,
        )
        for blob in blobs
    ]
