"""
Per-blob geometry and the shape gates that decide whether a blob is a loop.

Capillary loops in the outermost row appear as solid, vertically elongated
blobs of moderate size. ``is_valid_loop`` accepts a blob only if all three
hold:

- ``min_area <= area <= max_area``
- ``height / width >= min_aspect_ratio`` (bounding box)
- ``area / (width * height) >= min_solidity``

Areas are in working-resolution pixels (see ``DETECTION_DEFAULTS``).
"""

from dataclasses import dataclass
from typing import List

import numpy as np
from scipy import ndimage

from capillary.utils.config import DETECTION_DEFAULTS


@dataclass
class BlobStats:
    """
    Geometry of one labelled component.

    Bounding-box bounds are inclusive. An empty blob has ``area == 0``,
    centroid ``(0, 0)`` and ``max < min`` bounds (zero width and height).
    """
    area: int
    min_x: int
    max_x: int
    min_y: int
    max_y: int
    center_x: float
    center_y: float
    label: int = 0

    @property
    def width(self) -> int:
        return max(0, self.max_x - self.min_x + 1)

    @property
    def height(self) -> int:
        return max(0, self.max_y - self.min_y + 1)

    @property
    def aspect_ratio(self) -> float:
        """Bounding-box height / width."""
        return self.height / self.width if self.width > 0 else 0.0

    @property
    def solidity(self) -> float:
        """Area / bounding-box area."""
        bbox_area = self.width * self.height
        return self.area / bbox_area if bbox_area > 0 else 0.0


def _empty_blob(label: int) -> BlobStats:
    return BlobStats(area=0, min_x=0, max_x=-1, min_y=0, max_y=-1,
                     center_x=0.0, center_y=0.0, label=label)


def analyze_blob(labels: np.ndarray, label: int) -> BlobStats:
    """
    Area, bounding box and centroid of one label.

    Args:
        labels: ``(H, W)`` label map
        label: Label id to measure

    Returns:
        BlobStats for the label (empty stats if the label is absent)
    """
    ys, xs = np.nonzero(labels == label)
    area = int(xs.size)
    if area == 0:
        return _empty_blob(label)

    return BlobStats(
        area=area,
        min_x=int(xs.min()),
        max_x=int(xs.max()),
        min_y=int(ys.min()),
        max_y=int(ys.max()),
        center_x=float(xs.sum()) / area,
        center_y=float(ys.sum()) / area,
        label=label,
    )


def analyze_blobs(labels: np.ndarray, count: int) -> List[BlobStats]:
    """
    Measure every label ``1..count`` in a single pass over the label map.

    Equivalent to ``[analyze_blob(labels, i) for i in range(1, count + 1)]``.

    Returns:
        List of BlobStats ordered by label
    """
    if count <= 0:
        return []

    height, width = labels.shape
    flat = labels.ravel()
    ys, xs = np.divmod(np.arange(flat.size), width)

    areas = np.bincount(flat, minlength=count + 1)
    sum_x = np.bincount(flat, weights=xs, minlength=count + 1)
    sum_y = np.bincount(flat, weights=ys, minlength=count + 1)
    boxes = ndimage.find_objects(labels, max_label=count)

    blobs = []
    for label in range(1, count + 1):
        box = boxes[label - 1]
        area = int(areas[label])
        if box is None or area == 0:
            blobs.append(_empty_blob(label))
            continue
        rows, cols = box
        blobs.append(BlobStats(
            area=area,
            min_x=cols.start,
            max_x=cols.stop - 1,
            min_y=rows.start,
            max_y=rows.stop - 1,
            center_x=float(sum_x[label]) / area,
            center_y=float(sum_y[label]) / area,
            label=label,
        ))
    return blobs


def is_valid_loop(
    blob: BlobStats,
    min_area: int = DETECTION_DEFAULTS["min_area"],
    max_area: int = DETECTION_DEFAULTS["max_area"],
    min_aspect_ratio: float = DETECTION_DEFAULTS["min_aspect_ratio"],
    min_solidity: float = DETECTION_DEFAULTS["min_solidity"],
) -> bool:
    """Apply the area, aspect-ratio and solidity gates to a blob."""
    if blob.area < min_area or blob.area > max_area:
        return False

    # Capillaries are elongated vertically
    if blob.aspect_ratio < min_aspect_ratio:
        return False

    if blob.solidity < min_solidity:
        return False

    return True
