"""
Skew-angle estimation for capillaroscopy images.

Capillary loops run roughly perpendicular to the nailfold. When they are
vertical, summing horizontal-gradient energy down each image column gives
sharply separated peaks (vessel walls) and valleys (gaps), i.e. a
high-variance projection profile. A rotated image smears neighbouring
columns together and the variance drops. The estimator sweeps candidate
angles and keeps the one with the largest projection variance.

Usage:
    from capillary.preprocessing import calculate_skew_angle, rotate_image

    angle = calculate_skew_angle(pixels)
    straightened = rotate_image(pixels, angle)
"""

import math
from typing import Optional

import cv2
import numpy as np

from capillary.io.image_loader import ensure_rgba, downsample_max_dim
from capillary.preprocessing.grayscale import to_grayscale, sobel_x
from capillary.utils.config import DESKEW_DEFAULTS
from capillary.utils.logging import get_logger

logger = get_logger(__name__)


def projection_variance(edges: np.ndarray, angle_deg: float) -> float:
    """
    Variance of the per-column mean edge energy after rotating by ``-angle``.

    Every pixel coordinate is rotated about the image centre; its edge value
    is accumulated into the column ``floor(x')`` of the rotated x coordinate.
    Columns outside ``[0, W)`` are dropped. The result is the population
    variance of the mean value of each populated column.

    Args:
        edges: ``(H, W)`` edge-intensity buffer
        angle_deg: Candidate rotation in degrees

    Returns:
        Projection variance, 0.0 when no column receives a sample
    """
    height, width = edges.shape
    angle_rad = math.radians(angle_deg)
    sin_a = math.sin(angle_rad)
    cos_a = math.cos(angle_rad)

    center_x = width / 2
    center_y = height / 2
    dx = np.arange(width, dtype=np.float64) - center_x
    dy = np.arange(height, dtype=np.float64) - center_y

    rot_x = dx[None, :] * cos_a - dy[:, None] * sin_a + center_x
    bins = np.floor(rot_x).astype(np.int64).ravel()
    values = edges.ravel().astype(np.float64)

    inside = (bins >= 0) & (bins < width)
    if not inside.any():
        return 0.0

    sums = np.bincount(bins[inside], weights=values[inside], minlength=width)
    counts = np.bincount(bins[inside], minlength=width)

    populated = counts > 0
    means = sums[populated] / counts[populated]
    return float(np.mean(means * means) - np.mean(means) ** 2)


def _sweep(edges: np.ndarray, angles, best_angle: float, best_variance: float):
    # Strictly greater: earlier candidates win ties
    for angle in angles:
        variance = projection_variance(edges, angle)
        if variance > best_variance:
            best_variance = variance
            best_angle = angle
    return best_angle, best_variance


def calculate_skew_angle(
    pixels: np.ndarray,
    max_dim: Optional[int] = None,
    angle_range: Optional[float] = None,
    coarse_step: Optional[float] = None,
    fine_step: Optional[float] = None,
) -> float:
    """
    Estimate the rotation that makes capillary structures vertical.

    The image is downsampled so its longer side is at most ``max_dim``,
    converted to grayscale and filtered with a horizontal Sobel kernel.
    A coarse sweep over ``[-angle_range, +angle_range]`` in ``coarse_step``
    increments is refined by a sweep of ``+/- coarse_step`` around the coarse
    best in ``fine_step`` increments.

    Args:
        pixels: RGBA/RGB/grayscale pixel buffer
        max_dim: Longer side after downsampling (default 512)
        angle_range: Half-width of the coarse sweep in degrees (default 20)
        coarse_step: Coarse step in degrees (default 1.0)
        fine_step: Fine step in degrees (default 0.1)

    Returns:
        Absolute rotation angle in degrees. A positive angle means the
        structures lean down-right (``x`` grows with ``y``) and the image must
        be turned clockwise by that amount.

    Raises:
        UnsupportedImageError: If the buffer cannot be processed.
    """
    max_dim = DESKEW_DEFAULTS["max_dim"] if max_dim is None else max_dim
    angle_range = DESKEW_DEFAULTS["angle_range"] if angle_range is None else angle_range
    coarse_step = DESKEW_DEFAULTS["coarse_step"] if coarse_step is None else coarse_step
    fine_step = DESKEW_DEFAULTS["fine_step"] if fine_step is None else fine_step

    rgba = ensure_rgba(pixels)
    small, scale = downsample_max_dim(rgba, max_dim)
    edges = sobel_x(to_grayscale(small))
    logger.debug(
        "Deskew working size %dx%d (scale %.3f)", small.shape[1], small.shape[0], scale
    )

    n_coarse = int(round(angle_range / coarse_step))
    coarse_angles = [round(k * coarse_step, 6) for k in range(-n_coarse, n_coarse + 1)]
    # Images without edges score 0 everywhere and stay at 0 degrees.
    # Seeding the best variance at 0 rather than -1 is deliberate: a -1 seed
    # would report -angle_range for them.
    best_angle, best_variance = _sweep(edges, coarse_angles, 0.0, 0.0)
    coarse_best = best_angle

    n_fine = int(round(coarse_step / fine_step))
    fine_angles = [round(coarse_best + k * fine_step, 6) for k in range(-n_fine, n_fine + 1)]
    best_angle, best_variance = _sweep(edges, fine_angles, best_angle, best_variance)

    logger.info(
        "Skew angle %.1f deg (coarse %.1f, variance %.2f)",
        best_angle, coarse_best, best_variance,
    )
    return float(best_angle)


def rotate_image(pixels: np.ndarray, angle_deg: float) -> np.ndarray:
    """
    Rotate a pixel buffer about its centre, keeping the canvas size.

    Positive angles rotate clockwise on screen, the same convention as the
    angle returned by :func:`calculate_skew_angle`, so
    ``rotate_image(pixels, calculate_skew_angle(pixels))`` straightens the
    capillaries. Uncovered corners are transparent black.

    Returns:
        New ``(H, W, 4)`` uint8 buffer
    """
    rgba = ensure_rgba(pixels)
    if angle_deg == 0:
        return rgba
    height, width = rgba.shape[:2]
    # OpenCV treats positive angles as counter-clockwise
    matrix = cv2.getRotationMatrix2D((width / 2, height / 2), -angle_deg, 1.0)
    return cv2.warpAffine(
        rgba, matrix, (width, height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(0, 0, 0, 0),
    )
