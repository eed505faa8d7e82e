"""
Locally adaptive thresholding using an integral image.

Capillaroscopy photos are unevenly lit, so a single global threshold either
drops capillaries in dark corners or floods bright regions. Each pixel is
instead compared with the mean of its own neighbourhood.
"""

import numpy as np

from capillary.utils.config import DETECTION_DEFAULTS


def integral_image(gray: np.ndarray) -> np.ndarray:
    """
    Summed-area table with a leading row and column of zeros.

    ``table[y, x]`` is the sum of ``gray[:y, :x]``, so the sum of the
    inclusive rectangle ``(x1, y1)-(x2, y2)`` is
    ``table[y2+1, x2+1] - table[y1, x2+1] - table[y2+1, x1] + table[y1, x1]``.

    Args:
        gray: ``(H, W)`` grayscale buffer

    Returns:
        ``(H + 1, W + 1)`` int64 array
    """
    height, width = gray.shape
    table = np.zeros((height + 1, width + 1), dtype=np.int64)
    table[1:, 1:] = gray.astype(np.int64).cumsum(axis=0).cumsum(axis=1)
    return table


def adaptive_threshold(
    gray: np.ndarray,
    window_size: int = DETECTION_DEFAULTS["window_size"],
    c: float = DETECTION_DEFAULTS["c"],
) -> np.ndarray:
    """
    Mark pixels brighter than their local mean plus ``c``.

    The neighbourhood is a ``window_size`` square centred on the pixel,
    clipped to the image. The mean divides by the clipped window area, so
    border pixels are not compared against an underestimated mean.

    Args:
        gray: ``(H, W)`` grayscale buffer (foreground bright)
        window_size: Odd window edge in pixels (default 15)
        c: Constant added to the local mean (default 2)

    Returns:
        ``(H, W)`` uint8 mask of 0/1

    Raises:
        ValueError: If window_size is not a positive odd integer.
    """
    if window_size < 1 or window_size % 2 == 0:
        raise ValueError(f"window_size must be a positive odd integer, got {window_size}")

    height, width = gray.shape
    half = window_size // 2
    table = integral_image(gray)

    ys = np.arange(height)
    xs = np.arange(width)
    y1 = np.maximum(ys - half, 0)
    y2 = np.minimum(ys + half, height - 1) + 1
    x1 = np.maximum(xs - half, 0)
    x2 = np.minimum(xs + half, width - 1) + 1

    window_sum = (table[y2[:, None], x2[None, :]]
                  - table[y1[:, None], x2[None, :]]
                  - table[y2[:, None], x1[None, :]]
                  + table[y1[:, None], x1[None, :]])
    count = (y2 - y1)[:, None] * (x2 - x1)[None, :]
    local_mean = window_sum / count

    return (gray > local_mean + c).astype(np.uint8)
