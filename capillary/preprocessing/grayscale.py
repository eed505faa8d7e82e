"""
Grayscale conversion and edge primitives shared by deskew and loop detection.

All functions take ``(H, W, 4)`` RGBA (or ``(H, W, 3)`` RGB) uint8 buffers or
``(H, W)`` grayscale buffers and return new arrays of the same height and
width.
"""

import numpy as np

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def luminance(pixels: np.ndarray) -> np.ndarray:
    """
    Unrounded weighted luminance ``0.299R + 0.587G + 0.114B``.

    Args:
        pixels: ``(H, W, 3|4)`` uint8 buffer

    Returns:
        ``(H, W)`` float64 array in [0, 255]
    """
    rgb = pixels[..., :3].astype(np.float64)
    return rgb[..., 0] * LUMA_WEIGHTS[0] + rgb[..., 1] * LUMA_WEIGHTS[1] + rgb[..., 2] * LUMA_WEIGHTS[2]


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    """Rounded luminance as a ``(H, W)`` uint8 buffer."""
    return np.clip(np.round(luminance(pixels)), 0, 255).astype(np.uint8)


def to_inverted_grayscale(pixels: np.ndarray) -> np.ndarray:
    """
    Inverted luminance ``255 - L``, truncated to uint8.

    Capillaries are darker than the surrounding skin; inverting makes them
    the bright foreground the thresholding stage looks for.
    """
    inverted = 255.0 - luminance(pixels)
    return np.clip(np.floor(inverted), 0, 255).astype(np.uint8)


def sobel_x(gray: np.ndarray) -> np.ndarray:
    """
    Horizontal Sobel gradient magnitude.

    Kernel ``[[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]]`` on interior pixels only;
    the 1-pixel border stays 0. The absolute response is clamped to 255.

    Args:
        gray: ``(H, W)`` grayscale buffer

    Returns:
        ``(H, W)`` uint8 edge intensity
    """
    g = gray.astype(np.int32)
    edges = np.zeros(g.shape, dtype=np.uint8)
    if g.shape[0] < 3 or g.shape[1] < 3:
        return edges

    right = g[:-2, 2:] + 2 * g[1:-1, 2:] + g[2:, 2:]
    left = g[:-2, :-2] + 2 * g[1:-1, :-2] + g[2:, :-2]
    edges[1:-1, 1:-1] = np.minimum(255, np.abs(right - left))
    return edges
