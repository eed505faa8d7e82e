"""
Pixel/micron conversions for calibrated measurements.

The calibration scale is expressed in pixels per micron and is supplied by
the user (e.g. by drawing a ruler over a stage micrometer). The image
analysis pipeline itself works in pixel space; these helpers serve the
measurements built on top of it.
"""

import math

# Side of the nailfold assessment box (1 mm)
ASSESSMENT_BOX_SIDE_UM = 1000.0


def _check_scale(pixels_per_micron: float) -> None:
    if pixels_per_micron <= 0:
        raise ValueError(f"pixels_per_micron must be positive, got {pixels_per_micron}")


def pixels_to_microns(pixels: float, pixels_per_micron: float) -> float:
    """Convert a pixel distance to microns."""
    _check_scale(pixels_per_micron)
    return pixels / pixels_per_micron


def microns_to_pixels(microns: float, pixels_per_micron: float) -> float:
    """Convert a distance in microns to pixels."""
    _check_scale(pixels_per_micron)
    return microns * pixels_per_micron


def ruler_length_um(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    pixels_per_micron: float,
) -> float:
    """
    Length of a measurement ruler in microns.

    Args:
        x1, y1: Ruler start in image pixels
        x2, y2: Ruler end in image pixels
        pixels_per_micron: Calibration scale

    Returns:
        Euclidean length in microns
    """
    return pixels_to_microns(math.hypot(x2 - x1, y2 - y1), pixels_per_micron)


def assessment_box_side_px(
    pixels_per_micron: float,
    side_um: float = ASSESSMENT_BOX_SIDE_UM,
) -> float:
    """Side length in pixels of the fixed-size assessment box."""
    return microns_to_pixels(side_um, pixels_per_micron)
