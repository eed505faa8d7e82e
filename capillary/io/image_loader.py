"""
Image decoding, resampling and re-encoding.

Pixel buffers throughout the package are ``(H, W, 4)`` uint8 RGBA numpy
arrays. This module turns user files into such buffers, rescales them to the
working resolutions of the analysis stages, and encodes results back to JPEG.

Usage:
    from capillary.io import load_image, encode_jpeg

    pixels = load_image("/path/to/nailfold.jpg")
    jpeg_bytes = encode_jpeg(pixels, quality=95)
"""

import io
import math
from pathlib import Path
from typing import BinaryIO, Tuple, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from capillary.utils.logging import get_logger

logger = get_logger(__name__)

ImageSource = Union[str, Path, bytes, BinaryIO, np.ndarray]


class ImageLoadError(Exception):
    """Raised when an image source cannot be read or decoded."""
    pass


class UnsupportedImageError(ValueError):
    """Raised for pixel buffers the pipeline cannot process."""
    pass


def ensure_rgba(pixels: np.ndarray) -> np.ndarray:
    """
    Validate a pixel buffer and return it as a new RGBA uint8 array.

    Accepts ``(H, W)`` grayscale, ``(H, W, 3)`` RGB and ``(H, W, 4)`` RGBA
    arrays. Grayscale and RGB inputs get an opaque alpha channel. The input
    is never returned or modified in place.

    Args:
        pixels: Candidate pixel buffer

    Returns:
        ``(H, W, 4)`` uint8 array

    Raises:
        UnsupportedImageError: If the array has the wrong shape, is empty,
            or holds values outside 0-255.
    """
    if not isinstance(pixels, np.ndarray):
        raise UnsupportedImageError(
            f"Expected a numpy array, got {type(pixels).__name__}"
        )
    if pixels.ndim not in (2, 3) or (pixels.ndim == 3 and pixels.shape[2] not in (3, 4)):
        raise UnsupportedImageError(
            f"Expected (H, W), (H, W, 3) or (H, W, 4) buffer, got shape {pixels.shape}"
        )
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise UnsupportedImageError(f"Empty pixel buffer: shape {pixels.shape}")

    if pixels.dtype != np.uint8:
        if not np.issubdtype(pixels.dtype, np.number):
            raise UnsupportedImageError(f"Unsupported dtype {pixels.dtype}")
        if pixels.min() < 0 or pixels.max() > 255:
            raise UnsupportedImageError(
                f"Pixel values must lie in [0, 255], got [{pixels.min()}, {pixels.max()}]"
            )
        pixels = pixels.astype(np.uint8)

    height, width = pixels.shape[:2]
    rgba = np.empty((height, width, 4), dtype=np.uint8)
    if pixels.ndim == 2:
        rgba[..., :3] = pixels[..., None]
        rgba[..., 3] = 255
    elif pixels.shape[2] == 3:
        rgba[..., :3] = pixels
        rgba[..., 3] = 255
    else:
        rgba[...] = pixels
    return rgba


def load_image(source: ImageSource) -> np.ndarray:
    """
    Decode an image into an RGBA pixel buffer.

    Args:
        source: File path, encoded bytes, binary file object, or an existing
            pixel buffer (validated and copied).

    Returns:
        ``(H, W, 4)`` uint8 array

    Raises:
        ImageLoadError: If the file is missing or cannot be decoded.
        UnsupportedImageError: If an array source has an unsupported layout.
    """
    if isinstance(source, np.ndarray):
        return ensure_rgba(source)

    if isinstance(source, (bytes, bytearray)):
        stream = io.BytesIO(source)
        name = f"<{len(source)} bytes>"
    elif isinstance(source, (str, Path)):
        stream = Path(source)
        name = str(source)
        if not stream.exists():
            raise ImageLoadError(f"Image file not found: {stream}")
    else:
        stream = source
        name = getattr(source, "name", repr(source))

    try:
        with Image.open(stream) as img:
            img.load()
            rgba = np.asarray(img.convert("RGBA"), dtype=np.uint8).copy()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageLoadError(f"Failed to load image {name}: {e}") from e

    logger.debug("Loaded %s (%dx%d)", name, rgba.shape[1], rgba.shape[0])
    return rgba


def resize_to_width(pixels: np.ndarray, target_width: int) -> Tuple[np.ndarray, float]:
    """
    Rescale a buffer to a fixed width, keeping the aspect ratio.

    Args:
        pixels: ``(H, W, C)`` or ``(H, W)`` array
        target_width: Output width in pixels

    Returns:
        Tuple of (resized buffer, ratio) where ``ratio = target_width / W``
        and the output height is ``floor(H * ratio + 0.5)`` (halves round up).
    """
    height, width = pixels.shape[:2]
    ratio = target_width / width
    target_height = max(1, int(math.floor(height * ratio + 0.5)))

    if (target_width, target_height) == (width, height):
        return pixels.copy(), ratio

    interpolation = cv2.INTER_AREA if ratio < 1 else cv2.INTER_LINEAR
    resized = cv2.resize(pixels, (target_width, target_height), interpolation=interpolation)
    return resized, ratio


def downsample_max_dim(pixels: np.ndarray, max_dim: int) -> Tuple[np.ndarray, float]:
    """
    Shrink a buffer so its longer side is at most ``max_dim`` pixels.

    Never upsamples. Output dimensions are floored.

    Returns:
        Tuple of (buffer, scale) with ``scale <= 1``.
    """
    height, width = pixels.shape[:2]
    scale = min(1.0, max_dim / max(width, height))
    if scale >= 1.0:
        return pixels.copy(), 1.0

    new_width = max(1, int(math.floor(width * scale)))
    new_height = max(1, int(math.floor(height * scale)))
    resized = cv2.resize(pixels, (new_width, new_height), interpolation=cv2.INTER_AREA)
    return resized, scale


def encode_jpeg(pixels: np.ndarray, quality: int = 95) -> bytes:
    """
    Encode an RGBA (or RGB) buffer as JPEG bytes.

    JPEG has no alpha channel; alpha is dropped.
    """
    rgba = ensure_rgba(pixels)
    buffer = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(rgba[..., :3])).save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def save_image(pixels: np.ndarray, path: Union[str, Path]) -> Path:
    """Save a pixel buffer; the format follows the file extension."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rgba = ensure_rgba(pixels)
    if path.suffix.lower() in (".jpg", ".jpeg"):
        Image.fromarray(np.ascontiguousarray(rgba[..., :3])).save(path, quality=95)
    else:
        Image.fromarray(rgba).save(path)
    return path
