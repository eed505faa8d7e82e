"""
Contrast enhancement for capillaroscopy images.

Pipeline, each stage returning a new RGBA buffer:
1. CLAHE: tile-local histogram equalization with clipping
2. Auto-levels: global 1st-99th percentile stretch
3. Unsharp sharpening: 3x3 sharpen kernel blended with the original

The enhanced variant is an alternate display source; the original image is
never modified.

Usage:
    from capillary.preprocessing import enhance_pixels, enhance_image

    enhanced = enhance_pixels(pixels)             # RGBA buffer
    jpeg_bytes = enhance_image("/path/to/img.jpg")  # re-encoded JPEG

    # Cache so repeated display toggles do not re-run the pipeline
    cache = EnhancementCache()
    jpeg_bytes = cache.get_or_create("img.jpg", "/path/to/img.jpg")
"""

import math
import threading
from collections import OrderedDict
from typing import Any, Hashable, Optional

import numpy as np

from capillary.io.image_loader import ImageSource, ensure_rgba, load_image, encode_jpeg
from capillary.preprocessing.grayscale import luminance, to_grayscale
from capillary.utils.config import ENHANCEMENT_DEFAULTS
from capillary.utils.logging import get_logger, ProcessingTimer

logger = get_logger(__name__)

_IDENTITY_LUT = np.arange(256, dtype=np.uint8)


def _round_half_up(values):
    """Round halves towards +inf (``np.round`` rounds them to even)."""
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5)


def _clip_histogram(hist: np.ndarray, clip_limit: float, n_pixels: int) -> np.ndarray:
    """
    Clip a 256-bin histogram and hand the clipped counts back out.

    Bins are capped at ``floor(clip_limit * n_pixels / 256)``, which is 0 for
    8x8 tiles at the default limit. The excess goes ``excess // 256`` to
    every bin, then one more count to each of the lowest ``excess % 256``
    bins. The total count is unchanged.
    """
    clip_value = int(clip_limit * n_pixels / 256)
    excess = int(np.maximum(hist - clip_value, 0).sum())
    clipped = np.minimum(hist, clip_value).astype(np.int64)

    batch, residual = divmod(excess, 256)
    clipped += batch
    clipped[:residual] += 1
    return clipped


def _tile_lut(tile: np.ndarray, clip_limit: float) -> np.ndarray:
    """Clipped-histogram equalization lookup table for one tile."""
    n_pixels = tile.size
    hist = np.bincount(tile.ravel(), minlength=256).astype(np.int64)

    # A single grey level has no contrast to redistribute
    if np.count_nonzero(hist) <= 1:
        return _IDENTITY_LUT

    cdf = np.cumsum(_clip_histogram(hist, clip_limit, n_pixels))
    cdf_min = cdf[cdf > 0][0]
    cdf_range = n_pixels - cdf_min
    if cdf_range <= 0:
        return _IDENTITY_LUT

    lut = _round_half_up((cdf - cdf_min) / cdf_range * 255)
    return np.clip(lut, 0, 255).astype(np.uint8)


def apply_clahe(
    pixels: np.ndarray,
    clip_limit: Optional[float] = None,
    tile_size: Optional[int] = None,
) -> np.ndarray:
    """
    Apply Contrast Limited Adaptive Histogram Equalization (CLAHE).

    The grayscale image is split into ``tile_size`` x ``tile_size`` tiles
    (edge tiles may be smaller). Each tile's 256-bin histogram is clipped at
    ``floor(clip_limit * n / 256)``; the clipped mass is spread evenly over
    all bins, the leftover one count each to the lowest bins. The normalised
    CDF becomes the tile's lookup table. At the default limit an 8x8 tile
    clips at 0, so its table depends only on which levels are present: with
    two or more levels, grey ``v < 64`` maps to ``round(v * 255 / 63)`` and
    everything brighter to 255. Single-level tiles keep the identity table.

    Each pixel is remapped with the table of the tile that contains it (no
    interpolation between neighbouring tiles). Colour is preserved by scaling
    R, G and B by ``new_luminance / old_luminance``; black pixels take the
    new grey value directly.

    Args:
        pixels: RGBA/RGB/grayscale pixel buffer
        clip_limit: Contrast limit (default 2.5). Higher values give more
            contrast but amplify noise.
        tile_size: Tile edge in pixels (default 8)

    Returns:
        New ``(H, W, 4)`` uint8 buffer with alpha preserved
    """
    clip_limit = ENHANCEMENT_DEFAULTS["clip_limit"] if clip_limit is None else clip_limit
    tile_size = ENHANCEMENT_DEFAULTS["tile_size"] if tile_size is None else tile_size
    if tile_size < 1:
        raise ValueError(f"tile_size must be positive, got {tile_size}")

    rgba = ensure_rgba(pixels)
    gray = to_grayscale(rgba)
    height, width = gray.shape

    tiles_y = math.ceil(height / tile_size)
    tiles_x = math.ceil(width / tile_size)
    luts = np.empty((tiles_y, tiles_x, 256), dtype=np.uint8)
    for ty in range(tiles_y):
        y0 = ty * tile_size
        for tx in range(tiles_x):
            x0 = tx * tile_size
            luts[ty, tx] = _tile_lut(gray[y0:y0 + tile_size, x0:x0 + tile_size], clip_limit)

    tile_rows = np.minimum(np.arange(height) // tile_size, tiles_y - 1)
    tile_cols = np.minimum(np.arange(width) // tile_size, tiles_x - 1)
    new_val = luts[tile_rows[:, None], tile_cols[None, :], gray].astype(np.float64)

    old_lum = luminance(rgba)
    lit = old_lum > 0
    ratio = np.divide(new_val, old_lum, out=np.zeros_like(new_val), where=lit)

    rgb = rgba[..., :3].astype(np.float64)
    scaled = np.minimum(255, _round_half_up(rgb * ratio[..., None]))
    scaled = np.where(lit[..., None], scaled, new_val[..., None])

    out = rgba.copy()
    out[..., :3] = scaled.astype(np.uint8)
    return out


def auto_levels(
    pixels: np.ndarray,
    low_percentile: Optional[float] = None,
    high_percentile: Optional[float] = None,
) -> np.ndarray:
    """
    Stretch the luminance range between two percentiles to [0, 255].

    ``min_val`` and ``max_val`` are the first grey levels whose cumulative
    pixel count reaches ``low_percentile`` and ``high_percentile`` of the
    image (and at least one pixel). Every RGB channel is mapped linearly from
    ``[min_val, max_val]`` to ``[0, 255]`` and clamped. Images whose range
    collapses (``min_val == max_val``) are returned unchanged.

    ``min_val`` is always the first level reaching the low count, including
    level 0. A scan that records ``min_val`` only while it is still 0 would
    move it to the next level in that case; that shift is not reproduced.

    Args:
        pixels: RGBA/RGB/grayscale pixel buffer
        low_percentile: Lower percentile as a fraction (default 0.01)
        high_percentile: Upper percentile as a fraction (default 0.99)

    Returns:
        New ``(H, W, 4)`` uint8 buffer with alpha preserved
    """
    low_percentile = (ENHANCEMENT_DEFAULTS["low_percentile"]
                      if low_percentile is None else low_percentile)
    high_percentile = (ENHANCEMENT_DEFAULTS["high_percentile"]
                       if high_percentile is None else high_percentile)

    rgba = ensure_rgba(pixels)
    lum = to_grayscale(rgba)
    total = lum.size

    cumulative = np.cumsum(np.bincount(lum.ravel(), minlength=256))
    low_count = max(1, int(total * low_percentile))
    high_count = max(1, int(total * high_percentile))
    min_val = int(np.searchsorted(cumulative, low_count))
    max_val = int(np.searchsorted(cumulative, high_count))

    value_range = max_val - min_val
    if value_range <= 0:
        return rgba

    rgb = rgba[..., :3].astype(np.float64)
    stretched = _round_half_up((rgb - min_val) / value_range * 255)

    out = rgba.copy()
    out[..., :3] = np.clip(stretched, 0, 255).astype(np.uint8)
    logger.debug("Auto-levels stretch [%d, %d] -> [0, 255]", min_val, max_val)
    return out


def unsharp_sharpen(pixels: np.ndarray, amount: Optional[float] = None) -> np.ndarray:
    """
    Sharpen with the kernel ``[[0,-1,0],[-1,5,-1],[0,-1,0]]``, blended.

    The kernel is applied per RGB channel on interior pixels (the 1-pixel
    border is copied unchanged), clamped to [0, 255], then blended:
    ``original * (1 - amount) + sharpened * amount``.

    Args:
        pixels: RGBA/RGB/grayscale pixel buffer
        amount: Blend factor in [0, 1] (default 0.6)

    Returns:
        New ``(H, W, 4)`` uint8 buffer with alpha preserved
    """
    amount = ENHANCEMENT_DEFAULTS["sharpen_amount"] if amount is None else amount

    rgba = ensure_rgba(pixels)
    out = rgba.copy()
    if rgba.shape[0] < 3 or rgba.shape[1] < 3:
        return out

    c = rgba[..., :3].astype(np.float64)
    center = c[1:-1, 1:-1]
    sharpened = (5 * center
                 - c[:-2, 1:-1] - c[2:, 1:-1]
                 - c[1:-1, :-2] - c[1:-1, 2:])
    sharpened = np.clip(sharpened, 0, 255)

    blended = _round_half_up(center * (1 - amount) + sharpened * amount)
    out[1:-1, 1:-1, :3] = np.clip(blended, 0, 255).astype(np.uint8)
    return out


def enhance_pixels(
    pixels: np.ndarray,
    clip_limit: Optional[float] = None,
    tile_size: Optional[int] = None,
    sharpen_amount: Optional[float] = None,
    low_percentile: Optional[float] = None,
    high_percentile: Optional[float] = None,
) -> np.ndarray:
    """
    Run the full enhancement pipeline: CLAHE, auto-levels, sharpening.

    Returns:
        New ``(H, W, 4)`` uint8 buffer; the input is not modified
    """
    with ProcessingTimer(logger, "image enhancement"):
        enhanced = apply_clahe(pixels, clip_limit=clip_limit, tile_size=tile_size)
        enhanced = auto_levels(enhanced, low_percentile=low_percentile,
                               high_percentile=high_percentile)
        enhanced = unsharp_sharpen(enhanced, amount=sharpen_amount)
    return enhanced


def enhance_image(
    source: ImageSource,
    quality: Optional[int] = None,
    **kwargs: Any,
) -> bytes:
    """
    Decode, enhance and re-encode an image as JPEG.

    Args:
        source: File path, encoded bytes, file object or pixel buffer
        quality: JPEG quality (default 95)
        **kwargs: Passed to :func:`enhance_pixels`

    Returns:
        JPEG bytes with the same dimensions as the source

    Raises:
        ImageLoadError: If the source cannot be decoded.
    """
    quality = ENHANCEMENT_DEFAULTS["jpeg_quality"] if quality is None else quality
    pixels = load_image(source)
    return encode_jpeg(enhance_pixels(pixels, **kwargs), quality=quality)


class EnhancementCache:
    """
    Keeps enhanced JPEG bytes per source so display toggles are free.

    Least-recently-used entries are evicted beyond ``max_entries``.
    Thread-safe; concurrent misses for the same key may both compute, the
    last result wins.

    Example:
        >>> cache = EnhancementCache(max_entries=8)
        >>> jpeg = cache.get_or_create(path, path)
        >>> cache.get_or_create(path, path) is jpeg
        True
    """

    def __init__(self, max_entries: int = 16):
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self._entries: "OrderedDict[Hashable, bytes]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[bytes]:
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def put(self, key: Hashable, value: bytes) -> None:
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted enhanced image %r", evicted)

    def get_or_create(self, key: Hashable, source: ImageSource, **kwargs: Any) -> bytes:
        """Return the cached result for ``key``, enhancing ``source`` on a miss."""
        cached = self.get(key)
        if cached is not None:
            return cached
        result = enhance_image(source, **kwargs)
        self.put(key, result)
        return result

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
