"""
Pytest fixtures for capillary tests.

Provides synthetic nailfold images, masks and temporary directories.
"""

import math
import shutil
import tempfile
from pathlib import Path

import numpy as np
import pytest
from skimage.draw import rectangle


BACKGROUND = 200
VESSEL = 50


def _rgba(gray: np.ndarray) -> np.ndarray:
    """Stack a grayscale array into an opaque RGBA buffer."""
    rgba = np.empty(gray.shape + (4,), dtype=np.uint8)
    rgba[..., :3] = gray[..., None]
    rgba[..., 3] = 255
    return rgba


def _fill_rect(gray: np.ndarray, x: int, y: int, width: int, height: int, value: int) -> None:
    rr, cc = rectangle(start=(y, x), extent=(height, width), shape=gray.shape)
    gray[rr, cc] = value


@pytest.fixture
def capillary_image():
    """
    800x600 RGBA image of light skin with three dark blobs.

    Contains:
    - A 10x40 vertical loop at x=100..109, y=300..339 (passes every gate)
    - A 60x60 square at x=400..459, y=200..259 (too square)
    - A 40x10 horizontal bar at x=650..689, y=400..409 (too flat)

    Returns:
        np.ndarray: 600x800x4 uint8 array
    """
    gray = np.full((600, 800), BACKGROUND, dtype=np.uint8)
    _fill_rect(gray, 100, 300, 10, 40, VESSEL)
    _fill_rect(gray, 400, 200, 60, 60, VESSEL)
    _fill_rect(gray, 650, 400, 40, 10, VESSEL)
    return _rgba(gray)


@pytest.fixture
def blank_gray():
    """Uniform 64x64 grayscale buffer."""
    return np.full((64, 64), 120, dtype=np.uint8)


@pytest.fixture
def uniform_image():
    """Uniform mid-grey 64x48 RGBA buffer."""
    return _rgba(np.full((48, 64), 128, dtype=np.uint8))


@pytest.fixture
def gradient_image():
    """
    Low-contrast 96x96 RGBA buffer: a horizontal ramp from 90 to 140 plus
    dark vertical lines every 12 px.
    """
    ramp = np.linspace(90, 140, 96)
    gray = np.tile(ramp, (96, 1))
    gray[:, ::12] -= 30
    return _rgba(np.round(gray).astype(np.uint8))


@pytest.fixture
def vertical_stripes():
    """
    200x200 RGBA buffer with 2 px wide white stripes every 20 px on black.
    """
    gray = np.zeros((200, 200), dtype=np.uint8)
    columns = np.arange(200)
    gray[:, (columns % 20) < 2] = 255
    return _rgba(gray)


def make_tilted_stripes(angle_deg: float, size: int = 300, period: int = 20) -> np.ndarray:
    """
    Stripes that lean by ``angle_deg``: the stripe centre moves right by
    ``tan(angle)`` pixels per row going down.
    """
    ys, xs = np.mgrid[:size, :size].astype(np.float64)
    shift = math.tan(math.radians(angle_deg)) * (ys - size / 2)
    gray = np.where(np.mod(xs - shift, period) < 2, 255, 0).astype(np.uint8)
    return _rgba(gray)


@pytest.fixture
def tilted_stripes():
    """Stripes leaning 5 degrees down-right."""
    return make_tilted_stripes(5.0)


@pytest.fixture
def stripes_factory():
    """The make_tilted_stripes helper, for tests needing other angles."""
    return make_tilted_stripes


@pytest.fixture
def solid_rect_mask():
    """
    30x30 mask with a 10 (wide) x 20 (tall) solid rectangle at x=5, y=5.
    """
    mask = np.zeros((30, 30), dtype=np.uint8)
    mask[5:25, 5:15] = 1
    return mask


@pytest.fixture
def random_mask():
    """Reproducible 60x80 random binary mask (~45% foreground)."""
    rng = np.random.default_rng(1234)
    return (rng.random((60, 80)) < 0.45).astype(np.uint8)


@pytest.fixture
def image_file(tmp_path, capillary_image):
    """The capillary image saved as PNG."""
    from PIL import Image

    path = tmp_path / "nailfold.png"
    Image.fromarray(capillary_image).save(path)
    return path


@pytest.fixture
def temp_output_dir():
    """
    Temporary directory for test outputs.

    Yields:
        Path: Path to temporary directory (removed after the test)
    """
    temp_dir = tempfile.mkdtemp(prefix="capillary_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)
