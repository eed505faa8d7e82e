"""
Tests for grayscale conversion and Sobel edges.

Tests capillary/preprocessing/grayscale.py.
"""

import pytest
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from capillary.preprocessing.grayscale import (
    luminance,
    to_grayscale,
    to_inverted_grayscale,
    sobel_x,
)


def _pixel(r, g, b, a=255):
    return np.array([[[r, g, b, a]]], dtype=np.uint8)


class TestLuminance:
    """Tests for luminance and grayscale conversion."""

    def test_luminance_weights(self):
        """Test BT.601 weighting of pure channels."""
        assert luminance(_pixel(255, 0, 0))[0, 0] == pytest.approx(0.299 * 255)
        assert luminance(_pixel(0, 255, 0))[0, 0] == pytest.approx(0.587 * 255)
        assert luminance(_pixel(0, 0, 255))[0, 0] == pytest.approx(0.114 * 255)

    def test_alpha_is_ignored(self):
        """Test that alpha does not change luminance."""
        assert luminance(_pixel(10, 20, 30, 0))[0, 0] == luminance(_pixel(10, 20, 30, 255))[0, 0]

    def test_grayscale_rounds(self):
        """Test that grayscale rounds to the nearest integer."""
        # 0.299 * 100 + 0.587 * 100 + 0.114 * 101 = 100.114
        assert to_grayscale(_pixel(100, 100, 101))[0, 0] == 100
        assert to_grayscale(_pixel(0, 255, 0))[0, 0] == 150  # 149.685

    def test_grayscale_shape_and_dtype(self, capillary_image):
        """Test output is (H, W) uint8."""
        gray = to_grayscale(capillary_image)
        assert gray.shape == capillary_image.shape[:2]
        assert gray.dtype == np.uint8

    def test_inverted_truncates(self):
        """Test that inverted grayscale floors 255 - L."""
        # 255 - 149.685 = 105.315
        assert to_inverted_grayscale(_pixel(0, 255, 0))[0, 0] == 105
        assert to_inverted_grayscale(_pixel(0, 0, 0))[0, 0] == 255

    def test_rgb_input_accepted(self):
        """Test that 3-channel buffers work too."""
        rgb = np.full((4, 4, 3), 80, dtype=np.uint8)
        assert np.all(to_grayscale(rgb) == 80)


class TestSobelX:
    """Tests for the horizontal Sobel filter."""

    def test_uniform_has_no_edges(self, blank_gray):
        """Test that a flat image yields zero response."""
        assert not sobel_x(blank_gray).any()

    def test_border_is_zero(self):
        """Test that the 1-pixel border is never written."""
        rng = np.random.default_rng(0)
        gray = rng.integers(0, 256, size=(20, 30), dtype=np.uint8)
        edges = sobel_x(gray)
        assert not edges[0].any() and not edges[-1].any()
        assert not edges[:, 0].any() and not edges[:, -1].any()

    def test_vertical_step_edge(self):
        """Test response to a vertical step: 4 * step height, on both sides."""
        gray = np.zeros((5, 6), dtype=np.uint8)
        gray[:, 3:] = 50
        edges = sobel_x(gray)

        assert edges[2, 2] == 200
        assert edges[2, 3] == 200
        assert edges[2, 1] == 0
        assert edges[2, 4] == 0

    def test_clamped_to_255(self):
        """Test that strong edges saturate at 255."""
        gray = np.zeros((5, 6), dtype=np.uint8)
        gray[:, 3:] = 255
        assert sobel_x(gray).max() == 255

    def test_horizontal_edge_ignored(self):
        """Test that a horizontal step gives no x-gradient."""
        gray = np.zeros((6, 5), dtype=np.uint8)
        gray[3:, :] = 200
        assert not sobel_x(gray).any()

    def test_tiny_image(self):
        """Test images smaller than the kernel return zeros."""
        edges = sobel_x(np.full((2, 2), 9, dtype=np.uint8))
        assert edges.shape == (2, 2)
        assert not edges.any()
