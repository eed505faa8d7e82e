"""
Tests for blob measurement, loop shape gates and skyline selection.

Tests capillary/detection/blobs.py and capillary/detection/skyline.py.
"""

import pytest
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from capillary.detection.blobs import BlobStats, analyze_blob, analyze_blobs, is_valid_loop
from capillary.detection.labeling import connected_components
from capillary.detection.loops import Morphology
from capillary.detection.skyline import filter_outermost, to_detected_loops


def _rect_blob(x, y, width, height):
    """BlobStats of a solid axis-aligned rectangle."""
    return BlobStats(
        area=width * height,
        min_x=x, max_x=x + width - 1,
        min_y=y, max_y=y + height - 1,
        center_x=x + (width - 1) / 2,
        center_y=y + (height - 1) / 2,
    )


def _blob_at(center_x, center_y):
    return BlobStats(area=100, min_x=0, max_x=4, min_y=0, max_y=19,
                     center_x=center_x, center_y=center_y)


class TestBlobStats:
    """Tests for the BlobStats dataclass."""

    def test_dimensions_are_inclusive(self):
        """Test width/height count both bounding pixels."""
        blob = _rect_blob(10, 20, 5, 8)
        assert blob.width == 5
        assert blob.height == 8
        assert blob.aspect_ratio == pytest.approx(8 / 5)
        assert blob.solidity == pytest.approx(1.0)

    def test_empty_blob_guards(self):
        """Test zero-size blobs do not divide by zero."""
        blob = BlobStats(area=0, min_x=0, max_x=-1, min_y=0, max_y=-1,
                         center_x=0.0, center_y=0.0)
        assert blob.width == 0
        assert blob.height == 0
        assert blob.aspect_ratio == 0.0
        assert blob.solidity == 0.0


class TestAnalyzeBlob:
    """Tests for analyze_blob() and analyze_blobs()."""

    def test_rectangle_geometry(self, solid_rect_mask):
        """Test area, bounds and centroid of a solid rectangle."""
        labels, _ = connected_components(solid_rect_mask)
        blob = analyze_blob(labels, 1)

        assert blob.area == 200
        assert (blob.min_x, blob.max_x) == (5, 14)
        assert (blob.min_y, blob.max_y) == (5, 24)
        assert blob.center_x == pytest.approx(9.5)
        assert blob.center_y == pytest.approx(14.5)
        assert blob.label == 1

    def test_absent_label(self, solid_rect_mask):
        """Test a missing label gives empty stats with centroid (0, 0)."""
        labels, _ = connected_components(solid_rect_mask)
        blob = analyze_blob(labels, 7)
        assert blob.area == 0
        assert (blob.center_x, blob.center_y) == (0.0, 0.0)

    def test_l_shape_solidity(self):
        """Test solidity below 1 for a non-rectangular blob."""
        mask = np.zeros((10, 10), dtype=np.uint8)
        mask[1:9, 1] = 1
        mask[8, 1:5] = 1
        labels, _ = connected_components(mask)
        blob = analyze_blob(labels, 1)
        assert blob.area == 11
        assert blob.solidity == pytest.approx(11 / (4 * 8))

    def test_batch_matches_single(self, random_mask):
        """Test analyze_blobs agrees with analyze_blob for every label."""
        labels, count = connected_components(random_mask)
        batch = analyze_blobs(labels, count)

        assert len(batch) == count
        for blob in batch:
            single = analyze_blob(labels, blob.label)
            assert blob.area == single.area
            assert (blob.min_x, blob.max_x, blob.min_y, blob.max_y) == \
                (single.min_x, single.max_x, single.min_y, single.max_y)
            assert blob.center_x == pytest.approx(single.center_x)
            assert blob.center_y == pytest.approx(single.center_y)

    def test_batch_empty(self):
        """Test analyze_blobs with no components."""
        assert analyze_blobs(np.zeros((4, 4), dtype=np.int32), 0) == []


class TestIsValidLoop:
    """Tests for the loop shape gates."""

    def test_wide_rectangle_rejected(self):
        """Test a 20x5 (wide) rectangle fails the aspect gate."""
        assert not is_valid_loop(_rect_blob(0, 0, 20, 5))

    def test_tall_rectangle_accepted(self):
        """Test a 5x20 (tall) rectangle passes every gate."""
        assert is_valid_loop(_rect_blob(0, 0, 5, 20))

    def test_area_bounds_inclusive(self):
        """Test area exactly at min_area and max_area is accepted."""
        assert is_valid_loop(_rect_blob(0, 0, 5, 20), min_area=100)
        assert is_valid_loop(_rect_blob(0, 0, 20, 100), max_area=2000)

    def test_too_small(self):
        """Test blobs below min_area are rejected."""
        assert not is_valid_loop(_rect_blob(0, 0, 4, 20))

    def test_too_large(self):
        """Test blobs above max_area are rejected."""
        assert not is_valid_loop(_rect_blob(0, 0, 20, 101))

    def test_low_solidity_rejected(self):
        """Test a sparse blob fails the solidity gate."""
        blob = BlobStats(area=200, min_x=0, max_x=19, min_y=0, max_y=39,
                         center_x=10.0, center_y=20.0)
        assert blob.solidity == pytest.approx(0.25)
        assert not is_valid_loop(blob)
        assert is_valid_loop(blob, min_solidity=0.2)

    def test_aspect_exactly_at_threshold(self):
        """Test aspect ratio equal to the minimum is accepted."""
        assert is_valid_loop(_rect_blob(0, 0, 10, 15))


class TestFilterOutermost:
    """Tests for skyline selection."""

    def test_keeps_bottom_most_in_column(self):
        """Test two blobs in one column keep the larger center_y."""
        upper = _blob_at(25, 100)
        lower = _blob_at(30, 200)
        assert filter_outermost([upper, lower], image_width=800) == [lower]

    def test_one_per_column_left_to_right(self):
        """Test blobs in different columns are all kept, ordered by column."""
        right = _blob_at(130, 50)
        left = _blob_at(10, 300)
        middle = _blob_at(75, 10)
        result = filter_outermost([right, left, middle], image_width=200)
        assert result == [left, middle, right]

    def test_tie_keeps_first(self):
        """Test equal center_y keeps the earlier blob."""
        first = _blob_at(5, 80)
        second = _blob_at(40, 80)
        assert filter_outermost([first, second], image_width=100)[0] is first

    def test_partial_last_column(self):
        """Test the last column may be narrower than column_width."""
        blob = _blob_at(812, 10)
        assert filter_outermost([blob], image_width=820) == [blob]

    def test_out_of_range_ignored(self):
        """Test centroids outside the column range are dropped."""
        assert filter_outermost([_blob_at(900, 10)], image_width=800) == []

    def test_empty(self):
        """Test no blobs gives no output."""
        assert filter_outermost([], image_width=800) == []

    def test_invalid_column_width(self):
        """Test non-positive column width is rejected."""
        with pytest.raises(ValueError):
            filter_outermost([_blob_at(5, 5)], image_width=100, column_width=0)


class TestToDetectedLoops:
    """Tests for mapping blobs back to original coordinates."""

    def test_scales_by_ratio(self):
        """Test coordinates are divided by the working ratio."""
        loops = to_detected_loops([_blob_at(100, 50)], ratio=0.5)
        assert len(loops) == 1
        assert loops[0].x == pytest.approx(200)
        assert loops[0].y == pytest.approx(100)

    def test_loop_defaults(self):
        """Test detected loops are Normal, outermost, diameter 0."""
        loop = to_detected_loops([_blob_at(1, 1)], ratio=1.0)[0]
        assert loop.morphology is Morphology.NORMAL
        assert loop.is_outermost is True
        assert loop.diameter == 0.0
        assert loop.id
