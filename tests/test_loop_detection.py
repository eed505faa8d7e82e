"""
Tests for the loop detection strategy, loop records and result schema.

Tests capillary/detection/strategies/, capillary/detection/loops.py and
capillary/utils/schemas.py.
"""

import json

import pytest
import numpy as np
import cv2

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from capillary.detection import (
    CapillaryLoopStrategy,
    DetectionStrategy,
    DetectedLoop,
    Morphology,
    detect_loops,
)
from capillary.io.image_loader import UnsupportedImageError
from capillary.utils.schemas import LoopResultFile, validate_loops_file


class TestDetectedLoop:
    """Tests for the DetectedLoop record."""

    def test_defaults(self):
        """Test detector defaults and a generated id."""
        loop = DetectedLoop(x=1.0, y=2.0)
        assert loop.morphology is Morphology.NORMAL
        assert loop.diameter == 0.0
        assert loop.is_outermost is True
        assert loop.id

    def test_ids_are_unique(self):
        """Test each record gets its own id."""
        assert DetectedLoop(x=0, y=0).id != DetectedLoop(x=0, y=0).id

    def test_to_dict_uses_annotator_keys(self):
        """Test the serialized record shape."""
        loop = DetectedLoop(x=10, y=20, morphology=Morphology.GIANT, id="abc")
        assert loop.to_dict() == {
            'id': 'abc',
            'x': 10.0,
            'y': 20.0,
            'morphology': 'Giant',
            'diameter': 0.0,
            'isOutermost': True,
        }

    def test_from_dict(self):
        """Test parsing a user-placed record."""
        loop = DetectedLoop.from_dict({
            'id': 'u1', 'x': 5, 'y': 6, 'morphology': 'Tortuous',
            'diameter': 12.5, 'isOutermost': False,
        })
        assert loop.id == 'u1'
        assert loop.morphology is Morphology.TORTUOUS
        assert loop.diameter == 12.5
        assert loop.is_outermost is False

    def test_from_dict_minimal(self):
        """Test missing optional fields take defaults and a fresh id."""
        loop = DetectedLoop.from_dict({'x': 1, 'y': 2})
        assert loop.morphology is Morphology.NORMAL
        assert loop.id

    def test_from_dict_bad_morphology(self):
        """Test unknown morphology names are rejected."""
        with pytest.raises(ValueError):
            DetectedLoop.from_dict({'x': 1, 'y': 2, 'morphology': 'Wobbly'})


class TestCapillaryLoopStrategy:
    """Tests for CapillaryLoopStrategy construction and stages."""

    def test_is_detection_strategy(self):
        """Test the strategy implements the base interface."""
        strategy = CapillaryLoopStrategy()
        assert isinstance(strategy, DetectionStrategy)
        assert strategy.name == "capillary_loop"

    def test_abstract_base_not_instantiable(self):
        """Test DetectionStrategy cannot be used directly."""
        with pytest.raises(TypeError):
            DetectionStrategy()

    def test_default_config(self):
        """Test defaults mirror DETECTION_DEFAULTS."""
        config = CapillaryLoopStrategy().get_config()
        assert config['resize_width'] == 800
        assert config['window_size'] == 15
        assert config['column_width'] == 50

    def test_from_config_full_and_flat(self):
        """Test both nested and flat config dicts are accepted."""
        nested = CapillaryLoopStrategy.from_config({'detection': {'min_area': 150}})
        flat = CapillaryLoopStrategy.from_config({'min_area': 160, 'unknown': 1})
        assert nested.min_area == 150
        assert flat.min_area == 160
        assert flat.max_area == 2000

    def test_even_window_rejected(self):
        """Test invalid threshold windows fail at construction."""
        with pytest.raises(ValueError):
            CapillaryLoopStrategy(window_size=10)

    def test_prepare_rescales(self):
        """Test prepare() returns the working buffer and ratio."""
        pixels = np.zeros((300, 1600, 4), dtype=np.uint8)
        working, ratio = CapillaryLoopStrategy().prepare(pixels)
        assert working.shape == (150, 800, 4)
        assert ratio == pytest.approx(0.5)

    def test_segment_blank(self):
        """Test a uniform image has no components."""
        image = np.full((50, 80, 4), 180, dtype=np.uint8)
        _, count = CapillaryLoopStrategy().segment(image)
        assert count == 0

    def test_segment_finds_dark_blobs(self, capillary_image):
        """Test each dark blob yields foreground components."""
        labels, count = CapillaryLoopStrategy().segment(capillary_image)
        assert count >= 3
        assert labels[320, 104] > 0
        assert labels[405, 670] > 0


class TestDetectLoops:
    """End-to-end tests for detect_loops()."""

    def test_only_valid_blob_detected(self, capillary_image):
        """Test only the 10x40 loop survives the gates, at its centroid."""
        loops = detect_loops(capillary_image)

        assert len(loops) == 1
        assert loops[0].x == pytest.approx(104.5)
        assert loops[0].y == pytest.approx(319.5)
        assert loops[0].morphology is Morphology.NORMAL
        assert loops[0].is_outermost is True

    def test_blank_image(self):
        """Test a featureless image yields no loops."""
        assert detect_loops(np.full((600, 800, 4), 200, dtype=np.uint8)) == []

    def test_coordinates_in_original_space(self, capillary_image):
        """Test a 2x image reports loops at 2x coordinates."""
        big = cv2.resize(capillary_image, (1600, 1200), interpolation=cv2.INTER_NEAREST)
        loops = detect_loops(big)

        assert len(loops) == 1
        assert loops[0].x == pytest.approx(209.0, abs=2.0)
        assert loops[0].y == pytest.approx(639.0, abs=2.0)

    def test_skyline_keeps_lower_loop(self):
        """Test two loops in one column report only the lower one."""
        gray = np.full((600, 800), 200, dtype=np.uint8)
        gray[100:140, 210:220] = 50
        gray[300:340, 212:222] = 50
        image = np.dstack([gray, gray, gray, np.full_like(gray, 255)])

        loops = detect_loops(image)

        assert len(loops) == 1
        assert loops[0].y == pytest.approx(319.5)

    def test_parameter_override(self, capillary_image):
        """Test keyword overrides reach the gates."""
        assert detect_loops(capillary_image, min_area=500) == []

    def test_loops_ordered_left_to_right(self):
        """Test loops from several columns come back by x."""
        gray = np.full((600, 800), 200, dtype=np.uint8)
        for x in (610, 110, 360):
            gray[300:340, x:x + 10] = 50
        image = np.dstack([gray, gray, gray, np.full_like(gray, 255)])

        xs = [loop.x for loop in detect_loops(image)]

        assert xs == sorted(xs)
        assert len(xs) == 3

    def test_rgb_and_gray_inputs(self, capillary_image):
        """Test non-RGBA buffers are accepted."""
        assert len(detect_loops(capillary_image[..., :3])) == 1
        assert len(detect_loops(capillary_image[..., 0])) == 1

    def test_malformed_buffer(self):
        """Test malformed buffers raise UnsupportedImageError."""
        with pytest.raises(UnsupportedImageError):
            detect_loops(np.zeros((10, 10, 2), dtype=np.uint8))


class TestLoopResultSchema:
    """Tests for the loop result JSON schema."""

    def _result(self, **overrides):
        data = {
            'image': 'nailfold.png',
            'width': 800,
            'height': 600,
            'pixels_per_micron': 1.0,
            'loops': [DetectedLoop(x=104.5, y=319.5, id='l1').to_dict()],
        }
        data.update(overrides)
        return data

    def test_valid_result(self):
        """Test a detector result validates."""
        result = LoopResultFile.model_validate(self._result())
        assert result.loops[0].is_outermost is True
        assert result.loops[0].morphology == 'Normal'

    def test_loop_outside_image_rejected(self):
        """Test coordinates beyond the image are rejected."""
        data = self._result(loops=[DetectedLoop(x=900, y=10, id='far').to_dict()])
        with pytest.raises(ValueError):
            LoopResultFile.model_validate(data)

    def test_bad_morphology_rejected(self):
        """Test unknown morphology names fail validation."""
        loop = DetectedLoop(x=1, y=1, id='m').to_dict()
        loop['morphology'] = 'Wobbly'
        with pytest.raises(ValueError):
            LoopResultFile.model_validate(self._result(loops=[loop]))

    def test_validate_file(self, tmp_path):
        """Test file validation and error handling."""
        good = tmp_path / "good.json"
        good.write_text(json.dumps(self._result()))
        assert len(validate_loops_file(good).loops) == 1

        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps(self._result(width=0)))
        with pytest.raises(ValueError):
            validate_loops_file(bad)
        assert validate_loops_file(bad, raise_on_error=False) is None

        with pytest.raises(FileNotFoundError):
            validate_loops_file(tmp_path / "missing.json")
