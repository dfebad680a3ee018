import logging
import math

import pytest

from dichoptic_rdk.conditions import VisualField
from dichoptic_rdk.geometry import (
    DichopticGeometry,
    calc_lateralized_offset,
    calc_stimulus_dimensions,
    visual_angle_to_world,
)


def test_lateralized_offset_formula():
    offset = calc_lateralized_offset(10.0, 3.0, 2.0, 0.064)

    assert offset == pytest.approx(10.0 * math.tan(math.radians(3.0)) + 1.0 + 0.032)


def test_anchors_for_each_presentation_mode():
    geometry = DichopticGeometry(stimulus_width=2.0)
    offset = geometry.lateralized_offset

    assert geometry.set_active_field(VisualField.LEFT, lateralized=True).x == pytest.approx(-offset)
    assert geometry.set_active_field(VisualField.RIGHT, lateralized=True).x == pytest.approx(offset)
    assert geometry.set_active_field(VisualField.LEFT, lateralized=False).x == 0.0
    assert geometry.set_active_field(VisualField.BOTH, lateralized=True).x == 0.0
    assert geometry.fixation_anchor.x == 0.0
    assert geometry.fixation_anchor.y == -2.0
    assert geometry.stimulus_anchor.y == -2.0


def test_stimulus_width_recomputes_offset(caplog):
    geometry = DichopticGeometry(stimulus_width=0.0)
    before = geometry.lateralized_offset
    geometry.set_stimulus_width(2.0)

    assert geometry.lateralized_offset == pytest.approx(before + 1.0)

    with caplog.at_level(logging.WARNING):
        geometry.set_stimulus_width(-1.0)
    assert geometry.stimulus_width == 2.0
    assert "negative stimulus width" in caplog.text


def test_eye_mask_only_with_culling():
    assert DichopticGeometry().eye_mask() is None

    geometry = DichopticGeometry(use_culling_mask=True)
    geometry.set_active_field(VisualField.LEFT)
    assert geometry.eye_mask() == (True, False)
    geometry.set_active_field(VisualField.RIGHT)
    assert geometry.eye_mask() == (False, True)
    geometry.set_active_field(VisualField.BOTH, lateralized=False)
    assert geometry.eye_mask() == (True, True)


def test_stimulus_dimensions_scale_with_distance():
    near = calc_stimulus_dimensions(5.0)
    far = calc_stimulus_dimensions(10.0)

    assert far.aperture_width == pytest.approx(2.0 * near.aperture_width)
    assert far.aperture_height == pytest.approx(2.0 * far.aperture_width)
    assert far.aperture_width == pytest.approx(visual_angle_to_world(10.0, 8.0, 1.5))
    assert far.dot_count > near.dot_count > 0
