"""Viewing geometry for dichoptic and lateralized presentation.

The helpers in this module turn visual angles into world-space distances for
a head-mounted display.  Stimuli are placed on a plane ``stimulus_distance``
units in front of the eyes; lateralized presentation shifts the stimulus
anchor sideways so that its inner edge sits ``offset_angle`` degrees from the
central fixation point, as seen from the eye that views it.

Keeping the math here lets the experiment (and the dry-run CLI) reuse it
without any rendering code.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .conditions import VisualField
from .ports import Vec3

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Default viewing constants (world units are metres in the headset)
# ---------------------------------------------------------------------------

DEFAULT_OFFSET_ANGLE_DEG: float = 3.0
DEFAULT_VERTICAL_OFFSET: float = -2.0
DEFAULT_STIMULUS_DISTANCE: float = 10.0
DEFAULT_INTER_EYE_DISTANCE: float = 0.064


def visual_angle_to_world(distance: float, degrees: float, scaling_factor: float = 1.0) -> float:
    """Return the world-space extent subtending ``degrees`` at ``distance``."""

    return scaling_factor * distance * math.tan(math.radians(degrees))


def calc_lateralized_offset(
    distance: float,
    offset_angle_deg: float,
    stimulus_width: float,
    inter_eye_distance: float,
) -> float:
    """Return the horizontal stimulus shift for lateralized presentation.

    Parameters
    ----------
    distance:
        Distance from the eyes to the stimulus plane.
    offset_angle_deg:
        Angle between the fixation point and the inner edge of the stimulus.
    stimulus_width:
        Width of the stimulus aperture; half of it is added so the *edge*,
        not the centre, lands at ``offset_angle_deg``.
    inter_eye_distance:
        Separation of the eyes; half of it is added to measure from the eye
        rather than from the midpoint between the eyes.
    """

    return (
        distance * math.tan(math.radians(offset_angle_deg))
        + stimulus_width / 2.0
        + inter_eye_distance / 2.0
    )


@dataclass(frozen=True)
class StimulusDimensions:
    """World-space sizes of the motion stimulus components."""

    aperture_width: float
    aperture_height: float
    dot_radius: float
    fixation_radius: float
    line_width: float
    dot_count: int


def calc_stimulus_dimensions(
    distance: float,
    *,
    aperture_width_deg: float = 8.0,
    dot_diameter_deg: float = 0.12,
    fixation_diameter_deg: float = 0.5,
    line_width: float = 0.04,
    dot_density: float = 16.0,
    scaling_factor: float = 1.5,
) -> StimulusDimensions:
    """Convert the stimulus sizes from degrees into world units.

    The aperture is twice as tall as it is wide.  The dot count scales with
    the aperture area so that the dot density stays constant.
    """

    aperture_width = visual_angle_to_world(distance, aperture_width_deg, scaling_factor)
    dot_count = round(
        scaling_factor
        * dot_density
        * aperture_width_deg
        * aperture_width_deg
        * 2.0
        * distance
        * math.tan(math.radians(1.0))
    )
    return StimulusDimensions(
        aperture_width=aperture_width,
        aperture_height=aperture_width * 2.0,
        dot_radius=visual_angle_to_world(distance, dot_diameter_deg / 2.0, scaling_factor),
        fixation_radius=visual_angle_to_world(distance, fixation_diameter_deg / 2.0, scaling_factor),
        line_width=scaling_factor * line_width,
        dot_count=int(dot_count),
    )


class DichopticGeometry:
    """Anchor placement for binocular, monocular and lateralized trials."""

    def __init__(
        self,
        *,
        stimulus_distance: float = DEFAULT_STIMULUS_DISTANCE,
        inter_eye_distance: float = DEFAULT_INTER_EYE_DISTANCE,
        offset_angle_deg: float = DEFAULT_OFFSET_ANGLE_DEG,
        vertical_offset: float = DEFAULT_VERTICAL_OFFSET,
        stimulus_width: float = 0.0,
        use_culling_mask: bool = False,
    ) -> None:
        self.stimulus_distance = stimulus_distance
        self.inter_eye_distance = inter_eye_distance
        self.offset_angle_deg = offset_angle_deg
        self.vertical_offset = vertical_offset
        self.use_culling_mask = use_culling_mask
        self._stimulus_width = stimulus_width
        self._lateralized_offset = 0.0
        self._active_field = VisualField.BOTH
        self._lateralized = False
        self.fixation_anchor = Vec3(0.0, vertical_offset, stimulus_distance)
        self.stimulus_anchor = Vec3(0.0, vertical_offset, stimulus_distance)
        self.calculate_lateralized_offset()

    def calculate_lateralized_offset(self) -> float:
        self._lateralized_offset = calc_lateralized_offset(
            self.stimulus_distance,
            self.offset_angle_deg,
            self._stimulus_width,
            self.inter_eye_distance,
        )
        logger.debug("Lateralized horizontal offset: %.4f", self._lateralized_offset)
        return self._lateralized_offset

    @property
    def lateralized_offset(self) -> float:
        return self._lateralized_offset

    @property
    def stimulus_width(self) -> float:
        return self._stimulus_width

    def set_stimulus_width(self, width: float) -> None:
        """Store a new stimulus width and recompute the lateralized offset."""

        if width < 0:
            logger.warning("Ignoring negative stimulus width %.4f", width)
            return
        self._stimulus_width = width
        self.calculate_lateralized_offset()

    @property
    def active_field(self) -> VisualField:
        return self._active_field

    @property
    def lateralized(self) -> bool:
        return self._lateralized

    def set_active_field(self, visual_field: VisualField, lateralized: bool = True) -> Vec3:
        """Activate ``visual_field`` and return the new stimulus anchor.

        The fixation anchor always sits at the vertical offset on the midline.
        The stimulus anchor moves to ``-offset`` (left) or ``+offset`` (right)
        only for lateralized presentation; otherwise it stays centred.
        """

        self._active_field = visual_field
        self._lateralized = lateralized
        self.fixation_anchor = Vec3(0.0, self.vertical_offset, self.stimulus_distance)

        horizontal = 0.0
        if lateralized and visual_field is VisualField.LEFT:
            horizontal = -self._lateralized_offset
        elif lateralized and visual_field is VisualField.RIGHT:
            horizontal = self._lateralized_offset
        self.stimulus_anchor = Vec3(horizontal, self.vertical_offset, self.stimulus_distance)
        return self.stimulus_anchor

    def eye_mask(self) -> Optional[Tuple[bool, bool]]:
        """Return ``(left_eye, right_eye)`` stimulus visibility, if masking.

        ``None`` means no mask is requested and both eyes see every layer.
        """

        if not self.use_culling_mask:
            return None
        if self._active_field is VisualField.LEFT:
            return True, False
        if self._active_field is VisualField.RIGHT:
            return False, True
        return True, True


__all__ = [
    "DEFAULT_OFFSET_ANGLE_DEG",
    "DEFAULT_VERTICAL_OFFSET",
    "DEFAULT_STIMULUS_DISTANCE",
    "DEFAULT_INTER_EYE_DISTANCE",
    "visual_angle_to_world",
    "calc_lateralized_offset",
    "StimulusDimensions",
    "calc_stimulus_dimensions",
    "DichopticGeometry",
]
