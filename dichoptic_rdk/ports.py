"""Interfaces between the experiment engine and its collaborators.

The engine never draws, samples hardware or writes files itself.  It talks to
the outside world through the small protocols defined here: a gaze sampler,
a response input, a render sink and a persistence sink.  The PsychoPy
implementations live in :mod:`dichoptic_rdk.desktop`; the in-memory sinks
below are used for dry runs and tests.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Protocol, Tuple

from .conditions import VisualField
from .stimulus import MotionSettings, StimulusType


class Vec3(NamedTuple):
    """World-space point (x to the right, y up, z away from the viewer)."""

    x: float
    y: float
    z: float = 0.0


class GazeVector(NamedTuple):
    """Left and right eye gaze estimates taken on the same tick."""

    left: Vec3
    right: Vec3


@dataclass(frozen=True)
class InputState:
    """Snapshot of participant controls for one tick.

    Triggers are analogue values in ``[0, 1]``; joysticks are ``(x, y)`` in
    ``[-1, 1]``.
    """

    left_trigger: float = 0.0
    right_trigger: float = 0.0
    left_joystick: Tuple[float, float] = (0.0, 0.0)
    right_joystick: Tuple[float, float] = (0.0, 0.0)

    def left_held(self, threshold: float = 0.8) -> bool:
        return self.left_trigger > threshold

    def right_held(self, threshold: float = 0.8) -> bool:
        return self.right_trigger > threshold

    def any_trigger(self, threshold: float = 0.8) -> bool:
        return self.left_held(threshold) or self.right_held(threshold)

    def vertical(self) -> float:
        """Dominant vertical joystick deflection across both controllers."""

        left_y = self.left_joystick[1]
        right_y = self.right_joystick[1]
        return left_y if abs(left_y) >= abs(right_y) else right_y

    def any_input(self) -> bool:
        """True while any trigger or joystick is off its rest position."""

        return (
            self.left_trigger != 0.0
            or self.right_trigger != 0.0
            or any(value != 0.0 for value in self.left_joystick)
            or any(value != 0.0 for value in self.right_joystick)
        )


class GazeSampler(Protocol):
    def sample(self) -> GazeVector:
        ...


class ResponseInput(Protocol):
    def poll(self) -> InputState:
        ...


class RenderSink(Protocol):
    """Commands issued by the engine; rendering state is never read back."""

    def set_visible(self, stimulus: StimulusType, visible: bool) -> None:
        ...

    def set_visible_all(self, visible: bool) -> None:
        ...

    def set_active_field(
        self,
        visual_field: VisualField,
        lateralized: bool,
        stimulus_anchor: Vec3,
        fixation_anchor: Vec3,
        eye_mask: Optional[Tuple[bool, bool]],
    ) -> None:
        ...

    def set_motion(self, settings: MotionSettings) -> None:
        ...

    def set_cursor_index(self, index: Optional[int], progress: float) -> None:
        ...

    def show_text(self, header: str, body: str) -> None:
        ...

    def set_ui_visible(self, visible: bool) -> None:
        ...

    def set_calibration_target(self, position: Vec3, completed: bool) -> None:
        ...

    def flash_calibration_target(self) -> None:
        ...


class PersistenceSink(Protocol):
    def write(self, block_number: int, trial_number: int, key: str, value: Any) -> None:
        ...

    def close(self) -> None:
        ...


@dataclass
class RecordingRenderSink:
    """Render sink that remembers the latest state and every command issued."""

    visible: Dict[StimulusType, bool] = field(default_factory=dict)
    ui_visible: bool = False
    header: str = ""
    body: str = ""
    motion: Optional[MotionSettings] = None
    cursor_index: Optional[int] = None
    cursor_progress: float = 0.0
    active_field: VisualField = VisualField.BOTH
    lateralized: bool = False
    stimulus_anchor: Vec3 = Vec3(0.0, 0.0, 0.0)
    fixation_anchor: Vec3 = Vec3(0.0, 0.0, 0.0)
    eye_mask: Optional[Tuple[bool, bool]] = None
    calibration_target: Optional[Vec3] = None
    calibration_target_completed: bool = False
    flashes: int = 0
    commands: List[Tuple[str, Any]] = field(default_factory=list)

    def is_visible(self, stimulus: StimulusType) -> bool:
        return self.visible.get(stimulus, False)

    def set_visible(self, stimulus: StimulusType, visible: bool) -> None:
        self.visible[stimulus] = visible
        self.commands.append(("set_visible", (stimulus, visible)))

    def set_visible_all(self, visible: bool) -> None:
        for stimulus in StimulusType:
            self.visible[stimulus] = visible
        self.commands.append(("set_visible_all", visible))

    def set_active_field(self, visual_field, lateralized, stimulus_anchor, fixation_anchor, eye_mask):
        self.active_field = visual_field
        self.lateralized = lateralized
        self.stimulus_anchor = stimulus_anchor
        self.fixation_anchor = fixation_anchor
        self.eye_mask = eye_mask
        self.commands.append(("set_active_field", (visual_field, lateralized)))

    def set_motion(self, settings: MotionSettings) -> None:
        self.motion = settings
        self.commands.append(("set_motion", settings))

    def set_cursor_index(self, index: Optional[int], progress: float) -> None:
        self.cursor_index = index
        self.cursor_progress = progress

    def show_text(self, header: str, body: str) -> None:
        self.header = header
        self.body = body
        self.commands.append(("show_text", header))

    def set_ui_visible(self, visible: bool) -> None:
        self.ui_visible = visible

    def set_calibration_target(self, position: Vec3, completed: bool) -> None:
        self.calibration_target = position
        self.calibration_target_completed = completed

    def flash_calibration_target(self) -> None:
        self.flashes += 1
        self.commands.append(("flash_calibration_target", None))


class NullPersistenceSink:
    """Persistence sink that discards every write."""

    def write(self, block_number: int, trial_number: int, key: str, value: Any) -> None:
        pass

    def close(self) -> None:
        pass


__all__ = [
    "Vec3",
    "GazeVector",
    "InputState",
    "GazeSampler",
    "ResponseInput",
    "RenderSink",
    "PersistenceSink",
    "RecordingRenderSink",
    "NullPersistenceSink",
]
