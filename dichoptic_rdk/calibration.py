"""Eye-tracking calibration sweep.

A red target visits a fixed path of positions around the stimulus anchor.  At
each position the participant's gaze is sampled until enough fixated samples
have been collected; the target then turns green, holds briefly and moves on.
The sweep runs twice: a *setup* pass with a generous fixation threshold and a
*validation* pass with a tighter one.  A flash of the target marks the start
of validation.

The procedure is advanced by :meth:`CalibrationProcedure.update`, called once
per tick with the elapsed time since the previous tick.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from .gaze import FixationTarget, GazeFixationMonitor
from .ports import GazeVector, RenderSink, Vec3
from .stimulus import StimulusType

logger = logging.getLogger(__name__)

SETUP_THRESHOLD: float = 1.0
VALIDATION_THRESHOLD: float = 0.70
SAMPLES_PER_WAYPOINT: int = 100
HOLD_INTERVAL_S: float = 1.6
PATH_RADIUS: float = 2.4


class Waypoint(NamedTuple):
    name: str
    position: Tuple[float, float]


DEFAULT_PATH: Tuple[Waypoint, ...] = (
    Waypoint("c_start", (0.0, 0.0)),
    Waypoint("q_1", (1.0, 1.0)),
    Waypoint("q_2", (-1.0, 1.0)),
    Waypoint("q_3", (-1.0, -1.0)),
    Waypoint("q_4", (1.0, -1.0)),
    Waypoint("c_end", (0.0, 0.0)),
)


class CalibrationPhase(Enum):
    IDLE = "idle"
    SETUP = "setup"
    VALIDATION = "validation"
    COMPLETE = "complete"


class WaypointState(Enum):
    CAPTURING = "capturing"
    HOLDING = "holding"


class CalibrationProcedure:
    """Two-pass gaze sampling over a fixed path of waypoints."""

    def __init__(
        self,
        monitor: GazeFixationMonitor,
        render: RenderSink,
        *,
        anchor: Callable[[], Vec3],
        path: Sequence[Waypoint] = DEFAULT_PATH,
        radius: float = PATH_RADIUS,
        setup_threshold: float = SETUP_THRESHOLD,
        validation_threshold: float = VALIDATION_THRESHOLD,
        samples_per_waypoint: int = SAMPLES_PER_WAYPOINT,
        hold_interval: float = HOLD_INTERVAL_S,
    ) -> None:
        if not path:
            raise ValueError("Calibration path must contain at least one waypoint")
        self._monitor = monitor
        self._render = render
        self._anchor = anchor
        self.path: Tuple[Waypoint, ...] = tuple(path)
        self.radius = radius
        self.setup_threshold = setup_threshold
        self.validation_threshold = validation_threshold
        self.samples_per_waypoint = samples_per_waypoint
        self.hold_interval = hold_interval

        self.setup_samples: List[List[GazeVector]] = [[] for _ in self.path]
        self.validation_samples: List[List[GazeVector]] = [[] for _ in self.path]
        self.visited: List[Tuple[CalibrationPhase, str]] = []

        self._phase = CalibrationPhase.IDLE
        self._state = WaypointState.CAPTURING
        self._index = 0
        self._hold_timer = 0.0
        self._callback: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    @property
    def phase(self) -> CalibrationPhase:
        return self._phase

    @property
    def waypoint_state(self) -> WaypointState:
        return self._state

    @property
    def waypoint_index(self) -> int:
        return self._index

    @property
    def current_waypoint(self) -> Waypoint:
        return self.path[self._index]

    @property
    def active(self) -> bool:
        return self._phase in (CalibrationPhase.SETUP, CalibrationPhase.VALIDATION)

    @property
    def complete(self) -> bool:
        return self._phase is CalibrationPhase.COMPLETE

    def target_position(self) -> Vec3:
        """World position of the target at the current waypoint."""

        anchor = self._anchor()
        unit_x, unit_y = self.current_waypoint.position
        return Vec3(anchor.x + unit_x * self.radius, anchor.y + unit_y * self.radius, anchor.z)

    def samples_for(self, phase: CalibrationPhase) -> List[List[GazeVector]]:
        if phase is CalibrationPhase.VALIDATION:
            return self.validation_samples
        return self.setup_samples

    def sample_counts(self) -> dict:
        return {
            "setup": {wp.name: len(s) for wp, s in zip(self.path, self.setup_samples)},
            "validation": {wp.name: len(s) for wp, s in zip(self.path, self.validation_samples)},
        }

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------
    def run(self, callback: Optional[Callable[[], None]] = None) -> None:
        """Start the sweep; ``callback`` runs once validation has finished."""

        if self.active:
            logger.warning("Calibration already running; ignoring request")
            return
        if self.complete:
            logger.warning("Calibration already complete")
            if callback is not None:
                callback()
            return

        self._callback = callback
        self._phase = CalibrationPhase.SETUP
        self._index = 0
        self._hold_timer = 0.0
        self._state = WaypointState.CAPTURING
        self._render.set_visible(StimulusType.CALIBRATION_TARGET, True)
        self._place_target(completed=False)
        self.visited.append((self._phase, self.current_waypoint.name))
        logger.info("Calibration started (setup stage)")

    def cancel(self) -> None:
        if self.active:
            logger.info("Calibration cancelled during %s stage", self._phase.value)
            self._phase = CalibrationPhase.IDLE
            self._render.set_visible(StimulusType.CALIBRATION_TARGET, False)

    def update(self, delta: float) -> None:
        """Advance the procedure by one tick lasting ``delta`` seconds."""

        if not self.active:
            return
        if self._state is WaypointState.HOLDING:
            self._hold_timer += delta
            if self._hold_timer >= self.hold_interval:
                self._advance()
        else:
            self._capture()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _threshold(self) -> float:
        if self._phase is CalibrationPhase.VALIDATION:
            return self.validation_threshold
        return self.setup_threshold

    def _place_target(self, completed: bool) -> None:
        self._render.set_calibration_target(self.target_position(), completed)

    def _capture(self) -> None:
        samples = self.samples_for(self._phase)[self._index]
        self._monitor.set_threshold(self._threshold())
        gaze = self._monitor.gaze_estimate()
        target = FixationTarget(self.target_position(), self.current_waypoint.name)
        if self._monitor.is_fixated_static(target, gaze):
            samples.append(gaze)

        if len(samples) >= self.samples_per_waypoint:
            logger.debug(
                "Fixation captured at '%s' (%s stage), holding",
                self.current_waypoint.name,
                self._phase.value,
            )
            self._state = WaypointState.HOLDING
            self._hold_timer = 0.0
            self._place_target(completed=True)

    def _advance(self) -> None:
        self._hold_timer = 0.0
        self._state = WaypointState.CAPTURING
        self._index += 1
        if self._index >= len(self.path):
            self._index = 0
            self._end_stage()
            if not self.active:
                return
        self._place_target(completed=False)
        self.visited.append((self._phase, self.current_waypoint.name))

    def _end_stage(self) -> None:
        if self._phase is CalibrationPhase.SETUP:
            logger.info("Completed the setup stage, beginning the validation stage")
            self._phase = CalibrationPhase.VALIDATION
            self._render.flash_calibration_target()
        else:
            logger.info("Completed the validation stage, ending the calibration")
            self._finish()

    def _finish(self) -> None:
        self._phase = CalibrationPhase.COMPLETE
        self._render.set_visible(StimulusType.CALIBRATION_TARGET, False)
        self._render.set_visible(StimulusType.CALIBRATION_VIEW, False)
        callback, self._callback = self._callback, None
        if callback is not None:
            callback()


__all__ = [
    "SETUP_THRESHOLD",
    "VALIDATION_THRESHOLD",
    "SAMPLES_PER_WAYPOINT",
    "HOLD_INTERVAL_S",
    "PATH_RADIUS",
    "Waypoint",
    "DEFAULT_PATH",
    "CalibrationPhase",
    "WaypointState",
    "CalibrationProcedure",
]
