"""Gaze fixation checks used for trial gating and calibration."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError
from .ports import GazeSampler, GazeVector, Vec3
from .scheduler import Clock, Task

logger = logging.getLogger(__name__)

DEFAULT_FIXATION_THRESHOLD: float = 0.70


@dataclass(frozen=True)
class FixationTarget:
    """A point the participant should look at."""

    position: Vec3
    name: str = "fixation"


def eye_within(eye: Vec3, target: Vec3, threshold: float) -> bool:
    """True when ``eye`` lies within ``threshold`` of ``target`` on x and y."""

    return abs(eye.x - target.x) <= threshold and abs(eye.y - target.y) <= threshold


class FixationTimer:
    """Accumulates contiguous fixation time from per-tick samples.

    A single non-fixated sample resets the elapsed time to zero.  Timing
    starts at the first fixated sample, so ``elapsed`` is zero on that tick.
    """

    def __init__(self, duration: float) -> None:
        self.duration = duration
        self.elapsed = 0.0
        self.fixated = False
        self._start = 0.0

    def update(self, is_fixated: bool, now: float) -> bool:
        if is_fixated:
            if not self.fixated:
                self._start = now
                self.fixated = True
            self.elapsed = now - self._start
        else:
            self.fixated = False
            self.elapsed = 0.0
        return self.complete

    @property
    def complete(self) -> bool:
        return self.fixated and self.elapsed >= self.duration


class GazeFixationMonitor:
    """Fixation predicate over the latest left/right gaze estimates."""

    def __init__(
        self,
        sampler: Optional[GazeSampler],
        clock: Clock,
        threshold: float = DEFAULT_FIXATION_THRESHOLD,
    ) -> None:
        if sampler is None:
            raise ConfigurationError("A gaze sampler is required for fixation monitoring")
        self._sampler = sampler
        self._clock = clock
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    def set_threshold(self, threshold: float) -> None:
        if threshold < 0:
            logger.warning("Ignoring negative fixation threshold %.3f", threshold)
            return
        self._threshold = threshold

    def gaze_estimate(self) -> GazeVector:
        return self._sampler.sample()

    def is_fixated_static(self, target: FixationTarget, gaze: Optional[GazeVector] = None) -> bool:
        """Return ``True`` if *either* eye is within the active threshold."""

        if gaze is None:
            gaze = self.gaze_estimate()
        return eye_within(gaze.left, target.position, self._threshold) or eye_within(
            gaze.right, target.position, self._threshold
        )

    def wait_for_fixation(self, target: FixationTarget, duration: float) -> Task:
        """Suspend until gaze has rested on ``target`` for ``duration`` seconds."""

        timer = FixationTimer(duration)
        while not timer.update(self.is_fixated_static(target), self._clock.now()):
            yield


__all__ = [
    "DEFAULT_FIXATION_THRESHOLD",
    "FixationTarget",
    "eye_within",
    "FixationTimer",
    "GazeFixationMonitor",
]
