"""Stimulus identifiers and random-dot motion settings.

The engine decides *what* the random-dot kinematogram shows on a trial: the
coherence, the coherent direction and the heading of every dot.  Dots that
belong to the coherent ("reference") group move in the trial direction; the
remaining distractor dots each receive an independent random heading.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class StimulusType(Enum):
    """Named stimulus groups the render sink can show or hide."""

    FIXATION = "fixation"
    DECISION = "decision"
    MOTION = "motion"
    FEEDBACK_CORRECT = "feedback_correct"
    FEEDBACK_INCORRECT = "feedback_incorrect"
    CALIBRATION_VIEW = "calibration_view"
    CALIBRATION_TARGET = "calibration_target"


@dataclass(frozen=True)
class MotionSettings:
    """Parameters of one motion presentation."""

    coherence: float
    direction: float
    headings: Tuple[float, ...] = ()
    reference: Tuple[bool, ...] = ()

    @property
    def direction_degrees(self) -> float:
        return math.degrees(self.direction)


def assign_dot_headings(
    dot_count: int,
    coherence: float,
    direction: float,
    rng: random.Random,
) -> Tuple[Tuple[float, ...], Tuple[bool, ...]]:
    """Return per-dot headings (radians) and reference flags.

    Each dot joins the reference group with probability ``coherence``.
    Reference dots share ``direction``; distractors are re-drawn uniformly
    from ``[0, 2*pi)`` every time this is called.
    """

    headings = []
    reference = []
    for _ in range(max(0, dot_count)):
        is_reference = rng.random() <= coherence
        reference.append(is_reference)
        headings.append(direction if is_reference else rng.random() * 2.0 * math.pi)
    return tuple(headings), tuple(reference)


def build_motion_settings(
    coherence: float,
    direction: float,
    dot_count: int,
    rng: random.Random,
) -> MotionSettings:
    headings, reference = assign_dot_headings(dot_count, coherence, direction, rng)
    return MotionSettings(
        coherence=coherence,
        direction=direction,
        headings=headings,
        reference=reference,
    )


__all__ = [
    "StimulusType",
    "MotionSettings",
    "assign_dot_headings",
    "build_motion_settings",
]
