"""Adaptive coherence control for training and coherence pairs for the main phase.

Training uses one staircase per condition.  An error always makes the next
trial of that condition easier (+0.01 coherence).  A correct answer only makes
it harder (-0.01) when the previous trial of the same condition and visual
field was also correct *at the same coherence*; otherwise the value holds.

After training, each condition's recent training history is reduced to a
``(low, high)`` coherence pair around its median, and main-phase trials pick
one of the two at random.
"""
from __future__ import annotations

import logging
import math
import random
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .conditions import TRAINING_CONDITIONS, Phase, TrialRecord, TrialType, VisualField

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_COHERENCE: float = 0.2
DEFAULT_COHERENCE_STEP: float = 0.01
DEFAULT_HISTORY_LENGTH: int = 20
MEDIAN_FLOOR: float = 0.12
MEDIAN_CEILING: float = 0.5


def find_previous_trial(
    history: Sequence[TrialRecord],
    trial_type: TrialType,
    visual_field: VisualField,
    current_number: int,
) -> Optional[TrialRecord]:
    """Return the closest earlier trial with the same type and visual field.

    ``history`` holds the active block's trials in order and
    ``current_number`` is the 1-based number of the trial being scored; the
    search walks backwards from ``current_number - 1`` to 1.
    """

    if current_number <= 1:
        return None
    for number in range(min(current_number - 1, len(history)), 0, -1):
        prior = history[number - 1]
        if prior.trial_type is trial_type and prior.visual_field is visual_field:
            return prior
    return None


class AdaptiveCoherenceController:
    """Per-condition staircase state for the training phase."""

    def __init__(
        self,
        conditions: Iterable[TrialType] = TRAINING_CONDITIONS,
        initial_coherence: float = DEFAULT_INITIAL_COHERENCE,
        step: float = DEFAULT_COHERENCE_STEP,
    ) -> None:
        self.initial_coherence = initial_coherence
        self.step = step
        self._coherence: Dict[TrialType, float] = {}
        for condition in conditions:
            if condition.phase is not Phase.TRAINING:
                raise ValueError(f"{condition.label} is not a training condition")
            self._coherence[condition] = initial_coherence

    @property
    def conditions(self) -> List[TrialType]:
        return list(self._coherence)

    def get_coherence(self, condition: TrialType) -> float:
        return self._coherence[condition]

    def set_coherence(self, condition: TrialType, coherence: float) -> bool:
        """Overwrite a staircase value; values outside ``[0, 1]`` are rejected."""

        if condition not in self._coherence:
            logger.warning("No staircase for condition %s", condition.label)
            return False
        if not 0.0 <= coherence <= 1.0:
            logger.warning(
                "Rejected coherence %.3f for %s: must lie within [0, 1]",
                coherence,
                condition.label,
            )
            return False
        self._coherence[condition] = coherence
        return True

    def snapshot(self) -> Dict[str, float]:
        return {condition.label: value for condition, value in self._coherence.items()}

    def update(
        self,
        condition: TrialType,
        visual_field: VisualField,
        correct: bool,
        coherence: float,
        history: Sequence[TrialRecord],
        current_number: int,
    ) -> float:
        """Apply one trial outcome and return the condition's new coherence.

        The value is not clamped, so repeated errors can push it above 1.
        """

        if condition not in self._coherence:
            logger.warning("Skipping staircase update for %s", condition.label)
            return coherence

        if not correct:
            self._coherence[condition] += self.step
        else:
            previous = find_previous_trial(history, condition, visual_field, current_number)
            if previous is None:
                logger.debug("No previous %s trial; coherence unchanged", condition.label)
            elif (
                previous.correct
                and previous.coherence is not None
                and math.isclose(previous.coherence, coherence, abs_tol=1e-9)
            ):
                self._coherence[condition] -= self.step

        logger.debug(
            "Staircase %s: correct=%s coherence %.3f -> %.3f",
            condition.label,
            correct,
            coherence,
            self._coherence[condition],
        )
        return self._coherence[condition]


class CoherencePair(NamedTuple):
    low: float
    high: float

    def choose(self, rng: random.Random) -> Tuple[float, str]:
        """Pick ``low`` or ``high`` with equal probability."""

        if rng.random() > 0.5:
            return self.high, "high"
        return self.low, "low"


def clamped_median(
    values: Sequence[float],
    floor: float = MEDIAN_FLOOR,
    ceiling: float = MEDIAN_CEILING,
) -> float:
    return float(min(max(float(np.median(values)), floor), ceiling))


def derive_coherence_pair(
    history: Sequence[TrialRecord],
    condition: TrialType,
    visual_field: VisualField,
    *,
    history_length: int = DEFAULT_HISTORY_LENGTH,
    fallback: float = DEFAULT_INITIAL_COHERENCE,
) -> CoherencePair:
    """Derive ``(0.5 * m, 2 * m)`` from recent training trials.

    ``m`` is the median coherence of the most recent ``history_length``
    trials of ``condition`` in ``visual_field``, clamped to [0.12, 0.5].
    Shorter histories use whatever trials exist.
    """

    matching = [
        record.coherence
        for record in history
        if record.trial_type is condition
        and record.visual_field is visual_field
        and record.coherence is not None
    ]
    recent = list(reversed(matching))[:history_length]
    if not recent:
        logger.warning(
            "No training trials for %s; deriving coherence pair from %.3f",
            condition.label,
            fallback,
        )
        recent = [fallback]
    elif len(recent) < history_length:
        logger.info(
            "Only %d of %d training trials available for %s",
            len(recent),
            history_length,
            condition.label,
        )
    median = clamped_median(recent)
    return CoherencePair(low=0.5 * median, high=2.0 * median)


def derive_coherence_pairs(
    history: Sequence[TrialRecord],
    conditions: Iterable[TrialType],
    *,
    history_length: int = DEFAULT_HISTORY_LENGTH,
    fallback: float = DEFAULT_INITIAL_COHERENCE,
) -> Mapping[TrialType, CoherencePair]:
    """Return one pair per main condition from the training block history."""

    pairs: Dict[TrialType, CoherencePair] = {}
    for condition in conditions:
        training = condition.training_counterpart
        pairs[condition] = derive_coherence_pair(
            history,
            training,
            training.visual_field,
            history_length=history_length,
            fallback=fallback,
        )
        logger.info(
            "Coherence pair for %s: low=%.3f high=%.3f",
            condition.label,
            pairs[condition].low,
            pairs[condition].high,
        )
    return pairs


__all__ = [
    "DEFAULT_INITIAL_COHERENCE",
    "DEFAULT_COHERENCE_STEP",
    "DEFAULT_HISTORY_LENGTH",
    "MEDIAN_FLOOR",
    "MEDIAN_CEILING",
    "find_previous_trial",
    "AdaptiveCoherenceController",
    "CoherencePair",
    "clamped_median",
    "derive_coherence_pair",
    "derive_coherence_pairs",
]
