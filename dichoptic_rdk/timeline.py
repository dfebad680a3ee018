"""Trial timelines and the fixed block sequence."""
from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Mapping, NamedTuple, Optional, Sequence

from .conditions import MAIN_CONDITIONS, TRAINING_CONDITIONS, BlockSequence, TrialType

logger = logging.getLogger(__name__)


def build_timeline(
    counts: Mapping[TrialType, int],
    rng: random.Random,
    *,
    override_count: Optional[int] = None,
) -> List[TrialType]:
    """Return each condition repeated ``counts[condition]`` times, shuffled.

    ``override_count`` replaces every count (used for short debug sessions).
    Negative counts are treated as zero.
    """

    timeline: List[TrialType] = []
    for condition, count in counts.items():
        if override_count is not None:
            count = override_count
        if count < 0:
            logger.warning("Negative trial count %d for %s treated as 0", count, condition.label)
            count = 0
        timeline.extend([condition] * count)
    rng.shuffle(timeline)
    return timeline


class Timelines(NamedTuple):
    training: List[TrialType]
    main: List[TrialType]


def build_experiment_timelines(
    training_per_condition: int,
    main_per_condition: int,
    rng: random.Random,
    *,
    override_count: Optional[int] = None,
    training_conditions: Iterable[TrialType] = TRAINING_CONDITIONS,
    main_conditions: Iterable[TrialType] = MAIN_CONDITIONS,
) -> Timelines:
    """Build independently shuffled training and main timelines."""

    training = build_timeline(
        {condition: training_per_condition for condition in training_conditions},
        rng,
        override_count=override_count,
    )
    main = build_timeline(
        {condition: main_per_condition for condition in main_conditions},
        rng,
        override_count=override_count,
    )
    return Timelines(training=training, main=main)


@dataclass(frozen=True)
class BlockSpec:
    sequence: BlockSequence
    trial_count: int


def build_block_sequence(timelines: Timelines) -> List[BlockSpec]:
    """Return the blocks in their fixed order with their trial counts."""

    counts = {
        BlockSequence.TRAINING: len(timelines.training),
        BlockSequence.MAIN: len(timelines.main),
    }
    return [BlockSpec(sequence, counts.get(sequence, 1)) for sequence in BlockSequence]


def summarize_proportions(timeline: Sequence[TrialType]) -> str:
    """Return a printable count/percentage summary of ``timeline``."""

    lines = [f"Timeline Summary (Trials: {len(timeline)})", "-" * 40]
    counts = Counter(timeline)
    for condition in TrialType:
        if condition not in counts:
            continue
        count = counts[condition]
        percentage = count / len(timeline) * 100.0
        lines.append(f"{condition.label}: {count} trials ({percentage:.1f}%)")
    return "\n".join(lines)


__all__ = [
    "build_timeline",
    "Timelines",
    "build_experiment_timelines",
    "BlockSpec",
    "build_block_sequence",
    "summarize_proportions",
]
