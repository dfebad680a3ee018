"""Conditions, blocks and trial records for the dichoptic motion task.

Every trial belongs to one :class:`TrialType`, which pairs a presentation mode
(binocular, monocular or lateralized, left or right) with a phase (training or
main).  The presentation mode decides which visual field is active and
whether the stimulus is shifted into the periphery.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class VisualField(Enum):
    """Eye (or eyes) that receive the stimulus."""

    LEFT = "Left"
    RIGHT = "Right"
    BOTH = "Both"


class Phase(Enum):
    TRAINING = "Training"
    MAIN = "Main"


class PresentationMode(Enum):
    """Presentation mode with its visual field and lateralization."""

    BINOCULAR = ("Binocular", VisualField.BOTH, False)
    MONOCULAR_LEFT = ("Monocular_Left", VisualField.LEFT, False)
    MONOCULAR_RIGHT = ("Monocular_Right", VisualField.RIGHT, False)
    LATERALIZED_LEFT = ("Lateralized_Left", VisualField.LEFT, True)
    LATERALIZED_RIGHT = ("Lateralized_Right", VisualField.RIGHT, True)

    def __init__(self, label: str, visual_field: VisualField, lateralized: bool):
        self.label = label
        self.visual_field = visual_field
        self.lateralized = lateralized


class TrialType(Enum):
    """Experimental condition: a presentation mode within a phase."""

    TRAINING_BINOCULAR = (PresentationMode.BINOCULAR, Phase.TRAINING)
    TRAINING_MONOCULAR_LEFT = (PresentationMode.MONOCULAR_LEFT, Phase.TRAINING)
    TRAINING_MONOCULAR_RIGHT = (PresentationMode.MONOCULAR_RIGHT, Phase.TRAINING)
    TRAINING_LATERALIZED_LEFT = (PresentationMode.LATERALIZED_LEFT, Phase.TRAINING)
    TRAINING_LATERALIZED_RIGHT = (PresentationMode.LATERALIZED_RIGHT, Phase.TRAINING)
    MAIN_BINOCULAR = (PresentationMode.BINOCULAR, Phase.MAIN)
    MAIN_MONOCULAR_LEFT = (PresentationMode.MONOCULAR_LEFT, Phase.MAIN)
    MAIN_MONOCULAR_RIGHT = (PresentationMode.MONOCULAR_RIGHT, Phase.MAIN)
    MAIN_LATERALIZED_LEFT = (PresentationMode.LATERALIZED_LEFT, Phase.MAIN)
    MAIN_LATERALIZED_RIGHT = (PresentationMode.LATERALIZED_RIGHT, Phase.MAIN)

    def __init__(self, mode: PresentationMode, phase: Phase):
        self.mode = mode
        self.phase = phase

    @property
    def label(self) -> str:
        """Name stored in trial results, e.g. ``Training_Lateralized_Left``."""

        return f"{self.phase.value}_{self.mode.label}"

    @property
    def visual_field(self) -> VisualField:
        return self.mode.visual_field

    @property
    def lateralized(self) -> bool:
        return self.mode.lateralized

    @property
    def training_counterpart(self) -> "TrialType":
        """Training condition sharing this condition's presentation mode."""

        return _BY_MODE_AND_PHASE[(self.mode, Phase.TRAINING)]

    @classmethod
    def for_phase(cls, phase: Phase) -> List["TrialType"]:
        return [trial_type for trial_type in cls if trial_type.phase is phase]

    @classmethod
    def from_label(cls, label: str) -> "TrialType":
        for trial_type in cls:
            if trial_type.label == label:
                return trial_type
        raise ValueError(f"Unknown trial type label '{label}'")


_BY_MODE_AND_PHASE = {(t.mode, t.phase): t for t in TrialType}

TRAINING_CONDITIONS: List[TrialType] = TrialType.for_phase(Phase.TRAINING)
MAIN_CONDITIONS: List[TrialType] = TrialType.for_phase(Phase.MAIN)


class MotionDirection(Enum):
    """Coherent motion direction, stored as an angle in radians."""

    UP = math.pi / 2.0
    DOWN = 3.0 * math.pi / 2.0

    @property
    def angle(self) -> float:
        return self.value


class BlockSequence(Enum):
    """Ordered experiment blocks; values are the 1-based block numbers."""

    FIT = 1
    SETUP = 2
    INSTRUCTIONS = 3
    DEMO = 4
    TRAINING = 5
    BREAK = 6
    MAIN = 7
    END = 8

    @property
    def label(self) -> str:
        return self.name.title()


STIMULUS_BLOCKS = (BlockSequence.TRAINING, BlockSequence.MAIN)


@dataclass
class TrialRecord:
    """Results of a single trial, written field by field as the trial runs.

    ``number`` is the 1-based position inside the owning block.  Once
    :meth:`close` has been called the record is read-only; later writes are
    dropped with a warning.
    """

    block: BlockSequence
    number: int
    results: Dict[str, Any] = field(default_factory=dict)
    closed: bool = False
    on_write: Optional[Callable[["TrialRecord", str, Any], None]] = field(
        default=None, repr=False, compare=False
    )

    def write(self, key: str, value: Any) -> None:
        if self.closed:
            logger.warning(
                "Ignoring write of '%s' to closed trial %d of block %s",
                key,
                self.number,
                self.block.label,
            )
            return
        self.results[key] = value
        if self.on_write is not None:
            self.on_write(self, key, value)

    def close(self) -> None:
        self.closed = True

    def get(self, key: str, default: Any = None) -> Any:
        return self.results.get(key, default)

    @property
    def trial_type(self) -> Optional[TrialType]:
        label = self.results.get("trial_type")
        if not label:
            return None
        try:
            return TrialType.from_label(str(label))
        except ValueError:
            return None

    @property
    def visual_field(self) -> Optional[VisualField]:
        value = self.results.get("active_visual_field")
        if value is None:
            return None
        try:
            return VisualField(value)
        except ValueError:
            return None

    @property
    def coherence(self) -> Optional[float]:
        value = self.results.get("coherence")
        return float(value) if value is not None else None

    @property
    def correct(self) -> Optional[bool]:
        value = self.results.get("correct")
        return bool(value) if value is not None else None


@dataclass
class Block:
    """A run of trials sharing one :class:`BlockSequence` entry."""

    sequence: BlockSequence
    trial_count: int
    trials: List[TrialRecord] = field(default_factory=list)

    @property
    def number(self) -> int:
        return self.sequence.value

    def get_relative_trial(self, number: int) -> TrialRecord:
        """Return the trial at 1-based ``number`` within this block."""

        if number < 1 or number > len(self.trials):
            raise IndexError(f"Block {self.sequence.label} has no trial {number}")
        return self.trials[number - 1]


__all__ = [
    "VisualField",
    "Phase",
    "PresentationMode",
    "TrialType",
    "TRAINING_CONDITIONS",
    "MAIN_CONDITIONS",
    "MotionDirection",
    "BlockSequence",
    "STIMULUS_BLOCKS",
    "TrialRecord",
    "Block",
]
