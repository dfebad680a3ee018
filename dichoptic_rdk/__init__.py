"""Dichoptic random-dot motion psychophysics engine.

The package is split the way the experiment is run: trial timelines,
per-condition coherence staircases, dichoptic viewing geometry, gaze fixation
checks and the eye-tracking calibration sweep, tied together by the
:class:`DichopticMotionExperiment` block/trial state machine.  The PsychoPy
runner lives in :mod:`dichoptic_rdk.desktop` and is only imported by the
command line entry point.
"""

from .calibration import CalibrationPhase, CalibrationProcedure, Waypoint
from .conditions import (
    MAIN_CONDITIONS,
    TRAINING_CONDITIONS,
    Block,
    BlockSequence,
    MotionDirection,
    TrialRecord,
    TrialType,
    VisualField,
)
from .config import ExperimentConfig
from .errors import ConfigurationError
from .experiment import DichopticMotionExperiment, SessionState
from .gaze import FixationTarget, FixationTimer, GazeFixationMonitor
from .geometry import DichopticGeometry, calc_lateralized_offset
from .results import ResultsStore
from .scheduler import ManualClock, MonotonicClock, Scheduler
from .staircase import AdaptiveCoherenceController, CoherencePair, derive_coherence_pairs
from .timeline import build_experiment_timelines, build_timeline, summarize_proportions
from .cli import main as run_experiment

__all__ = [
    "AdaptiveCoherenceController",
    "Block",
    "BlockSequence",
    "CalibrationPhase",
    "CalibrationProcedure",
    "CoherencePair",
    "ConfigurationError",
    "DichopticGeometry",
    "DichopticMotionExperiment",
    "ExperimentConfig",
    "FixationTarget",
    "FixationTimer",
    "GazeFixationMonitor",
    "MAIN_CONDITIONS",
    "ManualClock",
    "MonotonicClock",
    "MotionDirection",
    "ResultsStore",
    "Scheduler",
    "SessionState",
    "TRAINING_CONDITIONS",
    "TrialRecord",
    "TrialType",
    "VisualField",
    "Waypoint",
    "build_experiment_timelines",
    "build_timeline",
    "calc_lateralized_offset",
    "derive_coherence_pairs",
    "run_experiment",
    "summarize_proportions",
]
