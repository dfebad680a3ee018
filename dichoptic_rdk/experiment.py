"""High-level orchestration of the dichoptic random-dot motion task.

:class:`DichopticMotionExperiment` owns the session: it builds the trial
timelines, walks the fixed block sequence and runs one trial at a time as a
generator task on the :class:`~dichoptic_rdk.scheduler.Scheduler`.  A driver
(the PsychoPy frame loop, or a test) calls :meth:`tick` once per frame.
"""
from __future__ import annotations

import logging
import platform
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional, Sequence, Tuple

from .calibration import CalibrationProcedure
from .conditions import (
    STIMULUS_BLOCKS,
    Block,
    BlockSequence,
    MotionDirection,
    Phase,
    TrialRecord,
    TrialType,
    VisualField,
)
from .config import ExperimentConfig
from .errors import ConfigurationError
from .gaze import FixationTarget, GazeFixationMonitor
from .geometry import DichopticGeometry, calc_stimulus_dimensions
from .ports import (
    GazeSampler,
    InputState,
    NullPersistenceSink,
    PersistenceSink,
    RenderSink,
    ResponseInput,
)
from .responses import InstructionPager, ResponseOption, ResponseSelector
from .scheduler import Clock, MonotonicClock, Scheduler, Task, wait_seconds, wait_until
from .staircase import AdaptiveCoherenceController, CoherencePair, derive_coherence_pairs
from .stimulus import StimulusType, build_motion_settings
from .timeline import Timelines, build_block_sequence, build_experiment_timelines, summarize_proportions

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Mutable state of one experiment session."""

    timelines: Timelines
    blocks: List[Block]
    staircase: AdaptiveCoherenceController
    block_index: int = 0
    coherence_pairs: Optional[Mapping[TrialType, CoherencePair]] = None
    started: bool = False
    ended: bool = False
    forced: bool = False

    @property
    def active_block(self) -> Optional[Block]:
        if 0 <= self.block_index < len(self.blocks):
            return self.blocks[self.block_index]
        return None

    @property
    def active_trial(self) -> Optional[TrialRecord]:
        block = self.active_block
        if block is None or not block.trials:
            return None
        return block.trials[-1]

    def block(self, sequence: BlockSequence) -> Block:
        for block in self.blocks:
            if block.sequence is sequence:
                return block
        raise KeyError(sequence)


class DichopticMotionExperiment:
    """Block/trial state machine for the dichoptic motion experiment."""

    def __init__(
        self,
        config: Optional[ExperimentConfig] = None,
        *,
        gaze_sampler: Optional[GazeSampler],
        response_input: Optional[ResponseInput],
        render: Optional[RenderSink],
        results: Optional[PersistenceSink] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if gaze_sampler is None:
            raise ConfigurationError("No gaze sampler configured")
        if response_input is None:
            raise ConfigurationError("No participant response input configured")
        if render is None:
            raise ConfigurationError("No render sink configured")

        self.config = config or ExperimentConfig()
        self.clock: Clock = clock or MonotonicClock()
        self.rng = rng or random.Random(self.config.seed)
        self.results: PersistenceSink = results or NullPersistenceSink()
        self.render = render
        self._response_input = response_input

        self._gaze_sampler = gaze_sampler
        self._configure(self.config)
        self.scheduler = Scheduler()
        self.pager = InstructionPager()
        self.session: Optional[SessionState] = None

        self.inputs = InputState()
        self.delta = 0.0
        self._last_tick: Optional[float] = None
        self._input_enabled = False
        self._input_reset = True
        self._force_end_requested = False
        self._start_task_requested = False
        self._start_calibration_requested = False

        self._handlers: Dict[BlockSequence, Callable[[TrialRecord], Task]] = {
            BlockSequence.FIT: self._fit_trial,
            BlockSequence.SETUP: self._setup_trial,
            BlockSequence.INSTRUCTIONS: self._instructions_trial,
            BlockSequence.DEMO: self._demo_trial,
            BlockSequence.TRAINING: self._stimulus_trial,
            BlockSequence.BREAK: self._break_trial,
            BlockSequence.MAIN: self._stimulus_trial,
            BlockSequence.END: self._end_trial_screen,
        }

    def _configure(self, config: ExperimentConfig) -> None:
        """Build the geometry, fixation monitor and calibration for ``config``."""

        self.config = config
        self.monitor = GazeFixationMonitor(self._gaze_sampler, self.clock, config.fixation_threshold)
        self.dimensions = calc_stimulus_dimensions(
            config.stimulus_distance,
            aperture_width_deg=config.aperture_width_deg,
            dot_diameter_deg=config.dot_diameter_deg,
            fixation_diameter_deg=config.fixation_diameter_deg,
            dot_density=config.dot_density,
            scaling_factor=config.scaling_factor,
        )
        self.geometry = DichopticGeometry(
            stimulus_distance=config.stimulus_distance,
            inter_eye_distance=config.inter_eye_distance,
            offset_angle_deg=config.offset_angle_deg,
            vertical_offset=config.vertical_offset,
            stimulus_width=self.dimensions.aperture_width,
            use_culling_mask=config.use_culling_mask,
        )
        self.calibration = CalibrationProcedure(
            self.monitor,
            self.render,
            anchor=lambda: self.geometry.fixation_anchor,
            radius=config.calibration_radius,
            setup_threshold=config.calibration_setup_threshold,
            validation_threshold=config.calibration_validation_threshold,
            samples_per_waypoint=config.calibration_samples_per_waypoint,
            hold_interval=config.calibration_hold_interval_s,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def generate_experiment(self, config: Optional[ExperimentConfig] = None) -> Optional[SessionState]:
        """Build the timelines, blocks and staircases for a new session.

        A ``config`` given here replaces the one the experiment was built with,
        including the viewing geometry and the calibration sweep.  A session
        that is still running is left untouched.
        """

        if self.session is not None and self.session.started and not self.session.ended:
            logger.warning("Cannot generate a new experiment while a session is running")
            return None
        if config is not None:
            self._configure(config)
            if config.seed is not None:
                self.rng.seed(config.seed)

        timelines = build_experiment_timelines(
            self.config.training_trials_per_condition,
            self.config.main_trials_per_condition,
            self.rng,
            override_count=self.config.effective_trial_count(),
        )
        blocks = [Block(spec.sequence, spec.trial_count) for spec in build_block_sequence(timelines)]
        staircase = AdaptiveCoherenceController(
            initial_coherence=self.config.initial_coherence,
            step=self.config.coherence_step,
        )
        self.session = SessionState(timelines=timelines, blocks=blocks, staircase=staircase)

        if self.config.debug_mode:
            logger.info("Training timeline\n%s", summarize_proportions(timelines.training))
            logger.info("Main timeline\n%s", summarize_proportions(timelines.main))
        logger.info(
            "Generated experiment: %d training and %d main trials",
            len(timelines.training),
            len(timelines.main),
        )
        return self.session

    def begin_experiment(self) -> None:
        """Start the first trial of the first non-empty block."""

        if self.session is None:
            self.generate_experiment()
        assert self.session is not None
        if self.session.started:
            logger.warning("Experiment already started")
            return
        self.session.started = True
        logger.info("Experiment started: %s", self.config.summary())
        self._enter_block(0)

    def run_trial(self) -> Optional[TrialRecord]:
        """Open a record for the next trial of the active block and schedule it."""

        session = self.session
        if session is None or not session.started or session.ended:
            logger.warning("No running session; cannot start a trial")
            return None
        block = session.active_block
        if block is None:
            logger.warning("No active block; cannot start a trial")
            return None
        current = session.active_trial
        if current is not None and not current.closed:
            logger.warning("Trial %d of %s is still running", current.number, block.sequence.label)
            return None

        record = TrialRecord(block.sequence, len(block.trials) + 1, on_write=self._persist)
        block.trials.append(record)
        stamp = datetime.now().astimezone()
        record.write("participant", self.config.participant_id)
        record.write("block_number", block.number)
        record.write("block_name", block.sequence.label)
        record.write("trial_number", record.number)
        record.write("local_date", stamp.strftime("%Y-%m-%d"))
        record.write("local_time", stamp.strftime("%H:%M:%S"))
        record.write("local_timezone", stamp.strftime("%Z"))
        record.write("trial_start", self.clock.now())

        logger.debug("Starting %s trial %d/%d", block.sequence.label, record.number, block.trial_count)
        self.scheduler.start(self._handlers[block.sequence](record))
        return record

    def end_trial(self) -> None:
        """Close the active trial, then start the next one or advance the block."""

        session = self.session
        if session is None or session.ended:
            logger.warning("end_trial called without a running session")
            return
        record = session.active_trial
        if record is None or record.closed:
            logger.warning("end_trial called with no open trial")
            return

        record.write("trial_end", self.clock.now())
        record.close()
        self._apply_active_field(VisualField.BOTH, lateralized=False)

        block = session.active_block
        assert block is not None
        if len(block.trials) < block.trial_count:
            self.run_trial()
        else:
            logger.info("Completed block %s", block.sequence.label)
            self._enter_block(session.block_index + 1)

    def force_end(self) -> None:
        """Request the session to stop at the next tick."""

        logger.info("Force end requested")
        self._force_end_requested = True

    def _enter_block(self, index: int) -> None:
        session = self.session
        assert session is not None
        while index < len(session.blocks) and session.blocks[index].trial_count <= 0:
            logger.info("Skipping empty block %s", session.blocks[index].sequence.label)
            index += 1
        session.block_index = index
        block = session.active_block
        if block is None:
            self._end_session(forced=False)
            return

        logger.info("Entering block %d (%s)", block.number, block.sequence.label)
        if block.sequence is BlockSequence.MAIN:
            self.coherence_pairs()
        self.run_trial()

    def _end_session(self, forced: bool) -> None:
        session = self.session
        if session is None or session.ended:
            return
        if forced:
            self.scheduler.cancel_all()
            self.render.set_visible_all(False)
            self.render.set_ui_visible(False)
        self.calibration.cancel()
        self._input_enabled = False
        session.ended = True
        session.forced = forced
        self.results.close()
        logger.info("Experiment %s", "force-ended" if forced else "complete")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_active_block(self) -> Optional[Block]:
        if self.session is None:
            return None
        return self.session.active_block

    def get_experiment_status(self) -> Dict[str, Any]:
        session = self.session
        block = session.active_block if session else None
        trial = session.active_trial if session else None
        blocks = session.blocks if session else []
        return {
            "experiment": self.config.experiment_name,
            "participant": self.config.participant_id,
            "active_block": block.sequence.label if block else None,
            "block_number": block.number if block else None,
            "current_trial": trial.number if trial else 0,
            "block_trials": block.trial_count if block else 0,
            "total_trials": sum(b.trial_count for b in blocks),
            "completed_trials": sum(1 for b in blocks for t in b.trials if t.closed),
            "started": bool(session and session.started),
            "ended": bool(session and session.ended),
            "calibration": self.calibration.phase.value,
            "debug_mode": self.config.debug_mode,
            "demo_mode": self.config.demo_mode,
            "platform": platform.platform(),
            "python": platform.python_version(),
        }

    def coherence_pairs(self) -> Mapping[TrialType, CoherencePair]:
        """Return the main-phase coherence pairs, deriving them on first use."""

        session = self.session
        assert session is not None
        if session.coherence_pairs is None:
            session.coherence_pairs = derive_coherence_pairs(
                session.block(BlockSequence.TRAINING).trials,
                TrialType.for_phase(Phase.MAIN),
                history_length=self.config.pair_history_length,
                fallback=self.config.initial_coherence,
            )
        return session.coherence_pairs

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------
    def run_calibration(self, on_complete: Optional[Callable[[], None]] = None) -> None:
        self.render.set_visible(StimulusType.CALIBRATION_VIEW, True)
        self.calibration.run(on_complete)

    def get_calibration_active(self) -> bool:
        return self.calibration.active

    def get_calibration_complete(self) -> bool:
        return self.calibration.complete

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------
    def tick(self) -> None:
        """Advance the experiment by one frame."""

        now = self.clock.now()
        self.delta = 0.0 if self._last_tick is None else now - self._last_tick
        self._last_tick = now

        self.inputs = self._response_input.poll()
        if not self.inputs.any_input():
            self._input_reset = True

        if self._force_end_requested:
            self._force_end_requested = False
            self._end_session(forced=True)
            return

        self.calibration.update(self.delta)
        self.scheduler.tick()

    def start_task(self) -> None:
        """Facilitator signal that ends the headset-fit block."""

        self._start_task_requested = True

    def start_calibration(self) -> None:
        """Facilitator signal that starts calibration from the setup block."""

        self._start_calibration_requested = True

    # ------------------------------------------------------------------
    # Input helpers
    # ------------------------------------------------------------------
    def _confirmed(self) -> bool:
        if not (self._input_enabled and self._input_reset):
            return False
        if self.inputs.any_trigger(self.config.trigger_threshold):
            self._input_reset = False
            return True
        return False

    def _await_confirm(self, delay: float, signal: Callable[[], bool] = lambda: False) -> Task:
        """Suspend until a confirm gesture after ``delay`` seconds, or until ``signal``."""

        self._input_enabled = False
        started = self.clock.now()

        def ready() -> bool:
            if signal():
                return True
            if self.clock.now() - started < delay:
                return False
            self._input_enabled = True
            return self._confirmed()

        yield from wait_until(ready)

    def _persist(self, record: TrialRecord, key: str, value: Any) -> None:
        self.results.write(record.block.value, record.number, key, value)

    def _apply_active_field(self, visual_field: VisualField, lateralized: bool):
        anchor = self.geometry.set_active_field(visual_field, lateralized)
        self.render.set_active_field(
            visual_field,
            lateralized,
            anchor,
            self.geometry.fixation_anchor,
            self.geometry.eye_mask(),
        )
        return anchor

    # ------------------------------------------------------------------
    # Block handlers
    # ------------------------------------------------------------------
    def _fit_trial(self, record: TrialRecord) -> Task:
        self.render.set_ui_visible(False)
        self.render.set_visible(StimulusType.CALIBRATION_VIEW, True)
        yield from self._await_confirm(self.config.fit_input_delay_s, lambda: self._start_task_requested)
        self._start_task_requested = False
        self.render.set_visible(StimulusType.CALIBRATION_VIEW, False)
        self.end_trial()

    def _setup_trial(self, record: TrialRecord) -> Task:
        self.render.show_text(self.config.setup_header, self.config.setup_text)
        self.render.set_ui_visible(True)
        yield from self._await_confirm(
            self.config.instruction_input_delay_s,
            lambda: self._start_calibration_requested,
        )
        self._start_calibration_requested = False
        self.render.set_ui_visible(False)
        self._input_enabled = False
        # The block resumes from the calibration completion callback.
        self.run_calibration(on_complete=self.end_trial)

    def _paged_text(self, header: str, pages: Sequence[str]) -> Task:
        self.pager.set_pages(list(pages) or [""])
        self.render.show_text(header, self.pager.text)
        self.render.set_ui_visible(True)
        while True:
            yield from self._await_confirm(self.config.instruction_input_delay_s)
            if not self.pager.next_page():
                break
            self.render.show_text(header, self.pager.text)

    def _instructions_trial(self, record: TrialRecord) -> Task:
        yield from self._paged_text(self.config.instruction_header, self.config.instruction_pages)
        self.render.set_ui_visible(False)
        self.end_trial()

    def _break_trial(self, record: TrialRecord) -> Task:
        yield from self._paged_text(self.config.break_header, [self.config.break_text])
        self.render.set_ui_visible(False)
        self.end_trial()

    def _end_trial_screen(self, record: TrialRecord) -> Task:
        yield from self._paged_text(self.config.end_header, [self.config.end_text])
        self.end_trial()

    def _demo_trial(self, record: TrialRecord) -> Task:
        direction = self._random_direction()
        self._apply_active_field(VisualField.BOTH, lateralized=False)
        self.render.set_motion(
            build_motion_settings(
                self.config.demo_coherence,
                direction.angle,
                self.dimensions.dot_count,
                self.rng,
            )
        )
        self.render.set_visible(StimulusType.FIXATION, True)
        self.render.set_visible(StimulusType.MOTION, True)
        record.write("motion_direction", direction.name)
        record.write("coherence", self.config.demo_coherence)
        yield from self._paged_text(self.config.demo_header, [self.config.demo_text])
        self.render.set_visible(StimulusType.MOTION, False)
        self.render.set_visible(StimulusType.FIXATION, False)
        self.render.set_ui_visible(False)
        self.end_trial()

    # ------------------------------------------------------------------
    # Stimulus trials
    # ------------------------------------------------------------------
    def _trial_type(self, record: TrialRecord) -> TrialType:
        assert self.session is not None
        if record.block is BlockSequence.TRAINING:
            return self.session.timelines.training[record.number - 1]
        return self.session.timelines.main[record.number - 1]

    def _random_direction(self) -> MotionDirection:
        return MotionDirection.UP if self.rng.random() < 0.5 else MotionDirection.DOWN

    def _select_coherence(self, trial_type: TrialType) -> Tuple[float, str]:
        assert self.session is not None
        if trial_type.phase is Phase.TRAINING:
            return self.session.staircase.get_coherence(trial_type), "staircase"
        return self.coherence_pairs()[trial_type].choose(self.rng)

    def _stimulus_trial(self, record: TrialRecord) -> Task:
        assert record.block in STIMULUS_BLOCKS
        session = self.session
        assert session is not None
        trial_type = self._trial_type(record)
        record.write("trial_type", trial_type.label)

        # 1. Fixation gate
        self._input_enabled = False
        self.render.set_ui_visible(False)
        self.render.set_visible(StimulusType.FIXATION, True)
        waited_from = self.clock.now()
        if self.config.effective_require_fixation():
            self.monitor.set_threshold(self.config.fixation_threshold)
            target = FixationTarget(self.geometry.fixation_anchor)
            yield from self.monitor.wait_for_fixation(target, self.config.fixation_duration_s)
        else:
            yield from wait_seconds(self.clock, self.config.pre_display_duration_s)
        record.write("fixation_wait_s", self.clock.now() - waited_from)

        # 2. Stimulus onset
        anchor = self._apply_active_field(trial_type.visual_field, trial_type.lateralized)
        coherence, level = self._select_coherence(trial_type)
        direction = self._random_direction()
        self.render.set_motion(
            build_motion_settings(coherence, direction.angle, self.dimensions.dot_count, self.rng)
        )
        self.render.set_visible(StimulusType.MOTION, True)
        record.write("active_visual_field", trial_type.visual_field.value)
        record.write("lateralized", trial_type.lateralized)
        record.write("stimulus_anchor_x", anchor.x)
        record.write("motion_direction", direction.name)
        record.write("motion_angle", direction.angle)
        record.write("coherence", coherence)
        record.write("coherence_level", level)

        # 3. Display
        yield from wait_seconds(self.clock, self.config.effective_display_duration())
        self.render.set_visible(StimulusType.MOTION, False)
        self.render.set_visible(StimulusType.FIXATION, False)

        # 4. Response
        option, response_time = yield from self._collect_response()

        # 5. Scoring
        correct = option.direction is direction
        record.write("response_direction", option.direction.name)
        record.write("response_confidence", option.confidence)
        record.write("correct", correct)
        record.write("response_time_s", response_time)
        logger.debug(
            "%s trial %d: %s coherence=%.3f direction=%s response=%s correct=%s",
            record.block.label,
            record.number,
            trial_type.label,
            coherence,
            direction.name,
            option.direction.name,
            correct,
        )

        if trial_type.phase is Phase.TRAINING:
            block = session.block(BlockSequence.TRAINING)
            session.staircase.update(
                trial_type,
                trial_type.visual_field,
                correct,
                coherence,
                block.trials,
                record.number,
            )
            record.write("staircase_snapshot", session.staircase.snapshot())
            feedback = StimulusType.FEEDBACK_CORRECT if correct else StimulusType.FEEDBACK_INCORRECT
            self.render.set_visible(feedback, True)
            yield from wait_seconds(self.clock, self.config.feedback_duration_s)
            self.render.set_visible(feedback, False)

        self.end_trial()

    def _collect_response(self) -> Generator[None, None, Tuple[ResponseOption, float]]:
        selector = ResponseSelector(
            self.config.response_hold_duration_s,
            trigger_threshold=self.config.trigger_threshold,
        )
        started = self.clock.now()
        self.render.set_cursor_index(None, 0.0)
        self.render.set_visible(StimulusType.DECISION, True)
        while True:
            option: Optional[ResponseOption] = selector.update(self.inputs, self.delta)
            self.render.set_cursor_index(selector.index, selector.progress)
            if option is not None:
                break
            yield
        self.render.set_visible(StimulusType.DECISION, False)
        # The confirming trigger must be released before the next confirm.
        self._input_reset = False
        return option, self.clock.now() - started


__all__ = ["SessionState", "DichopticMotionExperiment"]
