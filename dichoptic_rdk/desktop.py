"""PsychoPy desktop runner for the dichoptic motion experiment.

This module provides the PsychoPy side of the ports: a window-backed render
sink, the mouse pointer as a stand-in gaze sampler, mouse buttons and arrow
keys as participant controls, plus the frame loop that drives
:meth:`DichopticMotionExperiment.tick`.  A single desktop window cannot show
different images to each eye, so monocular and lateralized conditions are
drawn for both eyes at their anchor positions.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

from psychopy import core, event, gui, visual
from psychopy import logging as psychopy_logging

from .config import ExperimentConfig
from .conditions import VisualField
from .experiment import DichopticMotionExperiment
from .geometry import calc_stimulus_dimensions
from .ports import GazeVector, InputState, Vec3
from .responses import RESPONSE_OPTIONS
from .results import ResultsStore
from .serial_keypad import KeypadResponseInput, SerialKeypad
from .stimulus import MotionSettings, StimulusType

START_TASK_KEY = "s"
START_CALIBRATION_KEY = "c"
ARROW_LATCH_S = 0.15
FLASH_FRAMES = 12


class PsychoPyClock:
    """Clock port backed by :class:`psychopy.core.Clock`."""

    def __init__(self) -> None:
        self._clock = core.Clock()

    def now(self) -> float:
        return self._clock.getTime()


class WorldProjection:
    """Maps world positions on the stimulus plane to window ``height`` units."""

    def __init__(self, scale: float, vertical_offset: float, distance: float) -> None:
        self.scale = scale
        self.vertical_offset = vertical_offset
        self.distance = distance

    def to_screen(self, point: Vec3) -> Tuple[float, float]:
        return point.x * self.scale, (point.y - self.vertical_offset) * self.scale

    def to_world(self, x: float, y: float) -> Vec3:
        return Vec3(x / self.scale, y / self.scale + self.vertical_offset, self.distance)

    def size(self, extent: float) -> float:
        return extent * self.scale


class MouseGazeSampler:
    """Uses the mouse pointer as the gaze position of both eyes."""

    def __init__(self, mouse: event.Mouse, projection: WorldProjection) -> None:
        self._mouse = mouse
        self._projection = projection

    def sample(self) -> GazeVector:
        x, y = self._mouse.getPos()
        point = self._projection.to_world(float(x), float(y))
        return GazeVector(point, point)


class MouseKeyboardInput:
    """Mouse buttons as triggers, up/down arrow keys as the joystick."""

    def __init__(self, mouse: event.Mouse, clock: PsychoPyClock) -> None:
        self._mouse = mouse
        self._clock = clock
        self._last_arrow: Dict[str, float] = {}

    def poll(self) -> InputState:
        now = self._clock.now()
        for key in event.getKeys(keyList=["up", "down"]):
            self._last_arrow[key] = now
        vertical = 0.0
        for key, sign in (("up", 1.0), ("down", -1.0)):
            seen = self._last_arrow.get(key)
            if seen is not None and now - seen <= ARROW_LATCH_S:
                vertical += sign
        left, _, right = self._mouse.getPressed()
        return InputState(
            left_trigger=1.0 if left else 0.0,
            right_trigger=1.0 if right else 0.0,
            left_joystick=(0.0, vertical),
        )


class PsychoPyRenderSink:
    """Render sink that keeps PsychoPy stimuli in sync with engine commands."""

    def __init__(
        self,
        win: visual.Window,
        projection: WorldProjection,
        *,
        aperture_size: Tuple[float, float],
        fixation_radius: float,
        calibration_radius: float,
        dot_count: int,
    ) -> None:
        self.win = win
        self.projection = projection
        self._visible: Dict[StimulusType, bool] = {stimulus: False for stimulus in StimulusType}
        self._ui_visible = False
        self._flash_frames = 0
        self._cursor_index: Optional[int] = None
        self._cursor_progress = 0.0
        self._field_label = ""

        aperture_w, aperture_h = (projection.size(value) for value in aperture_size)
        self.fixation = visual.TextStim(
            win, text="+", height=max(projection.size(fixation_radius) * 2.0, 0.03), color="white"
        )
        self.motion = visual.DotStim(
            win,
            nDots=max(1, dot_count),
            dotSize=4,
            speed=0.004,
            dotLife=-1,
            dir=90.0,
            coherence=0.0,
            fieldPos=(0.0, 0.0),
            fieldSize=(aperture_w, aperture_h),
            fieldShape="sqr",
            signalDots="same",
            noiseDots="direction",
            color="white",
        )
        self.field_text = visual.TextStim(win, text="", height=0.025, pos=(0.0, -0.45), color="grey")
        self.header = visual.TextStim(win, text="", height=0.05, pos=(0.0, 0.35), color="white")
        self.body = visual.TextStim(win, text="", height=0.035, pos=(0.0, 0.0), wrapWidth=1.2, color="white")
        self.options: List[visual.TextStim] = [
            visual.TextStim(win, text=option.label, height=0.03, pos=(0.0, 0.24 - index * 0.16))
            for index, option in enumerate(RESPONSE_OPTIONS)
        ]
        self.cursor = visual.Rect(win, width=0.4, height=0.13, lineColor="yellow", fillColor=None)
        self.progress_bar = visual.Rect(win, width=0.0, height=0.01, fillColor="yellow", lineColor=None)
        self.feedback_correct = visual.TextStim(win, text="Correct", height=0.06, color="green")
        self.feedback_incorrect = visual.TextStim(win, text="Incorrect", height=0.06, color="red")
        self.calibration_view = visual.Rect(
            win,
            width=projection.size(calibration_radius) * 2.6,
            height=projection.size(calibration_radius) * 2.6,
            lineColor="grey",
            fillColor=None,
        )
        self.calibration_target = visual.Circle(
            win, radius=0.012, edges=32, fillColor="red", lineColor="red"
        )

    # ------------------------------------------------------------------
    # Render sink commands
    # ------------------------------------------------------------------
    def set_visible(self, stimulus: StimulusType, visible: bool) -> None:
        self._visible[stimulus] = visible

    def set_visible_all(self, visible: bool) -> None:
        for stimulus in StimulusType:
            self._visible[stimulus] = visible

    def set_active_field(self, visual_field, lateralized, stimulus_anchor, fixation_anchor, eye_mask):
        self.motion.fieldPos = self.projection.to_screen(stimulus_anchor)
        self.fixation.pos = self.projection.to_screen(fixation_anchor)
        if visual_field is VisualField.BOTH:
            self._field_label = ""
        else:
            mode = "lateralized" if lateralized else "monocular"
            self._field_label = f"{visual_field.value} eye ({mode})"

    def set_motion(self, settings: MotionSettings) -> None:
        self.motion.coherence = min(max(settings.coherence, 0.0), 1.0)
        self.motion.dir = settings.direction_degrees

    def set_cursor_index(self, index: Optional[int], progress: float) -> None:
        self._cursor_index = index
        self._cursor_progress = progress

    def show_text(self, header: str, body: str) -> None:
        self.header.text = header
        self.body.text = body

    def set_ui_visible(self, visible: bool) -> None:
        self._ui_visible = visible

    def set_calibration_target(self, position: Vec3, completed: bool) -> None:
        self.calibration_target.pos = self.projection.to_screen(position)
        colour = "green" if completed else "red"
        self.calibration_target.fillColor = colour
        self.calibration_target.lineColor = colour

    def flash_calibration_target(self) -> None:
        self._flash_frames = FLASH_FRAMES

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------
    def draw(self) -> None:
        visible = self._visible
        if visible[StimulusType.CALIBRATION_VIEW]:
            self.calibration_view.draw()
        if visible[StimulusType.CALIBRATION_TARGET]:
            if self._flash_frames > 0:
                self._flash_frames -= 1
                if self._flash_frames % 4 < 2:
                    self.calibration_target.draw()
            else:
                self.calibration_target.draw()
        if visible[StimulusType.MOTION]:
            self.motion.draw()
            if self._field_label:
                self.field_text.text = self._field_label
                self.field_text.draw()
        if visible[StimulusType.FIXATION]:
            self.fixation.draw()
        if visible[StimulusType.DECISION]:
            for option in self.options:
                option.draw()
            if self._cursor_index is not None:
                x, y = self.options[self._cursor_index].pos
                self.cursor.pos = (x, y)
                self.cursor.draw()
                self.progress_bar.width = 0.4 * self._cursor_progress
                self.progress_bar.pos = (x - 0.2 + self.progress_bar.width / 2.0, y - 0.07)
                self.progress_bar.draw()
        if visible[StimulusType.FEEDBACK_CORRECT]:
            self.feedback_correct.draw()
        if visible[StimulusType.FEEDBACK_INCORRECT]:
            self.feedback_incorrect.draw()
        if self._ui_visible:
            self.header.draw()
            self.body.draw()


class DesktopSession:
    """Run the experiment in a PsychoPy window."""

    def __init__(self, config: Optional[ExperimentConfig] = None) -> None:
        self.config = config or ExperimentConfig()
        self._global_keys_registered = False

    def collect_participant_info(self) -> Dict[str, str]:
        """Display an info dialog to collect participant metadata."""

        info = {"Participant ID": self.config.participant_id, "Session": self.config.session}
        dialog = gui.DlgFromDict(info, title="Dichoptic Motion", fixed=["Session"])
        if not dialog.OK:
            core.quit()
        return info

    def create_window(self) -> visual.Window:
        return visual.Window(
            size=list(self.config.window_size),
            fullscr=self.config.full_screen and not self.config.debug_mode,
            screen=self.config.screen_index,
            units="height",
            color=list(self.config.background_color),
            allowGUI=self.config.debug_mode,
        )

    def _register_global_quit_handler(self, experiment: DichopticMotionExperiment) -> None:
        if self._global_keys_registered:
            return
        for key in self.config.quit_keys:
            event.globalKeys.add(key=key, func=experiment.force_end, name="force_end")
        self._global_keys_registered = True

    def _create_serial_keypad(self) -> Optional[SerialKeypad]:
        port = self.config.participant_serial_port
        if not port:
            return None
        return SerialKeypad(port=port, baudrate=self.config.participant_serial_baud)

    def _build_render(self, win: visual.Window, projection: WorldProjection) -> PsychoPyRenderSink:
        dimensions = calc_stimulus_dimensions(
            self.config.stimulus_distance,
            aperture_width_deg=self.config.aperture_width_deg,
            dot_diameter_deg=self.config.dot_diameter_deg,
            fixation_diameter_deg=self.config.fixation_diameter_deg,
            dot_density=self.config.dot_density,
            scaling_factor=self.config.scaling_factor,
        )
        return PsychoPyRenderSink(
            win,
            projection,
            aperture_size=(dimensions.aperture_width, dimensions.aperture_height),
            fixation_radius=dimensions.fixation_radius,
            calibration_radius=self.config.calibration_radius,
            dot_count=dimensions.dot_count,
        )

    def run(self) -> Path:
        """Execute the full experiment and return the CSV path."""

        info = self.collect_participant_info()
        self.config.participant_id = info["Participant ID"]
        self.config.session = info["Session"]

        output_dir = Path(self.config.results_directory)
        output_dir.mkdir(parents=True, exist_ok=True)
        participant = self.config.participant_id or "unknown"
        log_name = output_dir / f"{self.config.experiment_name}_{participant}_{self.config.session}.log"
        psychopy_logging.console.setLevel(psychopy_logging.WARNING)
        psychopy_logging.LogFile(str(log_name), level=psychopy_logging.INFO, filemode="w")

        results = ResultsStore(
            self.config.experiment_name,
            self.config.data_fields,
            output_dir,
            participant=self.config.participant_id,
            session=self.config.session,
        )
        results.experiment_info.update(info)
        clock = PsychoPyClock()
        keypad = self._create_serial_keypad()
        win = self.create_window()
        try:
            projection = WorldProjection(
                self.config.world_to_height,
                self.config.vertical_offset,
                self.config.stimulus_distance,
            )
            render = self._build_render(win, projection)
            mouse = event.Mouse(win=win, visible=self.config.debug_mode)
            if keypad is not None:
                response_input = KeypadResponseInput(keypad, clock=clock)
            else:
                response_input = MouseKeyboardInput(mouse, clock)
            experiment = DichopticMotionExperiment(
                self.config,
                gaze_sampler=MouseGazeSampler(mouse, projection),
                response_input=response_input,
                render=render,
                results=results,
                clock=clock,
            )
            self._register_global_quit_handler(experiment)
            psychopy_logging.info(self.config.summary())

            experiment.generate_experiment()
            experiment.begin_experiment()
            while experiment.session is not None and not experiment.session.ended:
                for key in event.getKeys(keyList=[START_TASK_KEY, START_CALIBRATION_KEY]):
                    if key == START_TASK_KEY:
                        experiment.start_task()
                    else:
                        experiment.start_calibration()
                experiment.tick()
                render.draw()
                win.flip()

            results.experiment_info["calibration_samples"] = experiment.calibration.sample_counts()
            results.experiment_info["status"] = experiment.get_experiment_status()
            results.save()
        finally:
            win.close()
            if keypad is not None:
                keypad.close()
            results.close()
        return results.saved_to or output_dir


__all__ = [
    "PsychoPyClock",
    "WorldProjection",
    "MouseGazeSampler",
    "MouseKeyboardInput",
    "PsychoPyRenderSink",
    "DesktopSession",
]
