"""Configuration for the dichoptic random-dot motion experiment.

The :class:`ExperimentConfig` dataclass stores the user-editable parameters:
trial counts, timings, thresholds, viewing geometry and the text shown to the
participant.  Keeping them together makes it easy to see what can be tweaked
without touching the trial or calibration code.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

DEBUG_BLOCK_SIZE: int = 4


@dataclass
class ExperimentConfig:
    """Container for experiment parameters and runtime options."""

    experiment_name: str = "dichoptic_rdk"
    participant_id: str = ""
    session: str = "1"
    data_fields: List[str] = field(
        default_factory=lambda: [
            "participant",
            "block_number",
            "block_name",
            "trial_number",
            "trial_type",
            "active_visual_field",
            "lateralized",
            "stimulus_anchor_x",
            "fixation_wait_s",
            "motion_direction",
            "motion_angle",
            "coherence",
            "coherence_level",
            "staircase_snapshot",
            "response_direction",
            "response_confidence",
            "correct",
            "response_time_s",
            "local_date",
            "local_time",
            "local_timezone",
            "trial_start",
            "trial_end",
        ]
    )

    # Timeline
    training_trials_per_condition: int = 20
    main_trials_per_condition: int = 40
    seed: Optional[int] = None

    # Staircase and coherence pairs
    initial_coherence: float = 0.2
    coherence_step: float = 0.01
    pair_history_length: int = 20
    demo_coherence: float = 0.8

    # Timing (seconds)
    display_duration_s: float = 0.180
    pre_display_duration_s: float = 0.5
    fixation_duration_s: float = 0.5
    response_hold_duration_s: float = 0.5
    feedback_duration_s: float = 0.5
    fit_input_delay_s: float = 2.0
    instruction_input_delay_s: float = 0.25

    # Fixation and calibration
    require_fixation: bool = True
    fixation_threshold: float = 0.70
    calibration_setup_threshold: float = 1.0
    calibration_validation_threshold: float = 0.70
    calibration_samples_per_waypoint: int = 100
    calibration_hold_interval_s: float = 1.6
    calibration_radius: float = 2.4

    # Viewing geometry (world units)
    stimulus_distance: float = 10.0
    inter_eye_distance: float = 0.064
    offset_angle_deg: float = 3.0
    vertical_offset: float = -2.0
    use_culling_mask: bool = False

    # Stimulus sizing
    aperture_width_deg: float = 8.0
    dot_diameter_deg: float = 0.12
    fixation_diameter_deg: float = 0.5
    dot_density: float = 16.0
    scaling_factor: float = 1.5

    # Input
    trigger_threshold: float = 0.8

    # Operating modes
    debug_mode: bool = False
    demo_mode: bool = False
    debug_block_size: int = DEBUG_BLOCK_SIZE

    # Text
    setup_header: str = "Eye-Tracking Setup"
    setup_text: str = (
        "A red dot will be visible, and you are to follow the dot movement with "
        "your gaze. It will briefly appear green before changing position.\n\n"
        "After a series of movements, the dot will flash before repeating the "
        "movements for a second time.\n\n"
        "Notify the facilitator when you are ready to continue."
    )
    instruction_header: str = "Instructions"
    instruction_pages: List[str] = field(
        default_factory=lambda: [
            "In this task you will see a patch of moving dots. Some of the dots "
            "move together, either upwards or downwards.",
            "Keep your eyes on the cross in the centre of the screen. The dots "
            "appear once you have looked at the cross for a moment.",
            "After the dots disappear, choose whether they moved up or down and "
            "how confident you are. Use the joystick to select an option and "
            "hold the trigger to confirm.",
            "Press the trigger to see an example.",
        ]
    )
    demo_header: str = "Example"
    demo_text: str = "These dots are moving together. Press the trigger to begin practice."
    break_header: str = "Break"
    break_text: str = "Training is complete. Take a short break, then press the trigger to continue."
    end_header: str = "Complete"
    end_text: str = "The experiment is complete. Thank you for taking part!"

    # Output
    results_directory: str = "data"

    # Desktop runner
    full_screen: bool = False
    window_size: Tuple[int, int] = (1280, 720)
    screen_index: int = 0
    background_color: Sequence[float] = (-1.0, -1.0, -1.0)
    world_to_height: float = 0.08
    quit_keys: Tuple[str, ...] = ("escape",)
    participant_serial_port: Optional[str] = None
    participant_serial_baud: int = 9600

    # ------------------------------------------------------------------
    # Operating-mode resolution
    # ------------------------------------------------------------------
    def effective_display_duration(self) -> float:
        if self.debug_mode:
            return 0.50
        if self.demo_mode:
            return 1.80
        return self.display_duration_s

    def effective_require_fixation(self) -> bool:
        if self.debug_mode or self.demo_mode:
            return False
        return self.require_fixation

    def effective_trial_count(self) -> Optional[int]:
        """Per-condition count override, or ``None`` for configured counts."""

        return self.debug_block_size if self.debug_mode else None

    def summary(self) -> str:
        """Return a short description for the console."""

        modes = [name for name, on in (("debug", self.debug_mode), ("demo", self.demo_mode)) if on]
        return (
            f"{self.experiment_name}: training x{self.training_trials_per_condition}, "
            f"main x{self.main_trials_per_condition} per condition, "
            f"display {self.effective_display_duration():.3f} s, "
            f"fixation {'required' if self.effective_require_fixation() else 'off'}"
            + (f" [{', '.join(modes)}]" if modes else "")
        )


__all__ = ["ExperimentConfig", "DEBUG_BLOCK_SIZE"]
