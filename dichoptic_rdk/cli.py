"""Command line helpers for running the dichoptic motion experiment."""
from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path

from .config import ExperimentConfig
from .geometry import DichopticGeometry, calc_stimulus_dimensions
from .timeline import build_block_sequence, build_experiment_timelines, summarize_proportions

DEFAULT_SERIAL_PORT = ExperimentConfig.__dataclass_fields__["participant_serial_port"].default
DEFAULT_SERIAL_BAUD = ExperimentConfig.__dataclass_fields__["participant_serial_baud"].default


def build_arg_parser() -> argparse.ArgumentParser:
    """Create an argument parser exposing minimal runtime options."""

    parser = argparse.ArgumentParser(
        description=(
            "Launch the dichoptic random-dot motion task. "
            "Use --dry-run to inspect the generated timeline without PsychoPy."
        )
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("data"),
        help="Folder where CSV/JSON/log outputs will be saved (default: %(default)s).",
    )
    parser.add_argument(
        "--participant",
        type=str,
        default="",
        help="Participant ID pre-filled in the start-up dialog.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for timeline shuffling and stimulus randomisation.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Debug mode: no fixation gate, 0.5 s stimuli and 4 trials per condition.",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Demo mode: no fixation gate and 1.8 s stimuli.",
    )
    parser.add_argument(
        "--no-fixation",
        action="store_true",
        help="Start stimuli after a fixed delay instead of waiting for fixation.",
    )
    parser.add_argument(
        "--training-trials",
        type=int,
        default=ExperimentConfig.training_trials_per_condition,
        help="Training trials per condition (default: %(default)s).",
    )
    parser.add_argument(
        "--main-trials",
        type=int,
        default=ExperimentConfig.main_trials_per_condition,
        help="Main trials per condition (default: %(default)s).",
    )
    parser.add_argument(
        "--participant-serial-port",
        type=str,
        default=DEFAULT_SERIAL_PORT,
        help=(
            "Serial COM port used by the participant keypad (e.g., COM1). "
            "If omitted the mouse and arrow keys are used."
        ),
    )
    parser.add_argument(
        "--participant-serial-baud",
        type=int,
        default=DEFAULT_SERIAL_BAUD,
        help="Baud rate for the participant serial keypad (default: %(default)s).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Generate the timelines, print them with the viewing geometry, and exit.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log debug messages to the console.",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ExperimentConfig:
    return ExperimentConfig(
        participant_id=args.participant,
        results_directory=str(args.data_dir),
        seed=args.seed,
        debug_mode=args.debug,
        demo_mode=args.demo,
        require_fixation=not args.no_fixation,
        training_trials_per_condition=args.training_trials,
        main_trials_per_condition=args.main_trials,
        participant_serial_port=args.participant_serial_port,
        participant_serial_baud=args.participant_serial_baud,
    )


def main(argv: list[str] | None = None) -> None:
    """Parse command line options and execute the experiment."""

    parser = build_arg_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = config_from_args(args)
    if args.dry_run:
        perform_dry_run(config)
        return

    from .desktop import DesktopSession

    DesktopSession(config).run()


def perform_dry_run(config: ExperimentConfig) -> None:
    """Print the block sequence, timeline summaries and geometry, then exit."""

    rng = random.Random(config.seed)
    timelines = build_experiment_timelines(
        config.training_trials_per_condition,
        config.main_trials_per_condition,
        rng,
        override_count=config.effective_trial_count(),
    )
    dimensions = calc_stimulus_dimensions(
        config.stimulus_distance,
        aperture_width_deg=config.aperture_width_deg,
        dot_diameter_deg=config.dot_diameter_deg,
        fixation_diameter_deg=config.fixation_diameter_deg,
        dot_density=config.dot_density,
        scaling_factor=config.scaling_factor,
    )
    geometry = DichopticGeometry(
        stimulus_distance=config.stimulus_distance,
        inter_eye_distance=config.inter_eye_distance,
        offset_angle_deg=config.offset_angle_deg,
        vertical_offset=config.vertical_offset,
        stimulus_width=dimensions.aperture_width,
    )

    print(f"Dry-run: {config.summary()}")
    print("Blocks:")
    for spec in build_block_sequence(timelines):
        print(f"  {spec.sequence.value}. {spec.sequence.label:<13}: {spec.trial_count} trial(s)")
    print()
    print("Training " + summarize_proportions(timelines.training))
    print()
    print("Main " + summarize_proportions(timelines.main))
    print()
    print("Geometry:")
    print(f"  aperture width : {dimensions.aperture_width:.4f}")
    print(f"  aperture height: {dimensions.aperture_height:.4f}")
    print(f"  dot radius     : {dimensions.dot_radius:.4f}")
    print(f"  dot count      : {dimensions.dot_count}")
    print(f"  lateral offset : {geometry.lateralized_offset:.4f}")
    print("Dry-run complete.")


if __name__ == "__main__":  # pragma: no cover - module level CLI hook
    main(sys.argv[1:])
