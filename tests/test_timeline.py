import logging
import random
from collections import Counter

from dichoptic_rdk.conditions import MAIN_CONDITIONS, TRAINING_CONDITIONS, BlockSequence, TrialType
from dichoptic_rdk.timeline import (
    build_block_sequence,
    build_experiment_timelines,
    build_timeline,
    summarize_proportions,
)


def test_timeline_counts_are_exact():
    counts = {
        TrialType.TRAINING_BINOCULAR: 3,
        TrialType.TRAINING_MONOCULAR_LEFT: 0,
        TrialType.TRAINING_LATERALIZED_RIGHT: 5,
    }
    timeline = build_timeline(counts, random.Random(3))

    assert len(timeline) == 8
    assert Counter(timeline) == {
        TrialType.TRAINING_BINOCULAR: 3,
        TrialType.TRAINING_LATERALIZED_RIGHT: 5,
    }


def test_negative_count_is_treated_as_zero(caplog):
    counts = {TrialType.MAIN_BINOCULAR: -2, TrialType.MAIN_MONOCULAR_LEFT: 1}
    with caplog.at_level(logging.WARNING):
        timeline = build_timeline(counts, random.Random(0))

    assert timeline == [TrialType.MAIN_MONOCULAR_LEFT]
    assert "Negative trial count" in caplog.text


def test_override_count_replaces_every_count():
    counts = {condition: 40 for condition in MAIN_CONDITIONS}
    timeline = build_timeline(counts, random.Random(0), override_count=4)

    assert Counter(timeline) == {condition: 4 for condition in MAIN_CONDITIONS}


def test_same_seed_gives_same_order():
    first = build_experiment_timelines(20, 40, random.Random(42))
    second = build_experiment_timelines(20, 40, random.Random(42))
    other = build_experiment_timelines(20, 40, random.Random(7))

    assert first == second
    assert first.training != other.training


def test_training_and_main_phases_are_separate():
    timelines = build_experiment_timelines(20, 40, random.Random(1))

    assert Counter(timelines.training) == {condition: 20 for condition in TRAINING_CONDITIONS}
    assert Counter(timelines.main) == {condition: 40 for condition in MAIN_CONDITIONS}


def test_block_sequence_order_and_counts():
    timelines = build_experiment_timelines(2, 3, random.Random(1))
    blocks = build_block_sequence(timelines)

    assert [block.sequence for block in blocks] == list(BlockSequence)
    counts = {block.sequence: block.trial_count for block in blocks}
    assert counts[BlockSequence.TRAINING] == 10
    assert counts[BlockSequence.MAIN] == 15
    assert counts[BlockSequence.FIT] == 1
    assert counts[BlockSequence.END] == 1


def test_summarize_proportions_lists_each_condition():
    timeline = [TrialType.TRAINING_BINOCULAR] * 3 + [TrialType.TRAINING_MONOCULAR_RIGHT]
    summary = summarize_proportions(timeline)

    lines = summary.splitlines()
    assert lines[0] == "Timeline Summary (Trials: 4)"
    assert "Training_Binocular: 3 trials (75.0%)" in lines
    assert "Training_Monocular_Right: 1 trials (25.0%)" in lines


def test_summarize_empty_timeline():
    assert summarize_proportions([]).splitlines()[0] == "Timeline Summary (Trials: 0)"
