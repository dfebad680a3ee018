import logging

import pytest

from dichoptic_rdk.conditions import (
    MAIN_CONDITIONS,
    TRAINING_CONDITIONS,
    Block,
    BlockSequence,
    TrialRecord,
    TrialType,
    VisualField,
)


def test_five_conditions_per_phase():
    assert len(TRAINING_CONDITIONS) == 5
    assert len(MAIN_CONDITIONS) == 5
    assert {c.training_counterpart for c in MAIN_CONDITIONS} == set(TRAINING_CONDITIONS)


def test_labels_round_trip_through_results():
    trial_type = TrialType.MAIN_LATERALIZED_RIGHT

    assert trial_type.label == "Main_Lateralized_Right"
    assert TrialType.from_label("Main_Lateralized_Right") is trial_type
    assert trial_type.visual_field is VisualField.RIGHT
    assert trial_type.lateralized
    assert not TrialType.TRAINING_MONOCULAR_LEFT.lateralized
    with pytest.raises(ValueError):
        TrialType.from_label("Main_Sideways")


def test_closed_record_rejects_writes(caplog):
    seen = []
    record = TrialRecord(BlockSequence.MAIN, 3, on_write=lambda rec, key, value: seen.append(key))
    record.write("coherence", 0.3)
    record.close()
    with caplog.at_level(logging.WARNING):
        record.write("coherence", 0.9)

    assert record.coherence == 0.3
    assert seen == ["coherence"]
    assert "closed trial" in caplog.text


def test_block_trials_are_one_based():
    block = Block(BlockSequence.TRAINING, 2)
    block.trials.append(TrialRecord(BlockSequence.TRAINING, 1))

    assert block.number == 5
    assert block.get_relative_trial(1).number == 1
    with pytest.raises(IndexError):
        block.get_relative_trial(0)
    with pytest.raises(IndexError):
        block.get_relative_trial(2)
