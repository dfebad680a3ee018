import logging

import pytest

from dichoptic_rdk.errors import ConfigurationError
from dichoptic_rdk.gaze import FixationTarget, FixationTimer, GazeFixationMonitor, eye_within
from dichoptic_rdk.ports import Vec3

from conftest import FixedGaze

TARGET = FixationTarget(Vec3(0.0, -2.0, 10.0))
DT = 0.25


def _ticks_until_done(task, clock, max_ticks=100):
    for tick in range(1, max_ticks + 1):
        try:
            next(task)
        except StopIteration:
            return tick
        clock.advance(DT)
    raise AssertionError("task did not finish")


def test_eye_within_is_inclusive_on_both_axes():
    assert eye_within(Vec3(0.70, -2.5, 10.0), TARGET.position, 0.70)
    assert not eye_within(Vec3(0.71, -2.0, 10.0), TARGET.position, 0.70)
    assert not eye_within(Vec3(0.0, -1.2, 10.0), TARGET.position, 0.70)


def test_either_eye_is_enough(clock):
    gaze = FixedGaze(Vec3(5.0, 5.0, 10.0), right=Vec3(0.1, -2.1, 10.0))
    monitor = GazeFixationMonitor(gaze, clock, threshold=0.70)

    assert monitor.is_fixated_static(TARGET)

    gaze.look_at(Vec3(5.0, 5.0, 10.0))
    assert not monitor.is_fixated_static(TARGET)


def test_threshold_is_mutable_but_not_negative(clock, gaze, caplog):
    monitor = GazeFixationMonitor(gaze, clock)
    monitor.set_threshold(1.0)
    with caplog.at_level(logging.WARNING):
        monitor.set_threshold(-0.5)

    assert monitor.threshold == 1.0
    assert "negative fixation threshold" in caplog.text


def test_missing_sampler_is_a_configuration_error(clock):
    with pytest.raises(ConfigurationError):
        GazeFixationMonitor(None, clock)


def test_timer_accumulates_contiguous_fixation():
    timer = FixationTimer(0.5)

    assert not timer.update(True, 0.0)
    assert timer.elapsed == 0.0
    assert not timer.update(True, 0.25)
    assert timer.update(True, 0.5)
    assert timer.elapsed == 0.5


def test_timer_resets_on_any_failed_sample():
    timer = FixationTimer(0.5)
    timer.update(True, 0.0)
    timer.update(True, 0.25)

    assert not timer.update(False, 0.5)
    assert timer.elapsed == 0.0
    assert not timer.update(True, 0.75)
    assert not timer.update(True, 1.0)
    assert timer.update(True, 1.25)


def test_wait_for_fixation_completes_after_duration(clock):
    gaze = FixedGaze(TARGET.position)
    monitor = GazeFixationMonitor(gaze, clock)

    ticks = _ticks_until_done(monitor.wait_for_fixation(TARGET, 0.5), clock)

    # Samples at 0.0, 0.25 and 0.5 s; the third reaches the duration.
    assert ticks == 3
    assert clock.now() == 0.5


def test_wait_for_fixation_restarts_after_a_glance_away(clock):
    gaze = FixedGaze(TARGET.position)
    monitor = GazeFixationMonitor(gaze, clock)
    task = monitor.wait_for_fixation(TARGET, 0.5)

    next(task)
    clock.advance(DT)
    next(task)
    clock.advance(DT)
    gaze.look_at(Vec3(3.0, 3.0, 10.0))
    next(task)
    clock.advance(DT)
    gaze.look_at(TARGET.position)

    ticks = _ticks_until_done(task, clock)

    assert ticks == 3
    assert clock.now() == 1.25
