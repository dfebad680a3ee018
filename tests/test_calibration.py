import logging

import pytest

from dichoptic_rdk.calibration import (
    DEFAULT_PATH,
    CalibrationPhase,
    CalibrationProcedure,
    WaypointState,
)
from dichoptic_rdk.gaze import GazeFixationMonitor
from dichoptic_rdk.ports import GazeVector, Vec3
from dichoptic_rdk.stimulus import StimulusType

ANCHOR = Vec3(0.0, -2.0, 10.0)
NAMES = [waypoint.name for waypoint in DEFAULT_PATH]


class FollowTarget:
    """Looks at the calibration target, optionally missing it by ``error``."""

    def __init__(self, render, error=0.0):
        self.render = render
        self.error = error

    def sample(self):
        target = self.render.calibration_target or Vec3(100.0, 100.0, 10.0)
        point = Vec3(target.x + self.error, target.y, target.z)
        return GazeVector(point, point)


def _procedure(render, clock, error=0.0, **kwargs):
    monitor = GazeFixationMonitor(FollowTarget(render, error), clock)
    return CalibrationProcedure(monitor, render, anchor=lambda: ANCHOR, **kwargs), monitor


def _run(procedure, delta=0.1, max_ticks=10000):
    for _ in range(max_ticks):
        if not procedure.active:
            return
        procedure.update(delta)
    raise AssertionError("calibration did not finish")


def test_full_sweep_collects_samples_for_every_waypoint(render, clock):
    procedure, monitor = _procedure(render, clock)
    completed = []

    procedure.run(lambda: completed.append(True))
    _run(procedure)

    assert completed == [True]
    assert procedure.complete
    assert all(len(samples) == 100 for samples in procedure.setup_samples)
    assert all(len(samples) == 100 for samples in procedure.validation_samples)
    assert procedure.visited == [(CalibrationPhase.SETUP, name) for name in NAMES] + [
        (CalibrationPhase.VALIDATION, name) for name in NAMES
    ]
    assert render.flashes == 1
    assert monitor.threshold == pytest.approx(0.70)
    assert not render.is_visible(StimulusType.CALIBRATION_TARGET)
    assert not render.is_visible(StimulusType.CALIBRATION_VIEW)


def test_target_positions_follow_the_path(render, clock):
    procedure, _ = _procedure(render, clock)
    procedure.run()

    assert procedure.target_position() == ANCHOR
    assert render.calibration_target == ANCHOR
    assert render.is_visible(StimulusType.CALIBRATION_TARGET)


def test_holding_waits_for_the_hold_interval(render, clock):
    procedure, _ = _procedure(render, clock, samples_per_waypoint=3)
    procedure.run()
    for _ in range(3):
        procedure.update(0.0)

    assert procedure.waypoint_state is WaypointState.HOLDING
    assert render.calibration_target_completed

    procedure.update(0.8)
    assert procedure.waypoint_index == 0
    procedure.update(0.8)

    assert procedure.waypoint_index == 1
    assert procedure.waypoint_state is WaypointState.CAPTURING
    assert not render.calibration_target_completed
    assert tuple(render.calibration_target) == pytest.approx((2.4, 0.4, 10.0))


def test_validation_uses_the_tighter_threshold(render, clock):
    procedure, _ = _procedure(render, clock, error=0.9, samples_per_waypoint=5, hold_interval=0.2)
    procedure.run()
    for _ in range(500):
        procedure.update(0.1)

    # 0.9 off target passes the 1.0 setup threshold but not the 0.70 one.
    assert procedure.phase is CalibrationPhase.VALIDATION
    assert procedure.waypoint_index == 0
    assert all(len(samples) == 5 for samples in procedure.setup_samples)
    assert procedure.validation_samples[0] == []


def test_run_while_active_is_ignored(render, clock, caplog):
    procedure, _ = _procedure(render, clock, samples_per_waypoint=2)
    procedure.run()
    procedure.update(0.0)
    with caplog.at_level(logging.WARNING):
        procedure.run()

    assert "already running" in caplog.text
    assert len(procedure.setup_samples[0]) == 1


def test_run_after_completion_calls_back_immediately(render, clock):
    procedure, _ = _procedure(render, clock, samples_per_waypoint=1, hold_interval=0.0)
    procedure.run()
    _run(procedure)
    calls = []

    procedure.run(lambda: calls.append("again"))

    assert calls == ["again"]
    assert procedure.complete


def test_cancel_stops_the_sweep(render, clock):
    procedure, _ = _procedure(render, clock)
    procedure.run()
    procedure.cancel()

    assert procedure.phase is CalibrationPhase.IDLE
    assert not render.is_visible(StimulusType.CALIBRATION_TARGET)
