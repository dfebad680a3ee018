import pytest

from dichoptic_rdk.ports import GazeVector, InputState, RecordingRenderSink, Vec3
from dichoptic_rdk.scheduler import ManualClock

FAR_AWAY = Vec3(100.0, 100.0, 10.0)


class FixedGaze:
    """Gaze sampler returning the same point for both eyes until moved."""

    def __init__(self, point: Vec3 = FAR_AWAY, right: Vec3 = None):
        self.left = point
        self.right = point if right is None else right

    def look_at(self, point: Vec3, right: Vec3 = None):
        self.left = point
        self.right = point if right is None else right

    def sample(self) -> GazeVector:
        return GazeVector(self.left, self.right)


class ScriptedInput:
    """Response input whose state the test sets before each tick."""

    def __init__(self):
        self.state = InputState()

    def poll(self) -> InputState:
        return self.state


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def gaze():
    return FixedGaze()


@pytest.fixture
def inputs():
    return ScriptedInput()


@pytest.fixture
def render():
    return RecordingRenderSink()
