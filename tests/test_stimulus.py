import math
import random

from dichoptic_rdk.conditions import MotionDirection
from dichoptic_rdk.stimulus import assign_dot_headings, build_motion_settings


def test_full_coherence_moves_every_dot_together():
    headings, reference = assign_dot_headings(50, 1.0, MotionDirection.UP.angle, random.Random(0))

    assert all(reference)
    assert set(headings) == {MotionDirection.UP.angle}


def test_distractors_get_random_headings():
    headings, reference = assign_dot_headings(400, 0.25, MotionDirection.DOWN.angle, random.Random(2))
    distractors = [h for h, ref in zip(headings, reference) if not ref]

    assert 0.15 < sum(reference) / len(reference) < 0.35
    assert all(0.0 <= h < 2.0 * math.pi for h in distractors)
    assert len(set(distractors)) == len(distractors)


def test_headings_are_redrawn_for_each_presentation():
    rng = random.Random(4)
    first = build_motion_settings(0.3, MotionDirection.UP.angle, 100, rng)
    second = build_motion_settings(0.3, MotionDirection.UP.angle, 100, rng)

    assert first.headings != second.headings
    assert first.direction_degrees == 90.0
