"""Tests for joint-angle geometry and mirroring."""

import math
from types import SimpleNamespace

import pytest

from matching_service.models import (
    DegenerateGeometry,
    Keypoint,
    angle_of,
    extract_angle,
    mirror_keypoint,
    mirror_pose,
)

from conftest import make_pose


def P(x, y):
    return SimpleNamespace(x=x, y=y)


@pytest.mark.parametrize("a, b, expected", [
    (P(1, 0), P(0, 1), 90.0),
    (P(1, 0), P(1, 0), 0.0),
    (P(1, 0), P(-1, 0), 180.0),
    (P(2, 2), P(3, 0), 45.0),
])
def test_angle_of_known_angles(a, b, expected):
    assert angle_of(P(0, 0), a, b) == pytest.approx(expected, abs=1e-6)


def test_angle_of_is_symmetric_and_bounded():
    points = [P(3, 4), P(-2, 7), P(0.5, -9), P(-6, -1), P(10, 0.1)]
    vertex = P(0.25, -0.5)
    for a in points:
        for b in points:
            ab = angle_of(vertex, a, b)
            ba = angle_of(vertex, b, a)
            assert 0.0 <= ab <= 180.0
            assert ab == pytest.approx(ba)


def test_angle_of_ignores_confidence():
    vertex = Keypoint("left_elbow", 0, 0, 0.0)
    a = Keypoint("left_wrist", 0, 5, 0.0)
    b = Keypoint("left_shoulder", 5, 0, 1.0)
    assert angle_of(vertex, a, b) == pytest.approx(90.0)


@pytest.mark.parametrize("vertex, a, b", [
    (P(1, 1), P(1, 1), P(4, 5)),
    (P(1, 1), P(4, 5), P(1, 1)),
    (P(0, 0), P(0, 0), P(0, 0)),
])
def test_angle_of_degenerate_raises(vertex, a, b):
    with pytest.raises(DegenerateGeometry):
        angle_of(vertex, a, b)


def test_degenerate_is_never_nan():
    try:
        value = angle_of(P(2, 2), P(2, 2), P(3, 3))
    except DegenerateGeometry:
        return
    assert not math.isnan(value)


def test_mirror_keypoint_flips_x_only():
    kp = Keypoint("left_wrist", 100.0, 50.0, 0.8)
    flipped = mirror_keypoint(kp, 640)
    assert flipped.x == pytest.approx(539.0)
    assert flipped.y == 50.0
    assert flipped.name == "left_wrist"
    assert flipped.score == 0.8


def test_mirror_twice_is_identity_and_keeps_angle():
    pose = make_pose(72.0)
    once = mirror_pose(pose, 640)
    twice = mirror_pose(once, 640)

    assert [kp.name for kp in once.keypoints] == [kp.name for kp in pose.keypoints]
    for original, back in zip(pose.keypoints, twice.keypoints):
        assert back.x == pytest.approx(original.x)
    assert extract_angle(once) == pytest.approx(extract_angle(pose))
    assert once.score == pose.score
