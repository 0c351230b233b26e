import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from oskar.keypoints import Keypoint, Pose, NUM_KEYPOINTS, clone_poses
from oskar.smoothing import KeypointSmoother, smooth_poses


def make_pose(x: float, y: float, confidence: float = 0.9) -> Pose:
    return Pose(keypoints=[Keypoint(x, y, confidence, f"kp{i}") for i in range(NUM_KEYPOINTS)])


def test_cold_start_returns_input_unchanged():
    new = [make_pose(10.0, 20.0)]
    out = smooth_poses(new, [], 0.5)
    assert out == new
    assert out[0] is new[0]


def test_blend_uses_factor_and_new_confidence():
    prev = [make_pose(0.0, 0.0, confidence=0.2)]
    new = [make_pose(100.0, 50.0, confidence=0.8)]
    out = smooth_poses(new, prev, 0.25)
    kp = out[0][0]
    assert kp.x == pytest.approx(25.0)
    assert kp.y == pytest.approx(12.5)
    assert kp.confidence == 0.8
    assert kp.name == "kp0"


def test_factor_extremes():
    prev = [make_pose(0.0, 0.0)]
    new = [make_pose(40.0, 40.0)]
    assert smooth_poses(new, prev, 0.0)[0][5].x == pytest.approx(0.0)
    assert smooth_poses(new, prev, 1.0)[0][5].x == pytest.approx(40.0)


def test_extra_new_poses_pass_through():
    prev = [make_pose(0.0, 0.0)]
    new = [make_pose(10.0, 10.0), make_pose(300.0, 300.0)]
    out = smooth_poses(new, prev, 0.5)
    assert len(out) == 2
    assert out[0][0].x == pytest.approx(5.0)
    assert out[1][0].x == pytest.approx(300.0)


def test_output_does_not_alias_previous():
    prev = [make_pose(0.0, 0.0)]
    out = smooth_poses([make_pose(10.0, 10.0)], prev, 0.5)
    out[0][0].x = 999.0
    assert prev[0][0].x == 0.0


def test_converges_to_stationary_input():
    # Error after n steps is (1 - f)^n of the initial offset
    smoother = KeypointSmoother(factor=0.5)
    smoother.update([make_pose(0.0, 0.0)])
    out = None
    for _ in range(10):
        out = smoother.update([make_pose(100.0, 0.0)])
    assert 100.0 - out[0][0].x == pytest.approx(100.0 * 0.5 ** 10)
    assert 100.0 - out[0][0].x < 0.1


def test_smoother_keeps_structural_clone():
    smoother = KeypointSmoother(factor=0.5)
    result = smoother.update([make_pose(10.0, 10.0)])
    result[0][0].x = -1.0
    assert smoother.previous[0][0].x == 10.0


def test_smoother_reset_and_factor_clamp():
    smoother = KeypointSmoother(factor=3.0)
    assert smoother.factor == 1.0
    smoother.factor = -1.0
    assert smoother.factor == 0.0
    smoother.update([make_pose(1.0, 1.0)])
    smoother.reset()
    assert smoother.previous == []


def test_clone_poses_is_deep():
    poses = [make_pose(1.0, 2.0)]
    copy = clone_poses(poses)
    copy[0][3].y = 50.0
    assert poses[0][3].y == 2.0


def test_pose_from_dict_rejects_missing_coordinates():
    raw = [{"x": 1.0, "y": 2.0} for _ in range(NUM_KEYPOINTS)]
    raw[4] = {"x": 1.0}
    with pytest.raises(ValueError):
        Pose.from_dict({"keypoints": raw})
    with pytest.raises(ValueError):
        Pose.from_dict({"points": []})


def test_pose_needs_exactly_17_keypoints():
    with pytest.raises(ValueError):
        Pose.from_dict({"keypoints": [{"x": 1.0, "y": 2.0}] * 5})
    with pytest.raises(ValueError):
        Pose.from_dict({"keypoints": [{"x": 1.0, "y": 2.0}] * 18})
    with pytest.raises(ValueError):
        Pose.from_array(np.zeros((16, 3)))
    assert len(Pose.from_array(np.zeros((NUM_KEYPOINTS, 3)))) == NUM_KEYPOINTS


def test_pose_from_dict_accepts_score():
    raw = [{"x": 1, "y": 2, "score": 0.7} for _ in range(NUM_KEYPOINTS)]
    pose = Pose.from_dict({"keypoints": raw})
    assert pose[0].confidence == pytest.approx(0.7)
    assert pose[0].name == "nose"
    assert pose[16].name == "right_ankle"
