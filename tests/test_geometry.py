import math
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from oskar.geometry import (
    GOLDEN_RATIO, SCHLEMER_CONNECTIONS, ConnectionSpec,
    calculate_base_length, resolve_ellipses, resolve_pose_list,
    resolve_segments, resolve_targets,
)
from oskar.keypoints import Keypoint, Pose, NUM_KEYPOINTS


def blank_pose() -> Pose:
    return Pose(keypoints=[Keypoint(0.0, 0.0, 0.0) for _ in range(NUM_KEYPOINTS)])


def set_kp(pose: Pose, index: int, x: float, y: float, confidence: float = 0.9) -> None:
    pose.keypoints[index] = Keypoint(x, y, confidence)


def test_connection_table():
    assert len(SCHLEMER_CONNECTIONS) == 9
    assert SCHLEMER_CONNECTIONS[0] == ConnectionSpec(16, 14, False, 0.75)
    assert SCHLEMER_CONNECTIONS[-1] == ConnectionSpec(5, 6, True, 0.75)
    assert sum(1 for c in SCHLEMER_CONNECTIONS if c.centered) == 1


def test_uncalibrated_gives_no_segments():
    pose = blank_pose()
    set_kp(pose, 16, 0, 0)
    set_kp(pose, 14, 0, -10)
    assert resolve_segments(pose, SCHLEMER_CONNECTIONS, 0) == []


def test_non_centered_segment_starts_at_lower():
    pose = blank_pose()
    set_kp(pose, 16, 100, 200)
    set_kp(pose, 14, 100, 150)
    segments = resolve_segments(pose, SCHLEMER_CONNECTIONS, 100.0)
    assert len(segments) == 1
    seg = segments[0]
    assert seg.start == (100, 200)
    assert seg.end_x == pytest.approx(100.0)
    assert seg.end_y == pytest.approx(200.0 - 75.0)
    assert seg.length == pytest.approx(75.0)


def test_centered_segment_is_symmetric_about_midpoint():
    pose = blank_pose()
    set_kp(pose, 5, 0, 0)
    set_kp(pose, 6, 10, 0)
    segments = resolve_segments(pose, [ConnectionSpec(5, 6, True, 0.75)], 40.0)
    seg = segments[0]
    assert seg.midpoint == pytest.approx((5.0, 0.0))
    assert seg.start_x == pytest.approx(-10.0)
    assert seg.end_x == pytest.approx(20.0)


def test_coincident_keypoints_are_skipped_without_nan():
    pose = blank_pose()
    set_kp(pose, 5, 30, 30)
    set_kp(pose, 6, 30, 30)
    set_kp(pose, 9, 30, 30)
    segments = resolve_segments(pose, SCHLEMER_CONNECTIONS, 50.0)
    assert segments == []
    targets = resolve_targets(pose, SCHLEMER_CONNECTIONS, 50.0)
    assert len(targets) == len(SCHLEMER_CONNECTIONS)
    assert all(t is None for t in targets)


def test_low_confidence_connections_are_skipped():
    pose = blank_pose()
    set_kp(pose, 16, 0, 0)
    set_kp(pose, 14, 0, -10, confidence=0.1)
    assert resolve_segments(pose, SCHLEMER_CONNECTIONS, 50.0) == []


def test_segments_follow_table_order_and_are_finite():
    pose = blank_pose()
    for i in range(NUM_KEYPOINTS):
        set_kp(pose, i, 10.0 * i, 5.0 * (i % 4))
    segments = resolve_segments(pose, SCHLEMER_CONNECTIONS, 80.0)
    assert len(segments) == len(SCHLEMER_CONNECTIONS)
    for seg, conn in zip(segments, SCHLEMER_CONNECTIONS):
        assert all(math.isfinite(v) for v in (seg.start_x, seg.start_y, seg.end_x, seg.end_y))
        assert seg.length == pytest.approx(80.0 * conn.length_ratio)
    assert len(resolve_pose_list([pose, pose], SCHLEMER_CONNECTIONS, 80.0)) == 18


def test_base_length_uses_ankle_midpoint():
    pose = blank_pose()
    set_kp(pose, 0, 100, 0)
    set_kp(pose, 15, 80, 300)
    set_kp(pose, 16, 120, 300)
    assert calculate_base_length(pose) == pytest.approx(300.0)
    assert calculate_base_length(pose, scale=0.5) == pytest.approx(150.0)


def test_base_length_single_ankle_and_missing_nose():
    pose = blank_pose()
    set_kp(pose, 0, 0, 0)
    set_kp(pose, 16, 30, 40)
    assert calculate_base_length(pose) == pytest.approx(50.0)

    set_kp(pose, 0, 0, 0, confidence=0.05)
    assert calculate_base_length(pose) is None


def test_ellipses_skip_face_edges_and_invert_head():
    pose = blank_pose()
    set_kp(pose, 3, 0, 0)
    set_kp(pose, 4, 20, 0)
    set_kp(pose, 5, 0, 50)
    set_kp(pose, 7, 0, 150)
    set_kp(pose, 0, 10, -5)
    set_kp(pose, 1, 5, -8)

    shapes = resolve_ellipses(pose)
    assert len(shapes) == 2
    head, arm = shapes
    assert head.minor == pytest.approx(20.0)
    assert head.major == pytest.approx(20.0 * GOLDEN_RATIO)
    assert arm.major == pytest.approx(100.0)
    assert arm.minor == pytest.approx(100.0 / GOLDEN_RATIO)
    assert arm.angle == pytest.approx(math.pi / 2)

    contour = resolve_ellipses(pose, offset_multiplier=GOLDEN_RATIO)
    assert contour[1].major == pytest.approx(100.0 * GOLDEN_RATIO)
