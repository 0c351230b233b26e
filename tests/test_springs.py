import math
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from oskar.geometry import Segment
from oskar.springs import (
    BezierCurve, MassPoint, MidpointSpringSolver, WobbleSpringSolver, clamp, step_point,
)


HARDNESS = 0.15
DAMPING = 0.9


def test_step_point_order_of_operations():
    point = MassPoint(0.0, 0.0, vx=1.0)
    step_point(point, 10.0, 0.0, 0.5, 0.5)
    # v = (1 + 5) * 0.5, then x += v
    assert point.vx == pytest.approx(3.0)
    assert point.x == pytest.approx(3.0)


def test_damped_spring_stays_within_decay_envelope():
    # The step is linear with determinant `damping`, so the error envelope
    # shrinks by sqrt(damping) per frame.
    point = MassPoint(0.0, 0.0)
    target = 100.0
    ratio = math.sqrt(DAMPING)
    for n in range(1, 200):
        step_point(point, target, 0.0, HARDNESS, DAMPING)
        error = abs(point.x - target) / target
        assert error <= 1.01 * ratio ** n
        if n >= 90:
            assert error < 0.01


def test_midpoint_solver_converges_after_snap():
    solver = MidpointSpringSolver(connection_count=1, hardness=HARDNESS, damping=DAMPING)
    solver.step([Segment(0.0, 0.0, 0.0, -100.0)])
    # first step snaps exactly
    assert solver.springs[0].start_point.position == (0.0, 0.0)
    assert solver.springs[0].mid_point.position == (0.0, -50.0)

    moved = Segment(200.0, 0.0, 200.0, -100.0)
    for _ in range(90):
        solver.step([moved])
    spring = solver.springs[0]
    for point, (tx, ty) in (
        (spring.start_point, moved.start),
        (spring.end_point, moved.end),
        (spring.mid_point, moved.midpoint),
    ):
        assert abs(point.x - tx) < 2.0
        assert abs(point.y - ty) < 2.0


def test_midpoint_solver_curves_meet_at_midpoint():
    solver = MidpointSpringSolver(connection_count=2)
    solver.step([Segment(0.0, 0.0, 10.0, 0.0), None])
    curves = solver.curves()
    assert len(curves) == 2
    first, second = curves
    assert first.p0 == (0.0, 0.0)
    assert first.p3 == second.p0 == (5.0, 0.0)
    assert second.p3 == (10.0, 0.0)


def test_missing_target_keeps_state():
    solver = MidpointSpringSolver(connection_count=1)
    solver.step([Segment(0.0, 0.0, 10.0, 0.0)])
    solver.step([Segment(50.0, 0.0, 60.0, 0.0)])
    before = solver.springs[0].start_point.position
    solver.step([None])
    assert solver.springs[0].start_point.position == before
    assert len(solver.curves()) == 2


def test_solver_parameters_are_clamped():
    solver = MidpointSpringSolver(connection_count=1, hardness=5.0, damping=0.1, mid_hardness=-1.0)
    assert solver.hardness == 0.8
    assert solver.damping == 0.7
    assert solver.mid_hardness == 0.05
    assert clamp(0.5, (0.0, 1.0)) == 0.5


def test_reset_forgets_springs():
    solver = MidpointSpringSolver(connection_count=3)
    solver.step([Segment(0.0, 0.0, 1.0, 1.0)] * 3)
    solver.reset()
    assert solver.curves() == []


def test_wobble_elasticity_clamp_and_effective_values():
    solver = WobbleSpringSolver(connection_count=1, elasticity=10.0)
    assert solver.elasticity == 3.0
    assert solver.effective_strength == pytest.approx(0.06)
    assert solver.effective_damping == pytest.approx(0.89)

    solver.elasticity = 0.0
    assert solver.elasticity == 0.1
    assert solver.effective_damping == pytest.approx(0.977)


def test_wobble_endpoints_follow_target_exactly():
    solver = WobbleSpringSolver(connection_count=1)
    target = Segment(10.0, 20.0, 110.0, 20.0)
    solver.step([target], time_s=0.0)
    curve = solver.curves()[0]
    assert curve.p0 == target.start
    assert curve.p3 == target.end
    # zero phase: controls sit on the segment
    assert curve.c0[0] == pytest.approx(43.0)
    assert curve.c0[1] == pytest.approx(20.0)

    moved = Segment(0.0, 0.0, 0.0, 100.0)
    solver.step([moved], time_s=0.25)
    assert solver.curves()[0].p0 == moved.start
    assert solver.curves()[0].p3 == moved.end


def test_wobble_missing_target_is_not_drawn():
    solver = WobbleSpringSolver(connection_count=2)
    seg = Segment(0.0, 0.0, 30.0, 0.0)
    solver.step([seg, seg], time_s=0.0)
    control = solver.springs[1].control_start.position
    solver.step([seg, None], time_s=0.0)
    assert len(solver.curves()) == 1
    assert solver.springs[1].control_start.position == control


def test_bezier_sample_hits_endpoints():
    curve = BezierCurve((0.0, 0.0), (1.0, 2.0), (3.0, 2.0), (4.0, 0.0))
    pts = curve.sample(steps=10)
    assert pts.shape == (11, 2)
    assert np.allclose(pts[0], [0.0, 0.0])
    assert np.allclose(pts[-1], [4.0, 0.0])
    assert pts[5, 1] == pytest.approx(1.5)
