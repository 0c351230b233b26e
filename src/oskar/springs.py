"""
Damped mass-spring solvers that turn stick segments into lagging curves.

Provides:
- MassPoint / Spring state per connection
- step_point: one explicit integration step of a damped oscillator
- MidpointSpringSolver: sprung start, end and midpoint; S-curve through the midpoint
- WobbleSpringSolver: sprung bezier control points with a perpendicular wobble,
  governed by a single elasticity knob
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .geometry import Segment


HARDNESS_RANGE = (0.05, 0.8)
DAMPING_RANGE = (0.7, 0.99)
ELASTICITY_RANGE = (0.1, 3.0)

Vec2 = Tuple[float, float]


@dataclass
class MassPoint:
    """Point mass with velocity."""
    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0

    @property
    def position(self) -> Vec2:
        return (self.x, self.y)

    def place(self, x: float, y: float) -> None:
        self.x = float(x)
        self.y = float(y)
        self.vx = 0.0
        self.vy = 0.0


@dataclass
class BezierCurve:
    """Cubic bezier p0 -> p3 with control points c0, c1."""
    p0: Vec2
    c0: Vec2
    c1: Vec2
    p3: Vec2

    def sample(self, steps: int = 24) -> np.ndarray:
        """(steps+1)x2 array of points along the curve."""
        t = np.linspace(0.0, 1.0, max(1, int(steps)) + 1)[:, None]
        p0, c0, c1, p3 = (np.asarray(p, dtype=np.float64) for p in (self.p0, self.c0, self.c1, self.p3))
        mt = 1.0 - t
        return (mt ** 3) * p0 + 3 * (mt ** 2) * t * c0 + 3 * mt * (t ** 2) * c1 + (t ** 3) * p3


@dataclass
class Spring:
    """Physical state for one connection."""
    start_point: MassPoint = field(default_factory=MassPoint)
    end_point: MassPoint = field(default_factory=MassPoint)
    mid_point: MassPoint = field(default_factory=MassPoint)
    control_start: MassPoint = field(default_factory=MassPoint)
    control_end: MassPoint = field(default_factory=MassPoint)
    initialized: bool = False

    def snap_to(self, target: Segment) -> None:
        """Place every point on the target so the first frame does not fly in."""
        mx, my = target.midpoint
        self.start_point.place(target.start_x, target.start_y)
        self.end_point.place(target.end_x, target.end_y)
        self.mid_point.place(mx, my)
        self.control_start.place((target.start_x + mx) / 2, (target.start_y + my) / 2)
        self.control_end.place((target.end_x + mx) / 2, (target.end_y + my) / 2)
        self.initialized = True


def step_point(point: MassPoint, target_x: float, target_y: float, hardness: float, damping: float) -> None:
    """
    One integration step. Force is added before damping, then the damped
    velocity moves the point.
    """
    force_x = (target_x - point.x) * hardness
    force_y = (target_y - point.y) * hardness
    point.vx = (point.vx + force_x) * damping
    point.vy = (point.vy + force_y) * damping
    point.x += point.vx
    point.y += point.vy


def step_spring(
    spring: Spring,
    target_start: Vec2,
    target_end: Vec2,
    hardness: float,
    damping: float,
    mid_hardness: Optional[float] = None
) -> None:
    """Step start/end (and midpoint when mid_hardness is given) towards a target line."""
    if not spring.initialized:
        spring.snap_to(Segment(target_start[0], target_start[1], target_end[0], target_end[1]))
        return

    step_point(spring.start_point, target_start[0], target_start[1], hardness, damping)
    step_point(spring.end_point, target_end[0], target_end[1], hardness, damping)
    if mid_hardness is not None:
        mid_x = (target_start[0] + target_end[0]) / 2
        mid_y = (target_start[1] + target_end[1]) / 2
        step_point(spring.mid_point, mid_x, mid_y, mid_hardness, damping)


def clamp(value: float, bounds: Tuple[float, float]) -> float:
    return float(min(bounds[1], max(bounds[0], float(value))))


class MidpointSpringSolver:
    """
    Three sprung points per connection drawn as two chained beziers that
    both pass through the midpoint.

    Usage:
        solver = MidpointSpringSolver(connection_count=9)
        solver.step(targets)          # once per frame
        for curve in solver.curves():
            renderer.bezier(curve)
    """

    def __init__(
        self,
        connection_count: int,
        hardness: float = 0.15,
        damping: float = 0.9,
        mid_hardness: float = 0.12
    ):
        self.springs: List[Spring] = [Spring() for _ in range(connection_count)]
        self._hardness = 0.15
        self._damping = 0.9
        self._mid_hardness = 0.12
        self.hardness = hardness
        self.damping = damping
        self.mid_hardness = mid_hardness

    @property
    def hardness(self) -> float:
        return self._hardness

    @hardness.setter
    def hardness(self, value: float) -> None:
        self._hardness = clamp(value, HARDNESS_RANGE)

    @property
    def damping(self) -> float:
        return self._damping

    @damping.setter
    def damping(self, value: float) -> None:
        self._damping = clamp(value, DAMPING_RANGE)

    @property
    def mid_hardness(self) -> float:
        return self._mid_hardness

    @mid_hardness.setter
    def mid_hardness(self, value: float) -> None:
        self._mid_hardness = clamp(value, HARDNESS_RANGE)

    def step(self, targets: Sequence[Optional[Segment]]) -> None:
        """
        Advance each spring towards its target segment.

        A connection whose target is None this frame keeps its state.
        """
        for spring, target in zip(self.springs, targets):
            if target is None:
                continue
            step_spring(
                spring, target.start, target.end,
                self._hardness, self._damping, self._mid_hardness,
            )
            spring.control_start.x = (spring.start_point.x + spring.mid_point.x) / 2
            spring.control_start.y = (spring.start_point.y + spring.mid_point.y) / 2
            spring.control_end.x = (spring.end_point.x + spring.mid_point.x) / 2
            spring.control_end.y = (spring.end_point.y + spring.mid_point.y) / 2

    def curves(self) -> List[BezierCurve]:
        curves: List[BezierCurve] = []
        for spring in self.springs:
            if not spring.initialized:
                continue
            cs = spring.control_start.position
            ce = spring.control_end.position
            mid = spring.mid_point.position
            curves.append(BezierCurve(spring.start_point.position, cs, cs, mid))
            curves.append(BezierCurve(mid, ce, ce, spring.end_point.position))
        return curves

    def reset(self) -> None:
        self.springs = [Spring() for _ in self.springs]


class WobbleSpringSolver:
    """
    Springy single bezier per connection.

    Endpoints follow the target segment exactly; the two interior control
    points are point masses pulled towards 1/3 and 2/3 along the segment,
    pushed sideways by a sine wobble whose phase is offset per connection.
    Elasticity scales the pull and the wobble and lowers damping.
    """

    CONTROL_FRACTIONS = (0.33, 0.66)

    def __init__(
        self,
        connection_count: int,
        strength: float = 0.02,
        damping: float = 0.95,
        elasticity: float = 1.0,
        wobble_amplitude: float = 15.0,
        wobble_speed: float = 3.0,
        phase_step: float = 0.5,
        elasticity_range: Tuple[float, float] = ELASTICITY_RANGE
    ):
        self.springs: List[Spring] = [Spring() for _ in range(connection_count)]
        self.strength = float(strength)
        self.damping = float(damping)
        self.wobble_amplitude = float(wobble_amplitude)
        self.wobble_speed = float(wobble_speed)
        self.phase_step = float(phase_step)
        self.elasticity_range = elasticity_range
        self._elasticity = 1.0
        self.elasticity = elasticity
        self._endpoints: List[Optional[Segment]] = [None] * connection_count

    @property
    def elasticity(self) -> float:
        return self._elasticity

    @elasticity.setter
    def elasticity(self, value: float) -> None:
        self._elasticity = clamp(value, self.elasticity_range)

    @property
    def effective_strength(self) -> float:
        return self.strength * self._elasticity

    @property
    def effective_damping(self) -> float:
        return self.damping + (1.0 - self._elasticity) * 0.03

    def _ideal_controls(self, index: int, target: Segment, time_s: float) -> List[Vec2]:
        dx = target.end_x - target.start_x
        dy = target.end_y - target.start_y
        ideals = [
            [target.start_x + dx * f, target.start_y + dy * f]
            for f in self.CONTROL_FRACTIONS
        ]

        length = math.sqrt(dx * dx + dy * dy)
        if length > 0:
            perp_x = -dy / length
            perp_y = dx / length
            phase = time_s * self.wobble_speed + index * self.phase_step
            amplitude = self.wobble_amplitude * self._elasticity
            waves = (math.sin(phase) * amplitude, math.sin(phase + math.pi) * amplitude)
            for ideal, wave in zip(ideals, waves):
                ideal[0] += perp_x * wave
                ideal[1] += perp_y * wave

        return [(ideal[0], ideal[1]) for ideal in ideals]

    def step(self, targets: Sequence[Optional[Segment]], time_s: float) -> None:
        """Advance control points; None targets keep their state and are not drawn."""
        strength = self.effective_strength
        damping = self.effective_damping

        for i, (spring, target) in enumerate(zip(self.springs, targets)):
            self._endpoints[i] = target
            if target is None:
                continue

            spring.start_point.place(target.start_x, target.start_y)
            spring.end_point.place(target.end_x, target.end_y)

            if not spring.initialized:
                dx = target.end_x - target.start_x
                dy = target.end_y - target.start_y
                f0, f1 = self.CONTROL_FRACTIONS
                spring.control_start.place(target.start_x + dx * f0, target.start_y + dy * f0)
                spring.control_end.place(target.start_x + dx * f1, target.start_y + dy * f1)
                spring.initialized = True

            ideal_start, ideal_end = self._ideal_controls(i, target, time_s)
            step_point(spring.control_start, ideal_start[0], ideal_start[1], strength, damping)
            step_point(spring.control_end, ideal_end[0], ideal_end[1], strength, damping)

    def curves(self) -> List[BezierCurve]:
        curves: List[BezierCurve] = []
        for spring, target in zip(self.springs, self._endpoints):
            if target is None or not spring.initialized:
                continue
            curves.append(BezierCurve(
                target.start,
                spring.control_start.position,
                spring.control_end.position,
                target.end,
            ))
        return curves

    def reset(self) -> None:
        self.springs = [Spring() for _ in self.springs]
        self._endpoints = [None] * len(self.springs)
