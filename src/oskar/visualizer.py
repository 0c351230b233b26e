"""
Visual variants drawn onto a stage surface.

Each variant is composed from a color, a trail policy and a drawing style
rather than overriding a base visualizer:
- StickVisualizer: rigid Schlemmer sticks (white / red / blue, or clear with NoTrail)
- SpringyStickVisualizer: wobbling bezier sticks driven by an elasticity knob
- SpringSplineVisualizer: sprung S-curves through a softer midpoint
- EllipseVisualizer: golden-ratio ellipses along the body skeleton
- SkeletonVisualizer: thin skeleton lines and keypoint dots
- PlaceholderVisualizer: filled circle in the middle of the surface
"""

from typing import Callable, Dict, List, Optional, Sequence

import cv2

from .config import VisualizerConfig
from .geometry import (
    COCO_SKELETON, GOLDEN_RATIO, SCHLEMER_CONNECTIONS, ConnectionSpec,
    resolve_ellipses, resolve_pose_list, resolve_segments, resolve_targets,
)
from .keypoints import Pose
from .render import BLUE, RED, WHITE, Color, Renderer
from .springs import MidpointSpringSolver, WobbleSpringSolver
from .trail import DecayingTrail, NoTrail, TrailBuffer, TrailPolicy


class Visualizer:
    """
    Common interface: draw(renderer, poses, base_length, config, time_s).

    draw() returns the number of primitives drawn this frame.
    """

    def __init__(self, name: str, trail: TrailPolicy = NoTrail()):
        self.name = name
        self.trail_policy = trail
        self.trail: Optional[TrailBuffer] = (
            TrailBuffer.from_policy(trail) if isinstance(trail, DecayingTrail) else None
        )
        self._show_trail = False

    @property
    def supports_trail(self) -> bool:
        return self.trail is not None

    @property
    def show_trail(self) -> bool:
        return self._show_trail and self.trail is not None

    def set_trail_enabled(self, enabled: bool) -> bool:
        """Switch trails on or off; switching off drops the history. NoTrail variants stay off."""
        if self.trail is None:
            self._show_trail = False
            return False
        self._show_trail = bool(enabled)
        if not self._show_trail:
            self.trail.clear()
        return self._show_trail

    def update_trail_parameters(self, interval: int, max_age: int) -> None:
        if self.trail is not None:
            self.trail.update_parameters(interval=interval, max_age=max_age)

    def reset(self) -> None:
        if self.trail is not None:
            self.trail.clear()

    def draw(
        self,
        renderer: Renderer,
        poses: Sequence[Pose],
        base_length: float,
        config: VisualizerConfig,
        time_s: float = 0.0
    ) -> int:
        raise NotImplementedError

    def _draw_trail(
        self,
        renderer: Renderer,
        poses: Sequence[Pose],
        base_length: float,
        color: Color,
        connections: Sequence[ConnectionSpec]
    ) -> int:
        if not self.show_trail or base_length == 0 or not poses:
            return 0
        policy = self.trail_policy
        faded = self.trail.advance(lambda: resolve_pose_list(poses, connections, base_length))
        return renderer.trail(
            faded, color,
            stroke_weight=policy.stroke_weight,
            opacity=policy.opacity,
            fade_width=policy.fade_width,
        )


class StickVisualizer(Visualizer):
    """Rigid Schlemmer sticks in one color with an optional decaying trail."""

    def __init__(
        self,
        name: str,
        color: Color = WHITE,
        trail: TrailPolicy = DecayingTrail(),
        stroke_weight: float = 6.0,
        connections: Sequence[ConnectionSpec] = SCHLEMER_CONNECTIONS
    ):
        super().__init__(name, trail)
        self.color = color
        self.stroke_weight = stroke_weight
        self.connections = tuple(connections)

    def draw(self, renderer, poses, base_length, config, time_s=0.0):
        if base_length == 0 or not poses:
            return 0
        drawn = 0
        for pose in poses:
            for segment in resolve_segments(pose, self.connections, base_length):
                renderer.segment(segment, self.color, self.stroke_weight)
                drawn += 1
        drawn += self._draw_trail(renderer, poses, base_length, self.color, self.connections)
        return drawn


class SpringyStickVisualizer(Visualizer):
    """
    Sticks drawn as wobbling cubic beziers.

    One WobbleSpringSolver per pose index; elasticity is read from the
    shared config every frame.
    """

    def __init__(
        self,
        name: str,
        color: Color = WHITE,
        trail: TrailPolicy = DecayingTrail(opacity=128.0, stroke_weight=2.0, fade_width=False),
        stroke_weight: float = 4.0,
        connections: Sequence[ConnectionSpec] = SCHLEMER_CONNECTIONS
    ):
        super().__init__(name, trail)
        self.color = color
        self.stroke_weight = stroke_weight
        self.connections = tuple(connections)
        self.solvers: List[WobbleSpringSolver] = []

    def _solver(self, index: int) -> WobbleSpringSolver:
        while len(self.solvers) <= index:
            self.solvers.append(WobbleSpringSolver(len(self.connections)))
        return self.solvers[index]

    def draw(self, renderer, poses, base_length, config, time_s=0.0):
        if base_length == 0 or not poses:
            return 0
        drawn = 0
        for i, pose in enumerate(poses):
            solver = self._solver(i)
            solver.elasticity = config.elasticity
            solver.step(resolve_targets(pose, self.connections, base_length), time_s)
            for curve in solver.curves():
                renderer.bezier(curve, self.color, self.stroke_weight)
                drawn += 1
        drawn += self._draw_trail(renderer, poses, base_length, self.color, self.connections)
        return drawn

    def reset(self) -> None:
        super().reset()
        self.solvers = []


class SpringSplineVisualizer(Visualizer):
    """
    Sticks drawn as two chained beziers through a sprung midpoint.

    Hardness, damping and midpoint hardness come from the shared config.
    """

    def __init__(
        self,
        name: str,
        color: Color = WHITE,
        stroke_weight: float = 4.0,
        connections: Sequence[ConnectionSpec] = SCHLEMER_CONNECTIONS
    ):
        super().__init__(name, NoTrail())
        self.color = color
        self.stroke_weight = stroke_weight
        self.connections = tuple(connections)
        self.solvers: List[MidpointSpringSolver] = []

    def _solver(self, index: int) -> MidpointSpringSolver:
        while len(self.solvers) <= index:
            self.solvers.append(MidpointSpringSolver(len(self.connections)))
        return self.solvers[index]

    def draw(self, renderer, poses, base_length, config, time_s=0.0):
        if base_length == 0 or not poses:
            return 0
        drawn = 0
        for i, pose in enumerate(poses):
            solver = self._solver(i)
            solver.hardness = config.spring_hardness
            solver.damping = config.spring_damping
            solver.mid_hardness = config.mid_point_hardness
            solver.step(resolve_targets(pose, self.connections, base_length))
            for curve in solver.curves():
                renderer.bezier(curve, self.color, self.stroke_weight)
                drawn += 1
        return drawn

    def reset(self) -> None:
        super().reset()
        self.solvers = []


class EllipseVisualizer(Visualizer):
    """Head ellipse plus one ellipse per body edge; offset_multiplier enlarges them."""

    def __init__(
        self,
        name: str,
        color: Color = WHITE,
        offset_multiplier: float = 1.0,
        filled: bool = False,
        stroke_weight: float = 1.0
    ):
        super().__init__(name, NoTrail())
        self.color = color
        self.offset_multiplier = offset_multiplier
        self.filled = filled
        self.stroke_weight = stroke_weight

    def draw(self, renderer, poses, base_length, config, time_s=0.0):
        drawn = 0
        for pose in poses:
            for shape in resolve_ellipses(pose, COCO_SKELETON, self.offset_multiplier):
                renderer.ellipse(shape, self.color, self.stroke_weight, filled=self.filled)
                drawn += 1
        return drawn


class SkeletonVisualizer(Visualizer):
    """Thin skeleton lines and small keypoint dots, for debugging the detector."""

    def __init__(self, name: str, color: Color = (200, 200, 200), dot_radius: float = 2.0):
        super().__init__(name, NoTrail())
        self.color = color
        self.dot_radius = dot_radius

    def draw(self, renderer, poses, base_length, config, time_s=0.0):
        drawn = 0
        for pose in poses:
            for a, b in COCO_SKELETON:
                pa = pose[a]
                pb = pose[b]
                if pa.is_usable and pb.is_usable:
                    renderer.line((pa.x, pa.y), (pb.x, pb.y), self.color, width=1)
                    drawn += 1
            for kp in pose.keypoints:
                if kp.is_usable:
                    renderer.circle((kp.x, kp.y), self.dot_radius, self.color, filled=True)
                    drawn += 1
        return drawn


class PlaceholderVisualizer(Visualizer):
    """White disc centered on the surface; ignores poses."""

    def __init__(self, name: str = "placeholder", circle_size: int = 100, color: Color = WHITE):
        super().__init__(name, NoTrail())
        self.circle_size = circle_size
        self.color = color

    def draw(self, renderer, poses, base_length, config, time_s=0.0):
        center = (renderer.width // 2, renderer.height // 2)
        cv2.circle(renderer.canvas, center, max(1, self.circle_size // 2), self.color, -1, cv2.LINE_AA)
        return 1


VISUALIZER_PRESETS: Dict[str, Callable[[], Visualizer]] = {
    "white": lambda: StickVisualizer("white", WHITE),
    "red": lambda: StickVisualizer("red", RED),
    "blue": lambda: StickVisualizer("blue", BLUE),
    "clear": lambda: StickVisualizer("clear", WHITE, trail=NoTrail()),
    "springy": lambda: SpringyStickVisualizer("springy", WHITE),
    "spring_spline": lambda: SpringSplineVisualizer("spring_spline", WHITE),
    "ellipses": lambda: EllipseVisualizer("ellipses", WHITE),
    "contour": lambda: EllipseVisualizer("contour", WHITE, offset_multiplier=GOLDEN_RATIO),
    "skeleton": lambda: SkeletonVisualizer("skeleton"),
    "placeholder": lambda: PlaceholderVisualizer("placeholder"),
}

DEFAULT_CYCLE = ("white", "red", "blue")


def create_visualizer(name: str) -> Visualizer:
    """
    Build a preset visual variant by name.

    Raises:
        ValueError: If the name is not a known preset
    """
    factory = VISUALIZER_PRESETS.get(name)
    if factory is None:
        known = ", ".join(sorted(VISUALIZER_PRESETS))
        raise ValueError(f"Unknown visualizer: {name} (known: {known})")
    return factory()


def create_visualizers(names: Sequence[str] = DEFAULT_CYCLE) -> List[Visualizer]:
    return [create_visualizer(name) for name in names]
