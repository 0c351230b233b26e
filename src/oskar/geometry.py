"""
Stick and ellipse geometry anchored to pose keypoints.

Provides functionality to:
- Describe the fixed Schlemmer stick connection table
- Resolve a pose into stick segments scaled by the calibrated base length
- Calibrate the base length from a standing pose
- Resolve golden-ratio ellipses along the body skeleton
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .keypoints import (
    Pose, NOSE, LEFT_EAR, RIGHT_EAR, LEFT_ANKLE, RIGHT_ANKLE,
)


GOLDEN_RATIO = 1.618


@dataclass(frozen=True)
class ConnectionSpec:
    """One stick: anchored at `lower`, pointing towards `upper`."""
    lower: int
    upper: int
    centered: bool = False
    length_ratio: float = 1.0


SCHLEMER_CONNECTIONS: Tuple[ConnectionSpec, ...] = (
    ConnectionSpec(16, 14, False, 0.75),
    ConnectionSpec(14, 12, False, 1.5),
    ConnectionSpec(6, 10, False, 1.5),
    ConnectionSpec(12, 6, False, 1.5),
    ConnectionSpec(15, 13, False, 0.75),
    ConnectionSpec(13, 11, False, 1.5),
    ConnectionSpec(5, 9, False, 1.5),
    ConnectionSpec(11, 5, False, 1.5),
    ConnectionSpec(5, 6, True, 0.75),
)

# Body skeleton edges as reported by the pose model
COCO_SKELETON: Tuple[Tuple[int, int], ...] = (
    (0, 1), (0, 2), (1, 3), (2, 4),
    (5, 6), (5, 7), (7, 9), (6, 8), (8, 10),
    (5, 11), (6, 12), (11, 12),
    (11, 13), (13, 15), (12, 14), (14, 16),
)


@dataclass
class Segment:
    """Line segment in source coordinates."""
    start_x: float
    start_y: float
    end_x: float
    end_y: float

    @property
    def start(self) -> Tuple[float, float]:
        return (self.start_x, self.start_y)

    @property
    def end(self) -> Tuple[float, float]:
        return (self.end_x, self.end_y)

    @property
    def midpoint(self) -> Tuple[float, float]:
        return ((self.start_x + self.end_x) / 2, (self.start_y + self.end_y) / 2)

    @property
    def length(self) -> float:
        return math.hypot(self.end_x - self.start_x, self.end_y - self.start_y)

    def to_dict(self) -> dict:
        return {
            "start_x": self.start_x,
            "start_y": self.start_y,
            "end_x": self.end_x,
            "end_y": self.end_y,
        }


@dataclass
class EllipseShape:
    """Rotated ellipse; `angle` in radians, axes are full lengths."""
    center_x: float
    center_y: float
    major: float
    minor: float
    angle: float


def resolve_connection(
    pose: Pose,
    connection: ConnectionSpec,
    base_length: float
) -> Optional[Segment]:
    """Segment for one connection, or None if it cannot be drawn this frame."""
    if base_length == 0:
        return None

    p1 = pose[connection.lower]
    p2 = pose[connection.upper]
    if not (p1.is_usable and p2.is_usable):
        return None

    dir_x = p2.x - p1.x
    dir_y = p2.y - p1.y
    dir_length = math.sqrt(dir_x * dir_x + dir_y * dir_y)
    if dir_length <= 0:
        return None

    dir_x /= dir_length
    dir_y /= dir_length
    length = base_length * connection.length_ratio

    if connection.centered:
        cx = (p1.x + p2.x) / 2
        cy = (p1.y + p2.y) / 2
        half = length / 2
        return Segment(cx - dir_x * half, cy - dir_y * half, cx + dir_x * half, cy + dir_y * half)

    return Segment(p1.x, p1.y, p1.x + dir_x * length, p1.y + dir_y * length)


def resolve_targets(
    pose: Pose,
    connections: Sequence[ConnectionSpec],
    base_length: float
) -> List[Optional[Segment]]:
    """One entry per connection, None where the connection was skipped."""
    return [resolve_connection(pose, c, base_length) for c in connections]


def resolve_segments(
    pose: Pose,
    connections: Sequence[ConnectionSpec],
    base_length: float
) -> List[Segment]:
    """
    Resolve a pose into stick segments.

    Args:
        pose: 17-keypoint pose in source coordinates
        connections: Connection table
        base_length: Calibrated stick length (0 = uncalibrated)

    Returns:
        Segments in connection-table order; skipped connections are omitted
    """
    if base_length == 0:
        return []
    return [s for s in resolve_targets(pose, connections, base_length) if s is not None]


def resolve_pose_list(
    poses: Sequence[Pose],
    connections: Sequence[ConnectionSpec],
    base_length: float
) -> List[Segment]:
    segments: List[Segment] = []
    for pose in poses:
        segments.extend(resolve_segments(pose, connections, base_length))
    return segments


def calculate_base_length(pose: Pose, scale: float = 1.0) -> Optional[float]:
    """
    Distance from the nose to the ankle midpoint (or the one visible ankle).

    Returns:
        Scaled length, or None when the nose or both ankles are not usable
    """
    nose = pose[NOSE]
    left = pose[LEFT_ANKLE]
    right = pose[RIGHT_ANKLE]

    if not nose.is_usable or not (left.is_usable or right.is_usable):
        return None

    if left.is_usable and right.is_usable:
        ankle_x = (left.x + right.x) / 2
        ankle_y = (left.y + right.y) / 2
    elif left.is_usable:
        ankle_x, ankle_y = left.x, left.y
    else:
        ankle_x, ankle_y = right.x, right.y

    return math.hypot(nose.x - ankle_x, nose.y - ankle_y) * scale


def _ellipse_between(p1, p2, inverted: bool, multiplier: float) -> Optional[EllipseShape]:
    dx = p2.x - p1.x
    dy = p2.y - p1.y
    distance = math.sqrt(dx * dx + dy * dy)
    if distance <= 0:
        return None

    if inverted:
        minor = distance
        major = distance * GOLDEN_RATIO
    else:
        major = distance
        minor = distance / GOLDEN_RATIO

    return EllipseShape(
        center_x=(p1.x + p2.x) / 2,
        center_y=(p1.y + p2.y) / 2,
        major=major * multiplier,
        minor=minor * multiplier,
        angle=math.atan2(dy, dx),
    )


def resolve_ellipses(
    pose: Pose,
    skeleton: Sequence[Tuple[int, int]] = COCO_SKELETON,
    offset_multiplier: float = 1.0
) -> List[EllipseShape]:
    """
    Head ellipse between the ears plus one ellipse per body edge.

    Face edges (touching nose or eyes) are skipped. With offset_multiplier
    set to the golden ratio this produces the enlarged "unified contour".
    """
    shapes: List[EllipseShape] = []

    left_ear = pose[LEFT_EAR]
    right_ear = pose[RIGHT_EAR]
    if left_ear.is_usable and right_ear.is_usable:
        head = _ellipse_between(left_ear, right_ear, True, offset_multiplier)
        if head is not None:
            shapes.append(head)

    for a, b in skeleton:
        if a <= 2 or b <= 2:
            continue
        pa = pose[a]
        pb = pose[b]
        if pa.is_usable and pb.is_usable:
            shape = _ellipse_between(pa, pb, False, offset_multiplier)
            if shape is not None:
                shapes.append(shape)

    return shapes
