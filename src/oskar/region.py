"""
Detection mask: polygon region that accepts or rejects whole poses.

Provides functionality to:
- Test points against a polygon (even-odd ray casting)
- Filter pose lists by the share of keypoints inside the polygon
- Edit the mask polygon (add / move / clear points)
- Persist the mask as a small JSON document
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .keypoints import Pose


Point = Tuple[float, float]


class ThresholdRule(str, Enum):
    """How many keypoints must lie inside the region for a pose to survive."""
    QUARTER_OF_ALL = "quarter_of_all"
    HALF_OF_VISIBLE = "half_of_visible"


def _xy(point: Any) -> Point:
    if isinstance(point, dict):
        return float(point["x"]), float(point["y"])
    if hasattr(point, "x") and hasattr(point, "y"):
        return float(point.x), float(point.y)
    return float(point[0]), float(point[1])


def point_in_polygon(x: float, y: float, polygon: Sequence[Any]) -> bool:
    """
    Even-odd test: a horizontal ray towards +x crosses the boundary an odd
    number of times. Edges are half-open in y, so a ray through a vertex is
    counted once.
    """
    inside = False
    n = len(polygon)
    if n == 0:
        return False

    j = n - 1
    for i in range(n):
        xi, yi = _xy(polygon[i])
        xj, yj = _xy(polygon[j])
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def pose_passes_region(
    pose: Pose,
    region: Sequence[Any],
    rule: ThresholdRule = ThresholdRule.QUARTER_OF_ALL
) -> bool:
    inside = 0
    usable = 0
    for kp in pose.keypoints:
        if not kp.is_usable:
            continue
        usable += 1
        if point_in_polygon(kp.x, kp.y, region):
            inside += 1

    if rule == ThresholdRule.HALF_OF_VISIBLE:
        return usable > 0 and inside / usable >= 0.5
    return inside >= len(pose.keypoints) / 4


def filter_poses(
    poses: Sequence[Pose],
    region: Sequence[Any],
    enabled: bool,
    rule: ThresholdRule = ThresholdRule.QUARTER_OF_ALL
) -> List[Pose]:
    """
    Keep only poses that sit inside the region.

    Args:
        poses: Candidate poses
        region: Polygon vertices in keypoint coordinates
        enabled: Mask switch; a disabled mask keeps everything
        rule: Survival threshold

    Returns:
        Surviving poses in input order
    """
    if not enabled or len(region) < 3:
        return list(poses)
    return [pose for pose in poses if pose_passes_region(pose, region, rule)]


@dataclass
class DetectionMask:
    """
    Editable polygon plus enabled flag, in source (video) coordinates.

    Edits come from the UI thread while filter() runs on the pose source's
    thread, so edits replace the point list instead of mutating it.
    """
    points: List[Point] = field(default_factory=list)
    enabled: bool = False

    @property
    def is_active(self) -> bool:
        return self.enabled and len(self.points) >= 3

    def add_point(self, x: float, y: float) -> int:
        points = self.points + [(float(x), float(y))]
        self.points = points
        return len(points) - 1

    def move_point(self, index: int, x: float, y: float) -> None:
        if not 0 <= index < len(self.points):
            raise IndexError(f"mask point {index} out of range")
        points = list(self.points)
        points[index] = (float(x), float(y))
        self.points = points

    def nearest_point(self, x: float, y: float, radius: float = 25.0) -> Optional[int]:
        """Index of the first point within radius of (x, y), or None."""
        r2 = radius * radius
        for i, (px, py) in enumerate(self.points):
            if (px - x) ** 2 + (py - y) ** 2 < r2:
                return i
        return None

    def clear(self) -> None:
        self.points = []
        self.enabled = False

    def filter(
        self,
        poses: Sequence[Pose],
        rule: ThresholdRule = ThresholdRule.QUARTER_OF_ALL
    ) -> List[Pose]:
        return filter_poses(poses, self.points, self.enabled, rule)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": [{"x": x, "y": y} for x, y in self.points],
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectionMask":
        if not isinstance(data, dict):
            raise ValueError("mask data must be an object")
        try:
            points = [_xy(p) for p in data.get("points") or []]
        except (KeyError, TypeError, IndexError, ValueError) as e:
            raise ValueError(f"invalid mask point: {e}") from e
        return cls(points=points, enabled=bool(data.get("enabled", False)))

    def save(self, filepath: str) -> None:
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> "DetectionMask":
        """
        Load a saved mask. A missing file gives an empty, disabled mask.

        Raises:
            ValueError: If the file is not a valid mask document
        """
        path = Path(filepath)
        if not path.exists():
            return cls()
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid mask file {filepath}: {e}") from e
        return cls.from_dict(data)
