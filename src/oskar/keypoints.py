"""
Keypoint and pose data model.

Provides:
- Keypoint / Pose dataclasses for the 17-point body model
- Index constants and names in the pose model's fixed order
- Structural cloning of pose lists (previous-frame snapshots)
- Conversion from/to the dict format produced by the pose model and logs
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np


CONFIDENCE_THRESHOLD = 0.1

NOSE = 0
LEFT_EYE = 1
RIGHT_EYE = 2
LEFT_EAR = 3
RIGHT_EAR = 4
LEFT_SHOULDER = 5
RIGHT_SHOULDER = 6
LEFT_WRIST = 7
RIGHT_WRIST = 8
LEFT_ELBOW = 9
RIGHT_ELBOW = 10
LEFT_HIP = 11
RIGHT_HIP = 12
LEFT_KNEE = 13
RIGHT_KNEE = 14
LEFT_ANKLE = 15
RIGHT_ANKLE = 16

KEYPOINT_NAMES = [
    "nose", "left_eye", "right_eye", "left_ear", "right_ear",
    "left_shoulder", "right_shoulder",
    "left_wrist", "right_wrist",
    "left_elbow", "right_elbow",
    "left_hip", "right_hip",
    "left_knee", "right_knee",
    "left_ankle", "right_ankle",
]

NUM_KEYPOINTS = len(KEYPOINT_NAMES)


@dataclass
class Keypoint:
    """Single detected body keypoint."""
    x: float
    y: float
    confidence: float
    name: str = ""

    @property
    def is_usable(self) -> bool:
        return self.confidence > CONFIDENCE_THRESHOLD

    def copy(self) -> "Keypoint":
        return Keypoint(self.x, self.y, self.confidence, self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "confidence": self.confidence,
            "name": self.name,
        }


@dataclass
class Pose:
    """One person's keypoints in the fixed 17-point order."""
    keypoints: List[Keypoint] = field(default_factory=list)

    def __getitem__(self, index: int) -> Keypoint:
        return self.keypoints[index]

    def __len__(self) -> int:
        return len(self.keypoints)

    def copy(self) -> "Pose":
        return Pose(keypoints=[kp.copy() for kp in self.keypoints])

    def usable_count(self) -> int:
        return sum(1 for kp in self.keypoints if kp.is_usable)

    def xy(self) -> np.ndarray:
        """Nx2 array of keypoint coordinates."""
        return np.array([[kp.x, kp.y] for kp in self.keypoints], dtype=np.float64).reshape(-1, 2)

    def centroid(self) -> Optional[np.ndarray]:
        """Mean position of usable keypoints, or None if none are usable."""
        usable = [[kp.x, kp.y] for kp in self.keypoints if kp.is_usable]
        if not usable:
            return None
        return np.mean(np.asarray(usable, dtype=np.float64), axis=0)

    def to_dict(self) -> Dict[str, Any]:
        return {"keypoints": [kp.to_dict() for kp in self.keypoints]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pose":
        """
        Build a pose from the detector/log dict format.

        Args:
            data: {"keypoints": [{"x", "y", "confidence", "name"}, ...]}

        Raises:
            ValueError: If the dict has no keypoint list, the list does not hold
                exactly 17 keypoints, or a keypoint lacks coordinates
        """
        raw = data.get("keypoints") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            raise ValueError("pose dict must contain a 'keypoints' list")
        _check_count(len(raw))

        keypoints = []
        for i, kp in enumerate(raw):
            if not isinstance(kp, dict) or "x" not in kp or "y" not in kp:
                raise ValueError(f"keypoint {i} must have 'x' and 'y'")
            keypoints.append(Keypoint(
                x=float(kp["x"]),
                y=float(kp["y"]),
                confidence=float(kp.get("confidence", kp.get("score", 0.0))),
                name=str(kp.get("name", KEYPOINT_NAMES[i])),
            ))
        return cls(keypoints=keypoints)

    @classmethod
    def from_array(cls, xyc: np.ndarray) -> "Pose":
        """Build a pose from a 17x3 (x, y, confidence) array."""
        arr = np.asarray(xyc, dtype=np.float64).reshape(-1, 3)
        _check_count(len(arr))
        return cls(keypoints=[
            Keypoint(
                x=float(row[0]),
                y=float(row[1]),
                confidence=float(row[2]),
                name=KEYPOINT_NAMES[i],
            )
            for i, row in enumerate(arr)
        ])


def _check_count(count: int) -> None:
    if count != NUM_KEYPOINTS:
        raise ValueError(f"pose must have {NUM_KEYPOINTS} keypoints, got {count}")


def clone_poses(poses: Sequence[Pose]) -> List[Pose]:
    """Independent structural copy of a pose list."""
    return [pose.copy() for pose in poses]


def poses_from_dicts(items: Sequence[Any]) -> List[Pose]:
    """
    Accept a mixed list of Pose objects and pose dicts.

    Raises:
        ValueError: If a dict is malformed or any pose is not 17 keypoints long
    """
    poses = []
    for item in items:
        if isinstance(item, Pose):
            _check_count(len(item))
            poses.append(item)
        else:
            poses.append(Pose.from_dict(item))
    return poses


def poses_to_dicts(poses: Sequence[Pose]) -> List[Dict[str, Any]]:
    return [pose.to_dict() for pose in poses]
