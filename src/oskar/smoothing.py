"""
Exponential smoothing of successive pose lists.

Poses are matched by list position. The smoothed output of one call is
cloned and kept as the "previous" input for the next call.
"""

from typing import List, Optional, Sequence

import numpy as np

from .keypoints import Keypoint, Pose, clone_poses


def smooth_poses(
    new_poses: Sequence[Pose],
    previous_poses: Sequence[Optional[Pose]],
    factor: float
) -> List[Pose]:
    """
    Blend new keypoint positions with the previous frame's.

    Args:
        new_poses: Poses from the latest detection
        previous_poses: Smoothed poses from the previous detection, paired by
            index; a None entry marks a pose with no history
        factor: Weight of the new position (0 = frozen, 1 = no smoothing)

    Returns:
        Smoothed pose list. Confidence and name always come from the new pose.
    """
    if len(previous_poses) == 0:
        return list(new_poses)

    smoothed: List[Pose] = []
    for i, new_pose in enumerate(new_poses):
        prev_pose = previous_poses[i] if i < len(previous_poses) else None
        if prev_pose is None:
            smoothed.append(new_pose)
            continue

        count = min(len(new_pose), len(prev_pose))
        blended = prev_pose.xy()[:count] * (1.0 - factor) + new_pose.xy()[:count] * factor

        keypoints = [
            Keypoint(
                x=float(blended[j, 0]),
                y=float(blended[j, 1]),
                confidence=new_pose[j].confidence,
                name=new_pose[j].name,
            )
            for j in range(count)
        ]
        # Keypoints the previous pose lacks are taken as-is
        keypoints.extend(kp.copy() for kp in new_pose.keypoints[count:])
        smoothed.append(Pose(keypoints=keypoints))

    return smoothed


class KeypointSmoother:
    """
    Stateful wrapper around smooth_poses.

    Usage:
        smoother = KeypointSmoother(factor=0.5)
        smoothed = smoother.update(detected_poses)
    """

    def __init__(self, factor: float = 0.5):
        self._factor = 0.5
        self.factor = factor
        self._previous: List[Pose] = []

    @property
    def factor(self) -> float:
        return self._factor

    @factor.setter
    def factor(self, value: float) -> None:
        self._factor = float(np.clip(float(value), 0.0, 1.0))

    @property
    def previous(self) -> List[Pose]:
        return self._previous

    def update(
        self,
        new_poses: Sequence[Pose],
        factor: Optional[float] = None,
        history: Optional[Sequence[Optional[Pose]]] = None
    ) -> List[Pose]:
        """
        Smooth against the stored history and remember a clone of the result.

        Args:
            new_poses: Poses from the latest detection
            factor: Optional new smoothing factor (clamped to [0, 1])
            history: Previous poses already paired with new_poses by a
                matcher; defaults to the stored list in positional order
        """
        if factor is not None:
            self.factor = factor
        previous = self._previous if history is None else history
        smoothed = smooth_poses(new_poses, previous, self._factor)
        self._previous = clone_poses(smoothed)
        return smoothed

    def reset(self) -> None:
        self._previous = []
