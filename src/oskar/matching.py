"""
Frame-to-frame pose correspondence.

The pose model reports people in no particular order. Positional matching
keeps that order; nearest-centroid matching pairs each new pose with the
previous pose whose centroid is closest, so smoothing blends a person only
with their own history even when someone leaves the frame.
"""

from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment
from scipy.spatial.distance import cdist

from .keypoints import Pose


# Cost used for poses without any usable keypoint
UNMATCHABLE_COST = 1e9


class PoseMatching(str, Enum):
    POSITIONAL = "positional"
    NEAREST_CENTROID = "nearest_centroid"


def _centroids(poses: Sequence[Pose]) -> np.ndarray:
    out = np.full((len(poses), 2), np.nan)
    for i, pose in enumerate(poses):
        c = pose.centroid()
        if c is not None:
            out[i] = c
    return out


def pair_with_history(
    new_poses: Sequence[Pose],
    previous_poses: Sequence[Pose],
    method: PoseMatching = PoseMatching.POSITIONAL
) -> Tuple[List[Pose], List[Optional[Pose]]]:
    """
    Pair each new pose with the previous pose it continues.

    Args:
        new_poses: Poses from the latest detection
        previous_poses: Smoothed poses from the previous detection
        method: Matching strategy

    Returns:
        (ordered, history) of equal length. history[i] is the previous pose
        that ordered[i] continues, or None for a newcomer. Nearest-centroid
        ordering puts matched poses first in previous-list order, then
        newcomers in detection order.
    """
    method = PoseMatching(method)
    if method == PoseMatching.POSITIONAL or not previous_poses or not new_poses:
        ordered = list(new_poses)
        history = [previous_poses[i] if i < len(previous_poses) else None
                   for i in range(len(ordered))]
        return ordered, history

    cost = cdist(_centroids(previous_poses), _centroids(new_poses))
    cost[~np.isfinite(cost)] = UNMATCHABLE_COST

    rows, cols = linear_sum_assignment(cost)
    pairs = sorted((int(r), int(c)) for r, c in zip(rows, cols)
                   if cost[r, c] < UNMATCHABLE_COST)

    ordered = [new_poses[c] for _, c in pairs]
    history = [previous_poses[r] for r, _ in pairs]
    used = {c for _, c in pairs}
    for i, pose in enumerate(new_poses):
        if i not in used:
            ordered.append(pose)
            history.append(None)
    return ordered, history


def match_poses(
    new_poses: Sequence[Pose],
    previous_poses: Sequence[Pose],
    method: PoseMatching = PoseMatching.POSITIONAL
) -> List[Pose]:
    """Reorder new poses to line up with the previous list."""
    ordered, _ = pair_with_history(new_poses, previous_poses, method)
    return ordered
