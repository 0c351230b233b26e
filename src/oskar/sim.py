"""Synthetic pose source and a headless closed-loop runner.

The synthetic source draws a standing figure that sways, waves its arms and
drifts sideways, so the stage can be exercised deterministically without a
camera or a pose model.
"""

import argparse
import json
import math
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .config import VisualizerConfig, load_config
from .keypoints import KEYPOINT_NAMES, Keypoint, Pose
from .logger import PoseLogger
from .pipeline import StagePipeline
from .region import DetectionMask
from .replay import validate_log_integrity


# Rest pose relative to the hip center, in source pixels (y grows downwards)
REST_POSE: Tuple[Tuple[float, float], ...] = (
    (0.0, -170.0),                     # nose
    (-8.0, -178.0), (8.0, -178.0),     # eyes
    (-18.0, -172.0), (18.0, -172.0),   # ears
    (-45.0, -120.0), (45.0, -120.0),   # shoulders
    (-70.0, -10.0), (70.0, -10.0),     # wrists
    (-60.0, -65.0), (60.0, -65.0),     # elbows
    (-30.0, 0.0), (30.0, 0.0),         # hips
    (-32.0, 90.0), (32.0, 90.0),       # knees
    (-34.0, 180.0), (34.0, 180.0),     # ankles
)


class SyntheticPoseSource:
    """
    Deterministic moving figure(s).

    Usage:
        source = SyntheticPoseSource(seed=1, persons=1)
        poses = source.poses_at(0)

        source.start(stream.publish, fps=30)
        ...
        source.stop()
    """

    def __init__(
        self,
        seed: int = 0,
        persons: int = 1,
        width: int = 640,
        height: int = 480,
        fps: float = 30.0,
        noise_px: float = 0.0,
        dropout: float = 0.0,
        drift_px: float = 80.0,
        wave_period_s: float = 2.0
    ):
        if persons < 0:
            raise ValueError("persons must be >= 0")
        if fps <= 0:
            raise ValueError("fps must be positive")
        if not 0.0 <= dropout <= 1.0:
            raise ValueError("dropout must be in [0, 1]")
        self.seed = seed
        self.persons = persons
        self.width = width
        self.height = height
        self.fps = fps
        self.noise_px = noise_px
        self.dropout = dropout
        self.drift_px = drift_px
        self.wave_period_s = wave_period_s

        self._stop_flag = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.frames_emitted = 0

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def _person_xy(self, person: int, t: float) -> np.ndarray:
        pts = np.array(REST_POSE, dtype=np.float64)
        phase = 2 * math.pi * t / self.wave_period_s + person * 1.3

        # Arms wave around the shoulders
        for shoulder, elbow, wrist, side in ((5, 9, 7, -1.0), (6, 10, 8, 1.0)):
            angle = side * 0.6 * math.sin(phase)
            c, s = math.cos(angle), math.sin(angle)
            rot = np.array([[c, -s], [s, c]])
            for joint in (elbow, wrist):
                pts[joint] = pts[shoulder] + rot @ (pts[joint] - pts[shoulder])

        # Upper body sway
        pts[:11, 0] += 6.0 * math.sin(phase * 0.5)

        spacing = self.width / (self.persons + 1)
        center_x = spacing * (person + 1) + self.drift_px * math.sin(2 * math.pi * t / 8.0 + person)
        center_y = self.height * 0.5 + 40.0
        pts[:, 0] += center_x
        pts[:, 1] += center_y
        return pts

    def poses_at(self, frame_index: int) -> List[Pose]:
        """Poses for one frame; the same frame index always gives the same poses."""
        rng = np.random.default_rng((self.seed, frame_index))
        t = frame_index / self.fps
        poses = []
        for person in range(self.persons):
            pts = self._person_xy(person, t)
            if self.noise_px > 0:
                pts = pts + rng.normal(0.0, self.noise_px, size=pts.shape)
            confidences = rng.uniform(0.6, 0.95, size=len(pts))
            if self.dropout > 0:
                confidences[rng.random(len(pts)) < self.dropout] = 0.0
            poses.append(Pose(keypoints=[
                Keypoint(float(x), float(y), float(c), KEYPOINT_NAMES[i])
                for i, ((x, y), c) in enumerate(zip(pts, confidences))
            ]))
        return poses

    def frames(self, count: int, start: int = 0) -> Iterator[List[Pose]]:
        for i in range(start, start + count):
            yield self.poses_at(i)

    def start(self, callback: Callable[[List[Pose]], None], max_frames: Optional[int] = None) -> None:
        """Emit poses to callback at the source frame rate on a daemon thread."""
        self._stop_flag.clear()
        self.frames_emitted = 0

        def _emit_loop():
            period = 1.0 / self.fps
            next_time = time.monotonic()
            index = 0
            while not self._stop_flag.is_set():
                if max_frames is not None and index >= max_frames:
                    break
                callback(self.poses_at(index))
                index += 1
                self.frames_emitted = index
                next_time += period
                delay = next_time - time.monotonic()
                if delay > 0:
                    self._stop_flag.wait(delay)

        self._thread = threading.Thread(target=_emit_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_flag.set()
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


def run_closed_loop(
    frames: int,
    seed: int = 0,
    persons: int = 1,
    noise_px: float = 0.0,
    dropout: float = 0.0,
    config: Optional[VisualizerConfig] = None,
    mask: Optional[DetectionMask] = None,
    out_dir: Optional[str] = None,
    renders_per_detection: int = 2
) -> Dict[str, object]:
    """
    Run detection and rendering in-process, frame by frame, without a window.

    Args:
        frames: Number of synthetic detections
        renders_per_detection: Render ticks between detections (the draw
            loop usually runs faster than the pose model)
        out_dir: If given, record a pose log there and validate it

    Returns:
        Summary with pipeline status, per-surface primitive totals and, when
        recording, the log path and its validation result
    """
    if frames <= 0:
        raise ValueError("frames must be > 0")

    config = config or VisualizerConfig()
    source = SyntheticPoseSource(
        seed=seed, persons=persons, noise_px=noise_px, dropout=dropout,
    )
    logger = PoseLogger(log_dir=out_dir) if out_dir else None
    stage = StagePipeline(config, mask=mask, logger=logger, source_size=source.size)

    log_path = None
    if logger:
        log_path = logger.start_recording(metadata={
            "source": "synthetic",
            "seed": seed,
            "persons": persons,
            "source_size": list(source.size),
        })

    totals: Dict[str, int] = {s.surface_id: 0 for s in stage.surfaces}
    for i in range(frames):
        stage.stream.publish(source.poses_at(i), timestamp=i / source.fps)
        for r in range(renders_per_detection):
            t = (i * renders_per_detection + r) / (source.fps * renders_per_detection)
            for surface_id, count in stage.tick(time_s=t).items():
                totals[surface_id] += count

    result: Dict[str, object] = {
        "frames": frames,
        "status": stage.get_status(),
        "primitives": totals,
    }
    if logger:
        result["log_metadata"] = logger.stop_recording()
        result["log_file"] = log_path
        result["log_validation"] = validate_log_integrity(log_path)
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m oskar.sim")
    parser.add_argument("--frames", type=int, required=True, help="Number of detections (>0)")
    parser.add_argument("--seed", type=int, default=0, help="RNG seed")
    parser.add_argument("--persons", type=int, default=1, help="Number of synthetic figures")
    parser.add_argument("--noise-px", type=float, default=0.0, help="Keypoint noise stddev in pixels")
    parser.add_argument("--dropout", type=float, default=0.0, help="Keypoint dropout probability [0,1]")
    parser.add_argument("--config", type=str, default=None, help="VisualizerConfig JSON file")
    parser.add_argument("--trail", action="store_true", help="Enable trails")
    parser.add_argument("--out-dir", type=str, default=None, help="Record a pose log into this directory")
    args = parser.parse_args(argv)

    if args.frames <= 0:
        print("error: --frames must be > 0", file=sys.stderr)
        return 2

    try:
        config = load_config(args.config, {"trail_enabled": True if args.trail else None})
        result = run_closed_loop(
            frames=args.frames,
            seed=args.seed,
            persons=args.persons,
            noise_px=args.noise_px,
            dropout=args.dropout,
            config=config,
            out_dir=args.out_dir,
        )
    except (ValueError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    print(json.dumps(result, indent=2, default=str))
    if args.out_dir:
        Path(args.out_dir, "summary.json").write_text(json.dumps(result, indent=2, default=str))
        if not result["log_validation"]["valid"]:
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
