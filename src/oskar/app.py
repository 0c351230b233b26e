"""
Live stage application.

Opens one window per surface, feeds poses from a synthetic figure or a
recorded log into the stage pipeline and renders at the display rate.

Keys:
    1 / 2       cycle visualizer on surface 1 / 2
    ! / @       toggle surface 1 / 2
    t           toggle trails
    r           calibrate stick length from the current pose
    k           forget and recalibrate stick length
    m           toggle mirror
    b           toggle video background
    a           toggle mask editing (click to add, drag to move)
    e           enable / disable mask
    x           clear mask
    + / -       elasticity up / down
    l           start / stop recording
    p           print status
    q / Esc     quit
"""

import argparse
import json
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

import cv2
import numpy as np

from .config import load_config
from .logger import PoseLogger
from .pipeline import StagePipeline, Surface
from .region import DetectionMask
from .replay import PoseReplay
from .sim import SyntheticPoseSource
from .visualizer import VISUALIZER_PRESETS, create_visualizers


ELASTICITY_STEP = 0.1


@dataclass
class AppConfig:
    source: str = "synthetic"
    log_file: Optional[str] = None
    speed: float = 1.0
    camera: Optional[int] = None
    persons: int = 1
    seed: int = 0
    config_file: Optional[str] = None
    mask_file: Optional[str] = "mask.json"
    log_dir: str = "./logs"
    record: bool = False
    visualizers: Sequence[str] = ("white", "red", "blue")
    surfaces: int = 2
    width: Optional[int] = None
    height: Optional[int] = None
    trail: bool = False
    no_mirror: bool = False


def parse_args(argv: Optional[Sequence[str]] = None) -> AppConfig:
    parser = argparse.ArgumentParser(prog="oskar", description="Pose-driven stage visuals")
    parser.add_argument("--source", choices=("synthetic", "replay"), default="synthetic",
                        help="Pose source (default: synthetic)")
    parser.add_argument("--log-file", default=None, help="Pose log to replay (with --source replay)")
    parser.add_argument("--speed", type=float, default=1.0, help="Replay speed multiplier")
    parser.add_argument("--camera", type=int, default=None, help="Camera index for the video background")
    parser.add_argument("--persons", type=int, default=1, help="Synthetic figures")
    parser.add_argument("--seed", type=int, default=0, help="Synthetic RNG seed")
    parser.add_argument("--config", dest="config_file", default=None, help="VisualizerConfig JSON file")
    parser.add_argument("--mask-file", default="mask.json", help="Detection mask file (loaded and saved)")
    parser.add_argument("--log-dir", default="./logs", help="Directory for recordings")
    parser.add_argument("--record", action="store_true", help="Record detections from the start")
    parser.add_argument("--visualizers", default="white,red,blue",
                        help=f"Comma separated cycle ({', '.join(sorted(VISUALIZER_PRESETS))})")
    parser.add_argument("--surfaces", type=int, choices=(1, 2), default=2, help="Number of output surfaces")
    parser.add_argument("--width", type=int, default=None, help="Surface width")
    parser.add_argument("--height", type=int, default=None, help="Surface height")
    parser.add_argument("--trail", action="store_true", help="Start with trails on")
    parser.add_argument("--no-mirror", action="store_true", help="Start unmirrored")

    ns = parser.parse_args(argv)

    if ns.source == "replay" and not ns.log_file:
        parser.error("--source replay requires --log-file")
    if ns.speed <= 0:
        parser.error("--speed must be positive")

    names = [n.strip() for n in ns.visualizers.split(",") if n.strip()]
    unknown = [n for n in names if n not in VISUALIZER_PRESETS]
    if not names or unknown:
        parser.error(f"unknown visualizer(s): {', '.join(unknown) or '(none given)'}")

    return AppConfig(
        source=ns.source,
        log_file=ns.log_file,
        speed=ns.speed,
        camera=ns.camera,
        persons=ns.persons,
        seed=ns.seed,
        config_file=ns.config_file,
        mask_file=ns.mask_file or None,
        log_dir=ns.log_dir,
        record=ns.record,
        visualizers=tuple(names),
        surfaces=ns.surfaces,
        width=ns.width,
        height=ns.height,
        trail=ns.trail,
        no_mirror=ns.no_mirror,
    )


def build_stage(app: AppConfig) -> StagePipeline:
    overrides = {
        "canvas_width": app.width,
        "canvas_height": app.height,
        "trail_enabled": True if app.trail else None,
        "mirror": False if app.no_mirror else None,
    }
    config = load_config(app.config_file, overrides)
    mask = DetectionMask.load(app.mask_file) if app.mask_file else DetectionMask()

    surfaces: List[Surface] = [
        Surface(f"surface{i + 1}", config.canvas_width, config.canvas_height,
                create_visualizers(app.visualizers), index=i)
        for i in range(app.surfaces)
    ]
    logger = PoseLogger(log_dir=app.log_dir)
    return StagePipeline(config, surfaces=surfaces, mask=mask, logger=logger, mask_path=app.mask_file)


class MaskEditor:
    """Mouse handling for the mask polygon on the first surface window."""

    def __init__(self, stage: StagePipeline, radius: float = 25.0):
        self.stage = stage
        self.radius = radius
        self.active = False
        self._dragging: Optional[int] = None

    def toggle(self) -> bool:
        self.active = not self.active
        self._dragging = None
        return self.active

    def on_mouse(self, event: int, x: int, y: int, flags: int, _param=None) -> None:
        if not self.active:
            return
        transform = self.stage.surfaces[0].renderer.transform
        sx, sy = transform.invert(x, y)

        if event == cv2.EVENT_LBUTTONDOWN:
            hit = self.stage.mask.nearest_point(sx, sy, self.radius / max(transform.scale_x, 1e-9))
            if hit is None:
                self.stage.add_mask_point(sx, sy)
            else:
                self._dragging = hit
        elif event == cv2.EVENT_MOUSEMOVE and self._dragging is not None and flags & cv2.EVENT_FLAG_LBUTTON:
            self.stage.mask.move_point(self._dragging, sx, sy)
        elif event == cv2.EVENT_LBUTTONUP and self._dragging is not None:
            self.stage.move_mask_point(self._dragging, sx, sy)
            self._dragging = None


def handle_key(key: int, stage: StagePipeline, editor: MaskEditor) -> bool:
    """Apply one key press; returns False when the app should quit."""
    if key in (ord('q'), 27):
        return False

    ch = chr(key) if 0 <= key < 256 else ""
    if ch in ("1", "2") and int(ch) <= len(stage.surfaces):
        name = stage.cycle_visualizer(int(ch) - 1)
        print(f"surface {ch} -> {name}")
    elif ch in ("!", "@"):
        index = 0 if ch == "!" else 1
        if index < len(stage.surfaces):
            print(f"surface {index + 1} visible: {stage.toggle_surface(index)}")
    elif ch == "t":
        print(f"trail: {'ON' if stage.toggle_trails() else 'OFF'}")
    elif ch == "r":
        print(f"calibrated: {stage.stream.calibrate():.1f}")
    elif ch == "k":
        print(f"recalibrated: {stage.recalibrate():.1f}")
    elif ch == "m":
        print(f"mirror: {'ON' if stage.toggle_mirror() else 'OFF'}")
    elif ch == "b":
        print(f"video: {'ON' if stage.toggle_video() else 'OFF'}")
    elif ch == "a":
        print(f"mask editing: {'ON' if editor.toggle() else 'OFF'}")
    elif ch == "e":
        print(f"mask enabled: {'ON' if stage.toggle_mask() else 'OFF'}")
    elif ch == "x":
        stage.clear_mask()
        print("mask cleared")
    elif ch in ("+", "="):
        print(f"elasticity: {stage.adjust_elasticity(ELASTICITY_STEP):.2f}")
    elif ch in ("-", "_"):
        print(f"elasticity: {stage.adjust_elasticity(-ELASTICITY_STEP):.2f}")
    elif ch == "l":
        logger = stage.logger
        if logger.is_recording:
            print(f"recording stopped: {logger.stop_recording()}")
        else:
            print(f"recording to {logger.start_recording(metadata={'source_size': list(stage.source_size)})}")
    elif ch == "p":
        print(json.dumps(stage.get_status(), indent=2, default=str))
    return True


def run(app: AppConfig) -> int:
    stage = build_stage(app)
    stage.stream.set_error_callback(lambda e: print(f"detection error: {e}", file=sys.stderr))

    synthetic: Optional[SyntheticPoseSource] = None
    replay: Optional[PoseReplay] = None
    if app.source == "replay":
        replay = PoseReplay(app.log_file)
        if replay.header and replay.header.metadata.get("source_size"):
            w, h = replay.header.metadata["source_size"]
            stage.source_size = (int(w), int(h))
        replay.start_realtime_replay(
            lambda entry: stage.stream.publish(entry.poses, entry.timestamp),
            speed=app.speed, loop=True,
        )
    else:
        synthetic = SyntheticPoseSource(seed=app.seed, persons=app.persons)
        stage.source_size = synthetic.size
        synthetic.start(stage.stream.publish)

    capture = cv2.VideoCapture(app.camera) if app.camera is not None else None
    if capture is not None and not capture.isOpened():
        print(f"camera {app.camera} could not be opened; running without video", file=sys.stderr)
        capture.release()
        capture = None

    editor = MaskEditor(stage)
    windows = [f"oskar {s.surface_id}" for s in stage.surfaces]
    for name in windows:
        cv2.namedWindow(name, cv2.WINDOW_NORMAL)
    cv2.setMouseCallback(windows[0], editor.on_mouse)

    if app.record:
        print(f"recording to {stage.logger.start_recording()}")

    try:
        running = True
        while running:
            frame: Optional[np.ndarray] = None
            if capture is not None:
                ok, frame = capture.read()
                if not ok:
                    frame = None

            stage.tick(frame)

            for name, surface in zip(windows, stage.surfaces):
                if editor.active and surface is stage.surfaces[0]:
                    surface.renderer.mask_outline(stage.mask.points)
                if surface.visible:
                    cv2.imshow(name, surface.canvas)

            key = cv2.waitKey(1) & 0xFF
            if key != 0xFF:
                running = handle_key(key, stage, editor)
    except KeyboardInterrupt:
        pass
    finally:
        if synthetic:
            synthetic.stop()
        if replay:
            replay.stop()
        if capture is not None:
            capture.release()
        if stage.logger.is_recording:
            print(f"recording stopped: {stage.logger.stop_recording()}")
        cv2.destroyAllWindows()

    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    app = parse_args(argv)
    try:
        return run(app)
    except (FileNotFoundError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
