"""
Stage pipeline that ties detection and rendering together.

Provides the complete chain:
- Pose source → Smoothing → Detection mask → Published pose list (PoseStream)
- Published pose list → Visual variant → Renderer, once per surface (StagePipeline)
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import VideoTransform, VisualizerConfig
from .geometry import calculate_base_length
from .keypoints import Pose, poses_from_dicts
from .logger import PoseLogger
from .matching import PoseMatching, pair_with_history
from .metrics import MetricsCollector
from .region import DetectionMask
from .render import BLACK, Color, Renderer
from .smoothing import KeypointSmoother
from .visualizer import DEFAULT_CYCLE, Visualizer, create_visualizers


class PoseStream:
    """
    Receives detections from the pose source and publishes the pose list
    the render loop draws.

    publish() may run on the pose source's thread; snapshot() is called from
    the render loop. The new list is built outside the lock and swapped in
    under it, so the render loop never sees a half-written list.

    Usage:
        stream = PoseStream(config, mask)
        stream.set_error_callback(on_error)
        source.start(stream.publish)
        ...
        poses = stream.snapshot()
    """

    def __init__(
        self,
        config: Optional[VisualizerConfig] = None,
        mask: Optional[DetectionMask] = None,
        logger: Optional[PoseLogger] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.config = config or VisualizerConfig()
        self.mask = mask or DetectionMask()
        self.logger = logger
        self.metrics = metrics or MetricsCollector()
        self.smoother = KeypointSmoother(self.config.smoothing_factor)

        self._lock = threading.Lock()
        self._poses: List[Pose] = []
        self._base_length = 0.0
        self._detection_count = 0

        self._pose_callback: Optional[Callable[[List[Pose]], None]] = None
        self._error_callback: Optional[Callable[[Exception], None]] = None
        self._calibration_callback: Optional[Callable[[float], None]] = None

    def set_pose_callback(self, callback: Callable[[List[Pose]], None]) -> None:
        """Set callback for every published pose list."""
        self._pose_callback = callback

    def set_error_callback(self, callback: Callable[[Exception], None]) -> None:
        """Set callback for errors raised while processing a detection."""
        self._error_callback = callback

    def set_calibration_callback(self, callback: Callable[[float], None]) -> None:
        """Set callback for base length changes."""
        self._calibration_callback = callback

    def publish(self, raw_poses: Sequence[Any], timestamp: Optional[float] = None) -> List[Pose]:
        """
        Process one detection.

        Args:
            raw_poses: Pose objects or pose dicts from the pose source
            timestamp: Optional source timestamp (seconds), kept in the log

        Returns:
            The published pose list (empty if processing failed and an
            error callback handled the failure)

        Raises:
            Exception: Whatever processing raised, when no error callback is set
        """
        try:
            poses = poses_from_dicts(raw_poses)

            history = None
            method = PoseMatching(self.config.pose_matching)
            if method != PoseMatching.POSITIONAL:
                poses, history = pair_with_history(poses, self.smoother.previous, method)

            # The smoother keeps a clone of the unmasked result as history
            smoothed = self.smoother.update(poses, self.config.smoothing_factor, history)
            published = self.mask.filter(smoothed, self.config.mask_rule)

            with self._lock:
                self._poses = published
                self._detection_count += 1
                needs_calibration = self._base_length == 0

            if needs_calibration and published:
                self.calibrate(published)

            if self.logger and self.logger.is_recording:
                self.logger.log_detection(published, timestamp)

            self.metrics.record_detection(len(poses), len(published))

            if self._pose_callback:
                self._pose_callback(published)

            return published

        except Exception as e:
            self.metrics.record_error()
            if self._error_callback is None:
                raise
            self._error_callback(e)
            return []

    def snapshot(self) -> List[Pose]:
        """Current published pose list (treat as read-only)."""
        with self._lock:
            return self._poses

    @property
    def base_length(self) -> float:
        with self._lock:
            return self._base_length

    @property
    def detection_count(self) -> int:
        with self._lock:
            return self._detection_count

    def calibrate(self, poses: Optional[Sequence[Pose]] = None) -> float:
        """
        Measure the base length from the first pose.

        Keeps the previous value when the nose or both ankles are not usable.

        Returns:
            Current base length (0 = uncalibrated)
        """
        if poses is None:
            poses = self.snapshot()
        if not poses:
            return self.base_length

        length = calculate_base_length(poses[0], self.config.base_length_scale)
        if length is None:
            return self.base_length

        with self._lock:
            self._base_length = length

        if self.logger and self.logger.is_recording:
            self.logger.log_event("calibration", {"base_length": length})
        if self._calibration_callback:
            self._calibration_callback(length)
        return length

    def recalibrate(self) -> float:
        """Forget the base length and measure it again from the current poses."""
        with self._lock:
            self._base_length = 0.0
        return self.calibrate()

    def set_base_length(self, value: float) -> None:
        with self._lock:
            self._base_length = max(0.0, float(value))

    def reset(self) -> None:
        """Drop smoothing history, published poses and calibration."""
        self.smoother.reset()
        with self._lock:
            self._poses = []
            self._base_length = 0.0


class Surface:
    """
    One output surface: a canvas plus a cycle of visual variants.

    Usage:
        surface = Surface("left", 1280, 720, create_visualizers())
        surface.cycle()                 # next variant
        surface.render(poses, base_length, config, (640, 480))
        cv2.imshow("left", surface.canvas)
    """

    def __init__(
        self,
        surface_id: str,
        width: int,
        height: int,
        visualizers: Sequence[Visualizer],
        index: int = 0,
        visible: bool = True,
        background: Color = BLACK
    ):
        if not visualizers:
            raise ValueError("a surface needs at least one visualizer")
        self.surface_id = surface_id
        self.renderer = Renderer(width, height, background)
        self.visualizers = list(visualizers)
        self.index = index % len(self.visualizers)
        self.visible = visible

    @property
    def current(self) -> Visualizer:
        return self.visualizers[self.index]

    @property
    def canvas(self) -> np.ndarray:
        return self.renderer.canvas

    def cycle(self) -> Visualizer:
        self.index = (self.index + 1) % len(self.visualizers)
        return self.current

    def select(self, name: str) -> Visualizer:
        """
        Raises:
            ValueError: If no visualizer on this surface has the name
        """
        for i, viz in enumerate(self.visualizers):
            if viz.name == name:
                self.index = i
                return viz
        raise ValueError(f"Surface {self.surface_id} has no visualizer named {name}")

    def toggle_visibility(self) -> bool:
        self.visible = not self.visible
        return self.visible

    def set_trail_enabled(self, enabled: bool) -> None:
        for viz in self.visualizers:
            viz.set_trail_enabled(enabled)

    def resize(self, width: int, height: int) -> None:
        self.renderer = Renderer(width, height, self.renderer.background)

    def render(
        self,
        poses: Sequence[Pose],
        base_length: float,
        config: VisualizerConfig,
        source_size: Tuple[int, int],
        frame: Optional[np.ndarray] = None,
        mask: Optional[DetectionMask] = None,
        time_s: float = 0.0
    ) -> int:
        """
        Draw one frame.

        Returns:
            Number of primitives drawn by the current visualizer
        """
        renderer = self.renderer
        renderer.clear()
        renderer.set_transform(VideoTransform.cover(
            source_size[0], source_size[1], renderer.width, renderer.height, config.mirror,
        ))

        if config.show_video and frame is not None:
            clip = mask.points if mask is not None and mask.is_active else None
            renderer.video(frame, clip=clip)

        viz = self.current
        viz.update_trail_parameters(config.trail_interval, config.trail_max_age)
        return viz.draw(renderer, poses, base_length, config, time_s)


class StagePipeline:
    """
    Detection stream plus one or two output surfaces, driven by the render loop.

    Usage:
        stage = StagePipeline(config)
        source.start(stage.stream.publish)
        while running:
            stage.tick(frame)
            for surface in stage.surfaces:
                show(surface.canvas)
    """

    def __init__(
        self,
        config: Optional[VisualizerConfig] = None,
        surfaces: Optional[Sequence[Surface]] = None,
        mask: Optional[DetectionMask] = None,
        logger: Optional[PoseLogger] = None,
        source_size: Tuple[int, int] = (640, 480),
        mask_path: Optional[str] = None
    ):
        self.config = config or VisualizerConfig()
        self.mask = mask or DetectionMask()
        self.mask_path = mask_path
        self.logger = logger
        self.metrics = MetricsCollector()
        self.stream = PoseStream(self.config, self.mask, logger, self.metrics)
        self.source_size = source_size

        if surfaces is None:
            w, h = self.config.canvas_width, self.config.canvas_height
            surfaces = [
                Surface("left", w, h, create_visualizers(DEFAULT_CYCLE), index=0),
                Surface("right", w, h, create_visualizers(DEFAULT_CYCLE), index=1),
            ]
        self.surfaces: List[Surface] = list(surfaces)
        for surface in self.surfaces:
            surface.set_trail_enabled(self.config.trail_enabled)

        self._start_time = time.monotonic()
        self.ticks = 0

    def tick(self, frame: Optional[np.ndarray] = None, time_s: Optional[float] = None) -> Dict[str, int]:
        """
        Render every visible surface from the current pose snapshot.

        Args:
            frame: Optional camera frame for the video background
            time_s: Clock for wobble animation (default: seconds since start)

        Returns:
            Primitives drawn per visible surface
        """
        if time_s is None:
            time_s = time.monotonic() - self._start_time
        if frame is not None:
            self.source_size = (frame.shape[1], frame.shape[0])

        poses = self.stream.snapshot()
        base_length = self.stream.base_length
        self.metrics.record_tick()
        self.ticks += 1

        drawn: Dict[str, int] = {}
        for surface in self.surfaces:
            if not surface.visible:
                continue
            count = surface.render(
                poses, base_length, self.config, self.source_size,
                frame=frame, mask=self.mask, time_s=time_s,
            )
            self.metrics.record_surface(surface.surface_id, count, surface.current.name)
            drawn[surface.surface_id] = count
        return drawn

    def _log_event(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.logger and self.logger.is_recording:
            self.logger.log_event(event_type, data)

    def get_surface(self, surface_id: str) -> Surface:
        for surface in self.surfaces:
            if surface.surface_id == surface_id:
                return surface
        raise KeyError(f"Unknown surface: {surface_id}")

    def cycle_visualizer(self, surface_index: int) -> str:
        name = self.surfaces[surface_index].cycle().name
        self._log_event("visualizer", {"surface": self.surfaces[surface_index].surface_id, "name": name})
        return name

    def toggle_surface(self, surface_index: int) -> bool:
        visible = self.surfaces[surface_index].toggle_visibility()
        self._log_event("surface_visibility", {"surface": self.surfaces[surface_index].surface_id, "visible": visible})
        return visible

    def toggle_trails(self) -> bool:
        """Toggle trails on every surface; switching off drops trail history."""
        self.config.trail_enabled = not self.config.trail_enabled
        for surface in self.surfaces:
            surface.set_trail_enabled(self.config.trail_enabled)
        self._log_event("trail", {"enabled": self.config.trail_enabled})
        return self.config.trail_enabled

    def toggle_mirror(self) -> bool:
        self.config.mirror = not self.config.mirror
        self._log_event("mirror", {"enabled": self.config.mirror})
        return self.config.mirror

    def toggle_video(self) -> bool:
        self.config.show_video = not self.config.show_video
        return self.config.show_video

    def adjust_elasticity(self, delta: float) -> float:
        value = self.config.adjust_elasticity(delta)
        self._log_event("elasticity", {"value": value})
        return value

    def recalibrate(self) -> float:
        return self.stream.recalibrate()

    def toggle_mask(self) -> bool:
        self.mask.enabled = not self.mask.enabled
        self._mask_changed()
        return self.mask.enabled

    def clear_mask(self) -> None:
        self.mask.clear()
        self._mask_changed()

    def add_mask_point(self, x: float, y: float) -> int:
        index = self.mask.add_point(x, y)
        self._mask_changed()
        return index

    def move_mask_point(self, index: int, x: float, y: float) -> None:
        self.mask.move_point(index, x, y)
        self._mask_changed()

    def _mask_changed(self) -> None:
        if self.mask_path:
            self.mask.save(self.mask_path)
        self._log_event("mask", self.mask.to_dict())

    def get_status(self) -> Dict[str, Any]:
        return {
            "ticks": self.ticks,
            "detections": self.stream.detection_count,
            "base_length": round(self.stream.base_length, 2),
            "poses": len(self.stream.snapshot()),
            "config": self.config.to_dict(),
            "mask": self.mask.to_dict(),
            "surfaces": {
                s.surface_id: {"visible": s.visible, "visualizer": s.current.name}
                for s in self.surfaces
            },
            "recording": self.logger.current_log_file if self.logger else None,
            "metrics": self.metrics.get_summary(),
        }
