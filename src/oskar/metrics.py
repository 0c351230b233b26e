"""
Metrics for the detection callback and the render loop.

Provides functionality to:
- Track detection rate and render rate (rolling FPS)
- Track staleness: render ticks since the last detection
- Track poses per detection and geometry drawn per surface
- Export metrics for monitoring (JSON, JSONL, Prometheus text format)
"""

import json
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


def _rolling_fps(times: deque) -> float:
    if len(times) >= 2:
        span = times[-1] - times[0]
        if span > 0:
            return (len(times) - 1) / span
    return 0.0


@dataclass
class SurfaceMetrics:
    """Per-surface render metrics."""
    surface_id: str
    frame_count: int = 0
    fps: float = 0.0
    primitives_last: int = 0
    primitives_avg: float = 0.0
    visualizer: str = ""

    _times: deque = field(default_factory=lambda: deque(maxlen=60))
    _primitives: deque = field(default_factory=lambda: deque(maxlen=60))


class MetricsCollector:
    """
    Thread-safe metrics collector for the stage.

    Detections are recorded from the pose source thread, render ticks from
    the draw loop.

    Usage:
        metrics = MetricsCollector()
        metrics.record_detection(pose_count=2, published_count=1)
        metrics.record_tick()
        metrics.record_surface("left", primitives=9, visualizer="white")
        summary = metrics.get_summary()
    """

    def __init__(self, history_size: int = 60):
        """
        Args:
            history_size: Number of events kept for rolling averages
        """
        self.history_size = history_size
        self._lock = threading.Lock()
        self._surfaces: Dict[str, SurfaceMetrics] = {}
        self._detection_times: deque = deque(maxlen=history_size)
        self._tick_times: deque = deque(maxlen=history_size)
        self._pose_counts: deque = deque(maxlen=history_size)
        self._start_time = time.time()
        self._detection_count = 0
        self._tick_count = 0
        self._ticks_since_detection = 0
        self._rejected_poses = 0
        self._errors = 0
        self._last_detection_at: Optional[float] = None

    def record_detection(self, pose_count: int, published_count: Optional[int] = None) -> Dict[str, Any]:
        """
        Record one detection callback.

        Args:
            pose_count: Poses reported by the pose source
            published_count: Poses left after the detection mask (default: all)

        Returns:
            Current detection metrics
        """
        if published_count is None:
            published_count = pose_count
        with self._lock:
            now = time.time()
            self._detection_count += 1
            self._detection_times.append(now)
            self._pose_counts.append(published_count)
            self._rejected_poses += max(0, pose_count - published_count)
            self._ticks_since_detection = 0
            self._last_detection_at = now
            return {
                "detection_fps": round(_rolling_fps(self._detection_times), 2),
                "poses": published_count,
                "rejected": pose_count - published_count,
            }

    def record_error(self) -> None:
        with self._lock:
            self._errors += 1

    def record_tick(self) -> int:
        """Record one render tick; returns ticks since the last detection."""
        with self._lock:
            self._tick_count += 1
            self._tick_times.append(time.time())
            self._ticks_since_detection += 1
            return self._ticks_since_detection

    def record_surface(self, surface_id: str, primitives: int, visualizer: str = "") -> None:
        """Record geometry drawn on one surface in this tick."""
        with self._lock:
            if surface_id not in self._surfaces:
                self._surfaces[surface_id] = SurfaceMetrics(
                    surface_id=surface_id,
                    _times=deque(maxlen=self.history_size),
                    _primitives=deque(maxlen=self.history_size),
                )
            surface = self._surfaces[surface_id]
            surface.frame_count += 1
            surface.visualizer = visualizer
            surface.primitives_last = primitives
            surface._times.append(time.time())
            surface._primitives.append(primitives)
            surface.fps = _rolling_fps(surface._times)
            surface.primitives_avg = sum(surface._primitives) / len(surface._primitives)

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a complete metrics summary.

        Returns:
            Dictionary containing all metrics
        """
        with self._lock:
            poses_avg = (
                sum(self._pose_counts) / len(self._pose_counts) if self._pose_counts else 0.0
            )
            detection_age = (
                time.time() - self._last_detection_at if self._last_detection_at else None
            )

            surfaces = {}
            for surface_id, s in self._surfaces.items():
                surfaces[surface_id] = {
                    "fps": round(s.fps, 2),
                    "frame_count": s.frame_count,
                    "primitives": s.primitives_last,
                    "primitives_avg": round(s.primitives_avg, 2),
                    "visualizer": s.visualizer,
                }

            return {
                "timestamp": datetime.now().isoformat(),
                "uptime_seconds": round(time.time() - self._start_time, 2),
                "detection": {
                    "fps": round(_rolling_fps(self._detection_times), 2),
                    "total": self._detection_count,
                    "poses_avg": round(poses_avg, 2),
                    "rejected_poses": self._rejected_poses,
                    "errors": self._errors,
                    "age_seconds": round(detection_age, 3) if detection_age is not None else None,
                },
                "render": {
                    "fps": round(_rolling_fps(self._tick_times), 2),
                    "total_ticks": self._tick_count,
                    "ticks_since_detection": self._ticks_since_detection,
                },
                "surfaces": surfaces,
            }

    def export_prometheus(self) -> str:
        """
        Export metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string
        """
        summary = self.get_summary()
        detection = summary["detection"]
        render = summary["render"]

        lines = [
            "# HELP oskar_detections_total Total detection callbacks",
            "# TYPE oskar_detections_total counter",
            f"oskar_detections_total {detection['total']}",
            "",
            "# HELP oskar_detection_fps Detection callbacks per second",
            "# TYPE oskar_detection_fps gauge",
            f"oskar_detection_fps {detection['fps']}",
            "",
            "# HELP oskar_detection_errors_total Detection callbacks that raised",
            "# TYPE oskar_detection_errors_total counter",
            f"oskar_detection_errors_total {detection['errors']}",
            "",
            "# HELP oskar_render_fps Render ticks per second",
            "# TYPE oskar_render_fps gauge",
            f"oskar_render_fps {render['fps']}",
            "",
            "# HELP oskar_ticks_since_detection Render ticks drawn from the same detection",
            "# TYPE oskar_ticks_since_detection gauge",
            f"oskar_ticks_since_detection {render['ticks_since_detection']}",
            "",
            "# HELP oskar_surface_primitives Primitives drawn on a surface in the last tick",
            "# TYPE oskar_surface_primitives gauge",
        ]

        for surface_id, data in summary["surfaces"].items():
            lines.append(f'oskar_surface_primitives{{surface="{surface_id}"}} {data["primitives"]}')

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._surfaces.clear()
            self._detection_times.clear()
            self._tick_times.clear()
            self._pose_counts.clear()
            self._detection_count = 0
            self._tick_count = 0
            self._ticks_since_detection = 0
            self._rejected_poses = 0
            self._errors = 0
            self._last_detection_at = None
            self._start_time = time.time()


class MetricsExporter:
    """
    Export metrics to file.
    """

    @staticmethod
    def to_json(metrics: Dict[str, Any], filepath: str) -> None:
        with open(filepath, 'w') as f:
            json.dump(metrics, f, indent=2)

    @staticmethod
    def to_jsonl(metrics: Dict[str, Any], filepath: str) -> None:
        """Append metrics as one JSONL line."""
        with open(filepath, 'a') as f:
            f.write(json.dumps(metrics) + '\n')

    @staticmethod
    def to_prometheus_file(metrics: MetricsCollector, filepath: str) -> None:
        with open(filepath, 'w') as f:
            f.write(metrics.export_prometheus())
