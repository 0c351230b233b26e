"""
OSKAR: pose-driven stage visuals.

Modules:
- keypoints: Keypoint / Pose data model
- smoothing: Exponential keypoint smoothing
- region: Detection mask (polygon filter)
- geometry: Schlemmer stick and ellipse geometry, stick length calibration
- trail: Fading motion trails
- springs: Damped spring curve solvers
- matching: Frame-to-frame pose association
- config: Runtime configuration and video transform
- render: OpenCV renderer for stage surfaces
- visualizer: Visual variants
- pipeline: Pose stream, surfaces and stage pipeline
- logger: Pose logging and recording
- replay: Pose log playback
- metrics: Performance monitoring and metrics collection
- sim: Synthetic pose source and headless runner
"""

from .keypoints import (
    Keypoint, Pose, KEYPOINT_NAMES, CONFIDENCE_THRESHOLD, clone_poses
)
from .smoothing import KeypointSmoother, smooth_poses
from .region import DetectionMask, ThresholdRule, filter_poses, point_in_polygon
from .geometry import (
    ConnectionSpec, Segment, EllipseShape, SCHLEMER_CONNECTIONS, COCO_SKELETON,
    resolve_segments, resolve_pose_list, resolve_targets, resolve_ellipses,
    calculate_base_length
)
from .trail import TrailBuffer, TrailSnapshot, NoTrail, DecayingTrail
from .springs import (
    MassPoint, Spring, BezierCurve, MidpointSpringSolver, WobbleSpringSolver, step_point
)
from .matching import PoseMatching, match_poses, pair_with_history
from .config import VisualizerConfig, VideoTransform, load_config
from .render import Renderer
from .visualizer import (
    Visualizer, StickVisualizer, SpringyStickVisualizer, SpringSplineVisualizer,
    EllipseVisualizer, SkeletonVisualizer, PlaceholderVisualizer,
    create_visualizer, create_visualizers
)
from .pipeline import PoseStream, Surface, StagePipeline
from .logger import PoseLogger, list_log_files
from .replay import PoseReplay, validate_log_integrity, DetectionEntry, EventEntry
from .metrics import MetricsCollector, MetricsExporter
from .sim import SyntheticPoseSource, run_closed_loop

__all__ = [
    # Keypoints
    "Keypoint",
    "Pose",
    "KEYPOINT_NAMES",
    "CONFIDENCE_THRESHOLD",
    "clone_poses",
    # Smoothing
    "KeypointSmoother",
    "smooth_poses",
    # Region
    "DetectionMask",
    "ThresholdRule",
    "filter_poses",
    "point_in_polygon",
    # Geometry
    "ConnectionSpec",
    "Segment",
    "EllipseShape",
    "SCHLEMER_CONNECTIONS",
    "COCO_SKELETON",
    "resolve_segments",
    "resolve_pose_list",
    "resolve_targets",
    "resolve_ellipses",
    "calculate_base_length",
    # Trail
    "TrailBuffer",
    "TrailSnapshot",
    "NoTrail",
    "DecayingTrail",
    # Springs
    "MassPoint",
    "Spring",
    "BezierCurve",
    "MidpointSpringSolver",
    "WobbleSpringSolver",
    "step_point",
    # Matching
    "PoseMatching",
    "match_poses",
    "pair_with_history",
    # Config
    "VisualizerConfig",
    "VideoTransform",
    "load_config",
    # Render
    "Renderer",
    # Visualizers
    "Visualizer",
    "StickVisualizer",
    "SpringyStickVisualizer",
    "SpringSplineVisualizer",
    "EllipseVisualizer",
    "SkeletonVisualizer",
    "PlaceholderVisualizer",
    "create_visualizer",
    "create_visualizers",
    # Pipeline
    "PoseStream",
    "Surface",
    "StagePipeline",
    # Logger / replay
    "PoseLogger",
    "list_log_files",
    "PoseReplay",
    "validate_log_integrity",
    "DetectionEntry",
    "EventEntry",
    # Metrics
    "MetricsCollector",
    "MetricsExporter",
    # Simulation
    "SyntheticPoseSource",
    "run_closed_loop",
]
