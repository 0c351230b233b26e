"""
Runtime configuration shared by the pose stream, visualizers and renderer.

A single VisualizerConfig instance is passed by reference; UI controls and
sensor callbacks mutate it and every component reads it once per frame.
"""

import json
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .region import ThresholdRule
from .springs import DAMPING_RANGE, ELASTICITY_RANGE, HARDNESS_RANGE, clamp


TRAIL_INTERVAL_RANGE = (1, 120)
TRAIL_MAX_AGE_RANGE = (1, 600)


@dataclass
class VisualizerConfig:
    """Tunable parameters read every frame."""
    smoothing_factor: float = 0.5
    trail_enabled: bool = False
    trail_interval: int = 3
    trail_max_age: int = 60
    spring_hardness: float = 0.15
    spring_damping: float = 0.9
    mid_point_hardness: float = 0.12
    elasticity: float = 1.0
    mirror: bool = True
    show_video: bool = True
    mask_rule: ThresholdRule = ThresholdRule.QUARTER_OF_ALL
    base_length_scale: float = 1.0
    canvas_width: int = 1280
    canvas_height: int = 720
    pose_matching: str = "positional"

    def __post_init__(self) -> None:
        self.mask_rule = ThresholdRule(self.mask_rule)
        self.normalize()

    def normalize(self) -> "VisualizerConfig":
        """Clamp every range-bound tunable into its range."""
        self.smoothing_factor = clamp(self.smoothing_factor, (0.0, 1.0))
        self.trail_interval = int(clamp(self.trail_interval, TRAIL_INTERVAL_RANGE))
        self.trail_max_age = int(clamp(self.trail_max_age, TRAIL_MAX_AGE_RANGE))
        self.spring_hardness = clamp(self.spring_hardness, HARDNESS_RANGE)
        self.spring_damping = clamp(self.spring_damping, DAMPING_RANGE)
        self.mid_point_hardness = clamp(self.mid_point_hardness, HARDNESS_RANGE)
        self.elasticity = clamp(self.elasticity, ELASTICITY_RANGE)
        if self.pose_matching not in ("positional", "nearest_centroid"):
            raise ValueError(f"Unknown pose matching: {self.pose_matching}")
        return self

    def set_elasticity(self, value: float) -> float:
        self.elasticity = clamp(value, ELASTICITY_RANGE)
        return self.elasticity

    def adjust_elasticity(self, delta: float) -> float:
        return self.set_elasticity(self.elasticity + delta)

    def set_spring_hardness(self, value: float) -> float:
        self.spring_hardness = clamp(value, HARDNESS_RANGE)
        return self.spring_hardness

    def adjust_spring_hardness(self, delta: float) -> float:
        return self.set_spring_hardness(self.spring_hardness + delta)

    def set_spring_damping(self, value: float) -> float:
        self.spring_damping = clamp(value, DAMPING_RANGE)
        return self.spring_damping

    def adjust_spring_damping(self, delta: float) -> float:
        return self.set_spring_damping(self.spring_damping + delta)

    def set_trail_parameters(self, interval: int, max_age: int) -> None:
        self.trail_interval = int(clamp(interval, TRAIL_INTERVAL_RANGE))
        self.trail_max_age = int(clamp(max_age, TRAIL_MAX_AGE_RANGE))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mask_rule"] = self.mask_rule.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VisualizerConfig":
        """
        Build a config from a dict, ignoring unknown keys.

        Raises:
            ValueError: If a value has the wrong type
        """
        known = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            default = known[key].default
            try:
                if isinstance(default, bool):
                    kwargs[key] = bool(value)
                elif isinstance(default, int):
                    kwargs[key] = int(value)
                elif isinstance(default, float):
                    kwargs[key] = float(value)
                else:
                    kwargs[key] = value
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for {key}: {value!r}") from e
        return cls(**kwargs)

    @classmethod
    def load(cls, filepath: str) -> "VisualizerConfig":
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {filepath}")
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    def save(self, filepath: str) -> None:
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)


@dataclass
class VideoTransform:
    """Source (video) coordinates to canvas pixels: scale, offset, optional mirror."""
    offset_x: float = 0.0
    offset_y: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    draw_width: float = 0.0
    draw_height: float = 0.0
    canvas_width: int = 0
    mirror: bool = False

    @classmethod
    def cover(
        cls,
        source_width: float,
        source_height: float,
        canvas_width: int,
        canvas_height: int,
        mirror: bool = False
    ) -> "VideoTransform":
        """
        Fit the source so it covers the whole canvas, centered.

        Raises:
            ValueError: If any dimension is not positive
        """
        if source_width <= 0 or source_height <= 0 or canvas_width <= 0 or canvas_height <= 0:
            raise ValueError("source and canvas dimensions must be positive")

        source_aspect = source_width / source_height
        canvas_aspect = canvas_width / canvas_height

        if source_aspect > canvas_aspect:
            draw_height = float(canvas_height)
            draw_width = canvas_height * source_aspect
        else:
            draw_width = float(canvas_width)
            draw_height = canvas_width / source_aspect

        return cls(
            offset_x=(canvas_width - draw_width) / 2,
            offset_y=(canvas_height - draw_height) / 2,
            scale_x=draw_width / source_width,
            scale_y=draw_height / source_height,
            draw_width=draw_width,
            draw_height=draw_height,
            canvas_width=int(canvas_width),
            mirror=mirror,
        )

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        px = x * self.scale_x + self.offset_x
        py = y * self.scale_y + self.offset_y
        if self.mirror:
            px = self.canvas_width - px
        return px, py

    def apply_array(self, points: np.ndarray) -> np.ndarray:
        """Transform an Nx2 array of source points."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        out = np.empty_like(pts)
        out[:, 0] = pts[:, 0] * self.scale_x + self.offset_x
        out[:, 1] = pts[:, 1] * self.scale_y + self.offset_y
        if self.mirror:
            out[:, 0] = self.canvas_width - out[:, 0]
        return out

    def invert(self, px: float, py: float) -> Tuple[float, float]:
        """Canvas pixel back to source coordinates (used for mask editing)."""
        if self.mirror:
            px = self.canvas_width - px
        return (px - self.offset_x) / self.scale_x, (py - self.offset_y) / self.scale_y


def load_config(filepath: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> VisualizerConfig:
    """Defaults, then an optional JSON file, then explicit overrides."""
    data: Dict[str, Any] = {}
    if filepath:
        data.update(VisualizerConfig.load(filepath).to_dict())
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return VisualizerConfig.from_dict(data)
