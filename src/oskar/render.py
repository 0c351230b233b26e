"""
Renderer for stage surfaces.

Provides functionality to:
- Hold an HxWx3 uint8 canvas (BGR, as OpenCV expects)
- Map source coordinates onto the canvas through a VideoTransform
- Draw lines, cubic beziers, ellipses and circles with optional opacity
- Draw faded trail segments and the detection mask outline
- Composite the camera frame under the geometry (cover-fit, mirrored)
"""

from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .config import VideoTransform
from .geometry import EllipseShape, Segment
from .springs import BezierCurve


Color = Tuple[int, int, int]

WHITE: Color = (255, 255, 255)
BLACK: Color = (0, 0, 0)
RED: Color = (0, 0, 255)
BLUE: Color = (255, 0, 0)
GREEN: Color = (0, 255, 0)

BEZIER_STEPS = 24


def _thickness(width: float) -> int:
    return max(1, int(round(width)))


def _pt(p: Sequence[float]) -> Tuple[int, int]:
    return int(round(p[0])), int(round(p[1]))


class Renderer:
    """
    Drawing surface for one output.

    Usage:
        renderer = Renderer(1280, 720)
        renderer.set_transform(VideoTransform.cover(640, 480, 1280, 720, mirror=True))
        renderer.clear()
        renderer.line((10, 10), (100, 100), WHITE, width=6)
        cv2.imshow("stage", renderer.canvas)
    """

    def __init__(
        self,
        width: int,
        height: int,
        background: Color = BLACK,
        transform: Optional[VideoTransform] = None
    ):
        if width <= 0 or height <= 0:
            raise ValueError("canvas dimensions must be positive")
        self.width = int(width)
        self.height = int(height)
        self.background = background
        self.canvas = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        self.transform = transform or VideoTransform(canvas_width=self.width)
        self.clear()

    def set_transform(self, transform: VideoTransform) -> None:
        self.transform = transform

    def clear(self, color: Optional[Color] = None) -> None:
        self.canvas[:] = color if color is not None else self.background

    def to_canvas(self, point: Sequence[float]) -> Tuple[int, int]:
        return _pt(self.transform.apply(point[0], point[1]))

    def _blend(self, overlay: np.ndarray, alpha: float) -> None:
        cv2.addWeighted(overlay, alpha, self.canvas, 1.0 - alpha, 0, dst=self.canvas)

    def _target(self, alpha: float) -> Optional[np.ndarray]:
        """Canvas to draw on for the given opacity, None when fully transparent."""
        if alpha <= 0:
            return None
        if alpha >= 1:
            return self.canvas
        return self.canvas.copy()

    def line(
        self,
        start: Sequence[float],
        end: Sequence[float],
        color: Color,
        width: float = 6.0,
        alpha: float = 1.0
    ) -> None:
        target = self._target(alpha)
        if target is None:
            return
        cv2.line(target, self.to_canvas(start), self.to_canvas(end), color, _thickness(width), cv2.LINE_AA)
        if target is not self.canvas:
            self._blend(target, alpha)

    def segment(self, segment: Segment, color: Color, width: float = 6.0, alpha: float = 1.0) -> None:
        self.line(segment.start, segment.end, color, width, alpha)

    def polyline(
        self,
        points: np.ndarray,
        color: Color,
        width: float = 6.0,
        closed: bool = False,
        alpha: float = 1.0
    ) -> None:
        """Polyline through source points (Nx2)."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if len(pts) < 2:
            return
        target = self._target(alpha)
        if target is None:
            return
        canvas_pts = np.round(self.transform.apply_array(pts)).astype(np.int32)
        cv2.polylines(target, [canvas_pts.reshape(-1, 1, 2)], closed, color, _thickness(width), cv2.LINE_AA)
        if target is not self.canvas:
            self._blend(target, alpha)

    def bezier(self, curve: BezierCurve, color: Color, width: float = 6.0, steps: int = BEZIER_STEPS) -> None:
        self.polyline(curve.sample(steps), color, width)

    def ellipse(
        self,
        shape: EllipseShape,
        color: Color,
        width: float = 2.0,
        filled: bool = False,
        alpha: float = 1.0
    ) -> None:
        """Rotated ellipse; axes are scaled by the transform, angle follows the mirror."""
        target = self._target(alpha)
        if target is None:
            return
        center = self.to_canvas((shape.center_x, shape.center_y))
        axes = (
            max(1, int(round(shape.major / 2 * self.transform.scale_x))),
            max(1, int(round(shape.minor / 2 * self.transform.scale_y))),
        )
        angle = float(np.degrees(shape.angle))
        if self.transform.mirror:
            angle = 180.0 - angle
        thickness = -1 if filled else _thickness(width)
        cv2.ellipse(target, center, axes, angle, 0, 360, color, thickness, cv2.LINE_AA)
        if target is not self.canvas:
            self._blend(target, alpha)

    def circle(
        self,
        center: Sequence[float],
        radius: float,
        color: Color,
        width: float = 2.0,
        filled: bool = False
    ) -> None:
        thickness = -1 if filled else _thickness(width)
        radius_px = max(1, int(round(radius * self.transform.scale_x)))
        cv2.circle(self.canvas, self.to_canvas(center), radius_px, color, thickness, cv2.LINE_AA)

    def trail(
        self,
        faded: Sequence[Tuple[Segment, float]],
        color: Color,
        stroke_weight: float = 6.0,
        opacity: float = 255.0,
        fade_width: bool = True
    ) -> int:
        """
        Draw trail segments with opacity (and optionally width) scaled by fade.

        Segments sharing a fade value belong to the same snapshot and are
        blended in one pass.

        Returns:
            Number of segments drawn
        """
        groups: Dict[float, List[Segment]] = {}
        for segment, fade in faded:
            if fade <= 0:
                continue
            groups.setdefault(fade, []).append(segment)

        drawn = 0
        for fade in sorted(groups):
            alpha = min(1.0, (opacity / 255.0) * fade)
            target = self._target(alpha)
            if target is None:
                continue
            thickness = _thickness(stroke_weight * fade if fade_width else stroke_weight)
            for segment in groups[fade]:
                cv2.line(target, self.to_canvas(segment.start), self.to_canvas(segment.end),
                         color, thickness, cv2.LINE_AA)
                drawn += 1
            if target is not self.canvas:
                self._blend(target, alpha)
        return drawn

    def mask_outline(self, points: Sequence[Tuple[float, float]], color: Color = GREEN, handle_radius: int = 6) -> None:
        """Polygon outline plus vertex handles, used while editing the mask."""
        if not points:
            return
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        canvas_pts = np.round(self.transform.apply_array(pts)).astype(np.int32)
        if len(canvas_pts) >= 2:
            cv2.polylines(self.canvas, [canvas_pts.reshape(-1, 1, 2)], len(canvas_pts) >= 3, color, 2, cv2.LINE_AA)
        for p in canvas_pts:
            cv2.circle(self.canvas, (int(p[0]), int(p[1])), handle_radius, color, -1, cv2.LINE_AA)

    def video(self, frame: np.ndarray, clip: Optional[Sequence[Tuple[float, float]]] = None) -> None:
        """
        Cover-fit the camera frame onto the canvas using the current transform.

        Args:
            frame: HxWx3 (or HxW) uint8 camera image in source coordinates
            clip: Optional polygon in source coordinates; only the video
                inside it is drawn. Geometry drawn afterwards is never clipped.
        """
        if frame is None or frame.size == 0:
            return
        if clip is not None and len(clip) >= 3:
            layer = Renderer(self.width, self.height, self.background, self.transform)
            layer.canvas[:] = self.canvas
            layer.video(frame)
            pts = np.round(self.transform.apply_array(np.asarray(clip, dtype=np.float64))).astype(np.int32)
            stencil = np.zeros((self.height, self.width), dtype=np.uint8)
            cv2.fillPoly(stencil, [pts.reshape(-1, 1, 2)], 255)
            inside = stencil.astype(bool)
            self.canvas[inside] = layer.canvas[inside]
            return
        t = self.transform
        draw_w = max(1, int(round(t.draw_width)))
        draw_h = max(1, int(round(t.draw_height)))
        resized = cv2.resize(frame, (draw_w, draw_h), interpolation=cv2.INTER_LINEAR)
        if resized.ndim == 2:
            resized = cv2.cvtColor(resized, cv2.COLOR_GRAY2BGR)
        if t.mirror:
            resized = cv2.flip(resized, 1)

        ox = int(round(t.offset_x))
        oy = int(round(t.offset_y))
        # Intersection of the placed frame with the canvas
        x0, y0 = max(0, ox), max(0, oy)
        x1, y1 = min(self.width, ox + draw_w), min(self.height, oy + draw_h)
        if x1 <= x0 or y1 <= y0:
            return
        self.canvas[y0:y1, x0:x1] = resized[y0 - oy:y1 - oy, x0 - ox:x1 - ox]
