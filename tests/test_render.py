import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from oskar.config import VideoTransform
from oskar.geometry import EllipseShape, Segment
from oskar.render import RED, WHITE, Renderer
from oskar.springs import BezierCurve


def test_rejects_empty_canvas():
    with pytest.raises(ValueError):
        Renderer(0, 10)


def test_line_draws_and_clear_erases():
    r = Renderer(100, 100)
    r.line((10, 50), (90, 50), WHITE, width=4)
    assert r.canvas[50, 50].tolist() == [255, 255, 255]
    r.clear()
    assert not r.canvas.any()


def test_alpha_blends_with_background():
    r = Renderer(100, 100)
    r.segment(Segment(10, 50, 90, 50), WHITE, width=6, alpha=0.5)
    assert 120 <= r.canvas[50, 50, 0] <= 135

    r.clear()
    r.segment(Segment(10, 50, 90, 50), WHITE, width=6, alpha=0.0)
    assert not r.canvas.any()


def test_transform_maps_source_to_canvas():
    r = Renderer(200, 200)
    r.set_transform(VideoTransform.cover(100, 100, 200, 200, mirror=True))
    assert r.to_canvas((10, 20)) == (180, 40)


def test_trail_skips_fully_faded_segments():
    r = Renderer(100, 100)
    seg = Segment(10, 10, 90, 90)
    drawn = r.trail([(seg, 1.0), (seg, 0.5), (seg, 0.0)], WHITE)
    assert drawn == 2
    assert r.canvas.any()


def test_bezier_and_ellipse_draw_something():
    r = Renderer(100, 100)
    r.bezier(BezierCurve((10, 10), (30, 80), (70, 80), (90, 10)), RED, width=3)
    assert r.canvas[:, :, 2].any()
    assert not r.canvas[:, :, 0].any()

    r.clear()
    r.ellipse(EllipseShape(50, 50, 40, 20, 0.0), WHITE, filled=True)
    assert r.canvas[50, 50].tolist() == [255, 255, 255]
    assert not r.canvas[5, 5].any()


def test_video_cover_fit_and_mirror():
    frame = np.zeros((50, 50, 3), dtype=np.uint8)
    frame[:, :25] = RED
    r = Renderer(100, 100)
    r.set_transform(VideoTransform.cover(50, 50, 100, 100))
    r.video(frame)
    assert r.canvas[50, 10].tolist() == list(RED)
    assert not r.canvas[50, 90].any()

    r.clear()
    r.set_transform(VideoTransform.cover(50, 50, 100, 100, mirror=True))
    r.video(frame)
    assert r.canvas[50, 90].tolist() == list(RED)
    assert not r.canvas[50, 10].any()


def test_video_clip_polygon():
    frame = np.full((50, 50, 3), 200, dtype=np.uint8)
    r = Renderer(100, 100)
    r.set_transform(VideoTransform.cover(50, 50, 100, 100))
    r.video(frame, clip=[(0, 0), (25, 0), (25, 25), (0, 25)])
    assert r.canvas[20, 20].tolist() == [200, 200, 200]
    assert not r.canvas[80, 80].any()


def test_grayscale_video_is_accepted():
    frame = np.full((30, 40), 90, dtype=np.uint8)
    r = Renderer(80, 60)
    r.set_transform(VideoTransform.cover(40, 30, 80, 60))
    r.video(frame)
    assert r.canvas[30, 40].tolist() == [90, 90, 90]
