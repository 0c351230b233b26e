import os
import sys

import cv2
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from oskar.app import AppConfig, MaskEditor, build_stage, handle_key, parse_args


@pytest.fixture
def stage(tmp_path):
    app = AppConfig(
        mask_file=str(tmp_path / "mask.json"),
        log_dir=str(tmp_path / "logs"),
        visualizers=("white", "springy"),
        width=160,
        height=120,
    )
    return build_stage(app)


def test_parse_args_defaults_and_overrides():
    app = parse_args([])
    assert app.source == "synthetic"
    assert app.visualizers == ("white", "red", "blue")
    assert app.surfaces == 2

    app = parse_args(["--visualizers", "springy, contour", "--surfaces", "1", "--trail", "--no-mirror"])
    assert app.visualizers == ("springy", "contour")
    assert app.surfaces == 1
    assert app.trail and app.no_mirror


@pytest.mark.parametrize("argv", [
    ["--source", "replay"],
    ["--speed", "0"],
    ["--visualizers", "white,sparkles"],
])
def test_parse_args_rejects_bad_input(argv):
    with pytest.raises(SystemExit):
        parse_args(argv)


def test_build_stage_uses_app_settings(tmp_path):
    app = AppConfig(
        mask_file=None, log_dir=str(tmp_path), surfaces=1, width=200, height=100,
        trail=True, no_mirror=True, visualizers=("red",),
    )
    stage = build_stage(app)
    assert len(stage.surfaces) == 1
    assert stage.surfaces[0].canvas.shape == (100, 200, 3)
    assert stage.config.trail_enabled is True
    assert stage.config.mirror is False
    assert stage.surfaces[0].current.show_trail


def test_handle_key(stage, capsys):
    editor = MaskEditor(stage)
    assert handle_key(ord('t'), stage, editor)
    assert stage.config.trail_enabled
    assert handle_key(ord('1'), stage, editor)
    assert stage.surfaces[0].current.name == "springy"
    assert handle_key(ord('+'), stage, editor)
    assert stage.config.elasticity == pytest.approx(1.1)
    assert handle_key(ord('m'), stage, editor)
    assert stage.config.mirror is False
    assert handle_key(ord('a'), stage, editor)
    assert editor.active
    assert handle_key(ord('p'), stage, editor)
    assert '"ticks"' in capsys.readouterr().out
    assert not handle_key(ord('q'), stage, editor)
    assert not handle_key(27, stage, editor)


def test_recording_key(stage):
    editor = MaskEditor(stage)
    handle_key(ord('l'), stage, editor)
    assert stage.logger.is_recording
    handle_key(ord('l'), stage, editor)
    assert not stage.logger.is_recording


def test_mask_editor_adds_and_drags(stage, tmp_path):
    editor = MaskEditor(stage)
    editor.on_mouse(cv2.EVENT_LBUTTONDOWN, 10, 10, 0)
    assert stage.mask.points == []

    editor.toggle()
    editor.on_mouse(cv2.EVENT_LBUTTONDOWN, 10, 10, 0)
    editor.on_mouse(cv2.EVENT_LBUTTONDOWN, 100, 10, 0)
    assert len(stage.mask.points) == 2

    editor.on_mouse(cv2.EVENT_LBUTTONDOWN, 12, 12, 0)
    editor.on_mouse(cv2.EVENT_MOUSEMOVE, 30, 40, cv2.EVENT_FLAG_LBUTTON)
    editor.on_mouse(cv2.EVENT_LBUTTONUP, 30, 40, 0)
    assert len(stage.mask.points) == 2
    assert stage.mask.points[0] == pytest.approx((30.0, 40.0))
    assert (tmp_path / "mask.json").exists()
