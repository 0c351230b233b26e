import json
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from oskar.config import VisualizerConfig
from oskar.keypoints import Keypoint, Pose, NUM_KEYPOINTS, poses_to_dicts
from oskar.logger import PoseLogger
from oskar.pipeline import PoseStream, StagePipeline, Surface
from oskar.region import DetectionMask
from oskar.replay import PoseReplay
from oskar.sim import SyntheticPoseSource
from oskar.visualizer import create_visualizers


FAR_AWAY = [(5000.0, 5000.0), (5100.0, 5000.0), (5100.0, 5100.0), (5000.0, 5100.0)]


@pytest.fixture
def source():
    return SyntheticPoseSource(seed=3)


class TestPoseStream:
    def test_publish_accepts_dicts_and_calibrates(self, source):
        stream = PoseStream()
        calibrations = []
        stream.set_calibration_callback(calibrations.append)

        published = stream.publish(poses_to_dicts(source.poses_at(0)))
        assert len(published) == 1
        assert stream.detection_count == 1
        assert stream.base_length == pytest.approx(350.0)
        assert calibrations == [pytest.approx(350.0)]

        # calibration happens once
        stream.publish(source.poses_at(1))
        assert len(calibrations) == 1

    def test_smoothing_history_ignores_mask(self, source):
        mask = DetectionMask(points=list(FAR_AWAY), enabled=True)
        stream = PoseStream(mask=mask)
        assert stream.publish(source.poses_at(0)) == []
        assert len(stream.smoother.previous) == 1
        assert stream.base_length == 0.0

    def test_snapshot_is_swapped_not_mutated(self, source):
        stream = PoseStream()
        stream.publish(source.poses_at(0))
        before = stream.snapshot()
        first_x = before[0][0].x
        stream.publish(source.poses_at(30))
        after = stream.snapshot()
        assert after is not before
        assert before[0][0].x == first_x

    def test_error_without_callback_propagates(self):
        stream = PoseStream()
        with pytest.raises(ValueError):
            stream.publish([{"not": "a pose"}])
        assert stream.metrics.get_summary()["detection"]["errors"] == 1

    def test_error_callback_receives_failure(self, source):
        stream = PoseStream()
        errors = []
        stream.set_error_callback(errors.append)
        stream.publish(source.poses_at(0))
        assert stream.publish([{"not": "a pose"}]) == []
        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)
        # last good list is still published
        assert len(stream.snapshot()) == 1

    def test_calibrate_keeps_value_when_unmeasurable(self, source):
        stream = PoseStream()
        stream.publish(source.poses_at(0))
        pose = source.poses_at(0)[0]
        pose[0].confidence = 0.0
        assert stream.calibrate([pose]) == pytest.approx(350.0)

    def test_recalibrate_and_reset(self, source):
        stream = PoseStream(VisualizerConfig(base_length_scale=0.5))
        stream.publish(source.poses_at(0))
        assert stream.base_length == pytest.approx(175.0)
        stream.set_base_length(10.0)
        assert stream.recalibrate() == pytest.approx(175.0)
        stream.reset()
        assert stream.base_length == 0.0
        assert stream.snapshot() == []

    def test_nearest_centroid_matching_keeps_identity(self):
        two = SyntheticPoseSource(seed=0, persons=2)
        stream = PoseStream(VisualizerConfig(pose_matching="nearest_centroid", smoothing_factor=1.0))
        first = two.poses_at(0)
        stream.publish(first)
        swapped = list(reversed(two.poses_at(0)))
        out = stream.publish(swapped)
        assert out[0][0].x == pytest.approx(first[0][0].x)

    def test_nearest_centroid_survivor_keeps_own_history(self):
        def standing_at(x):
            return Pose(keypoints=[Keypoint(x, 0.0, 0.9) for _ in range(NUM_KEYPOINTS)])

        stream = PoseStream(VisualizerConfig(pose_matching="nearest_centroid", smoothing_factor=0.5))
        stream.publish([standing_at(0.0), standing_at(100.0)])
        out = stream.publish([standing_at(101.0)])
        assert len(out) == 1
        assert out[0][0].x == pytest.approx(100.5)


class TestSurface:
    def test_requires_visualizers(self):
        with pytest.raises(ValueError):
            Surface("s", 100, 100, [])

    def test_cycle_and_select(self):
        surface = Surface("s", 100, 100, create_visualizers(["white", "red", "blue"]), index=2)
        assert surface.current.name == "blue"
        assert surface.cycle().name == "white"
        assert surface.select("red").name == "red"
        with pytest.raises(ValueError):
            surface.select("green")


class TestStagePipeline:
    def test_tick_draws_on_both_surfaces(self, source):
        stage = StagePipeline(VisualizerConfig(canvas_width=320, canvas_height=240))
        assert stage.tick(time_s=0.0) == {"left": 0, "right": 0}

        stage.stream.publish(source.poses_at(0))
        counts = stage.tick(time_s=0.1)
        assert counts == {"left": 9, "right": 9}
        assert stage.surfaces[0].current.name == "white"
        assert stage.surfaces[1].current.name == "red"

        stage.toggle_surface(1)
        assert stage.tick(time_s=0.2) == {"left": 9}

    def test_short_pose_is_rejected_and_tick_keeps_drawing(self, source):
        stage = StagePipeline(VisualizerConfig(canvas_width=320, canvas_height=240))
        errors = []
        stage.stream.set_error_callback(errors.append)
        stage.stream.publish(source.poses_at(0))

        short = {"keypoints": [{"x": 10.0, "y": 10.0, "confidence": 0.9}] * 5}
        assert stage.stream.publish([short]) == []
        truncated = source.poses_at(1)[0]
        truncated.keypoints = truncated.keypoints[:12]
        assert stage.stream.publish([truncated]) == []

        assert len(errors) == 2
        assert all(isinstance(e, ValueError) for e in errors)
        assert len(stage.stream.snapshot()) == 1
        assert stage.tick(time_s=0.1) == {"left": 9, "right": 9}

    def test_frame_updates_source_size(self, source):
        stage = StagePipeline(VisualizerConfig(canvas_width=320, canvas_height=240))
        frame = np.full((360, 640, 3), 40, dtype=np.uint8)
        stage.tick(frame, time_s=0.0)
        assert stage.source_size == (640, 360)
        assert stage.surfaces[0].canvas[120, 160].tolist() == [40, 40, 40]

        stage.toggle_video()
        stage.tick(frame, time_s=0.1)
        assert not stage.surfaces[0].canvas.any()

    def test_toggles(self):
        stage = StagePipeline(VisualizerConfig(canvas_width=64, canvas_height=48))
        assert stage.toggle_trails() is True
        assert all(v.show_trail for v in stage.surfaces[0].visualizers)
        assert stage.toggle_trails() is False
        assert stage.toggle_mirror() is False
        assert stage.adjust_elasticity(0.2) == pytest.approx(1.2)
        assert stage.cycle_visualizer(0) == "red"
        with pytest.raises(KeyError):
            stage.get_surface("middle")

    def test_mask_edits_are_saved(self, tmp_path):
        path = tmp_path / "mask.json"
        stage = StagePipeline(VisualizerConfig(canvas_width=64, canvas_height=48), mask_path=str(path))
        for x, y in FAR_AWAY:
            stage.add_mask_point(x, y)
        assert stage.toggle_mask() is True
        stage.move_mask_point(0, 4900.0, 4900.0)
        saved = json.loads(path.read_text())
        assert saved["enabled"] is True
        assert saved["points"][0] == {"x": 4900.0, "y": 4900.0}

        stage.clear_mask()
        assert DetectionMask.load(str(path)).points == []

    def test_status_and_recording(self, tmp_path, source):
        logger = PoseLogger(log_dir=str(tmp_path))
        stage = StagePipeline(VisualizerConfig(canvas_width=64, canvas_height=48), logger=logger)
        log_file = logger.start_recording(session_name="stage")
        stage.stream.publish(source.poses_at(0))
        stage.toggle_trails()
        stage.tick(time_s=0.0)
        status = stage.get_status()
        assert status["detections"] == 1
        assert status["recording"] == log_file
        assert status["surfaces"]["left"] == {"visible": True, "visualizer": "white"}
        logger.stop_recording()

        replay = PoseReplay(log_file)
        assert replay.detection_count == 1
        types = [e.event_type for e in replay.events]
        assert types == ["calibration", "trail"]
