"""
Tests for the Affect Pipeline Coordinator

End-to-end wiring: pose snapshots and audio flow through fusion into the
profiler and the event sink.
"""

import numpy as np
import pytest
from datetime import datetime, timedelta
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from affect_engine.config import AffectConfig, FusionConfig
from affect_engine.emotion import EmotionLabel
from affect_engine.pipeline import AffectPipeline
from affect_engine.pose import Landmark, Point3, PoseSnapshot
from affect_engine.profiler import SessionStats

T0 = datetime(2024, 1, 1, 12, 0, 0)


def at(seconds):
    return T0 + timedelta(milliseconds=round(seconds * 1000))


def open_pose(timestamp):
    points = {
        Landmark.NOSE: (0.0, 1.7),
        Landmark.LEFT_SHOULDER: (-0.2, 1.5),
        Landmark.RIGHT_SHOULDER: (0.2, 1.5),
        Landmark.LEFT_ELBOW: (-0.4, 1.5),
        Landmark.RIGHT_ELBOW: (0.4, 1.5),
        Landmark.LEFT_WRIST: (-0.7, 1.7),
        Landmark.RIGHT_WRIST: (0.7, 1.7),
        Landmark.LEFT_HIP: (-0.15, 1.0),
        Landmark.RIGHT_HIP: (0.15, 1.0),
    }
    return PoseSnapshot({lm: Point3(x, y) for lm, (x, y) in points.items()}, timestamp)


class RecordingSink:
    def __init__(self):
        self.events = []

    def log_emotion_event(self, sample, significant):
        self.events.append((sample, significant))


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def pipeline(sink):
    config = AffectConfig(fusion=FusionConfig(smoothing_factor=1.0))
    p = AffectPipeline(config, sink=sink)
    yield p
    p.close()


class TestAffectPipeline:
    """Test cases for AffectPipeline."""

    def test_idle_tick_is_neutral(self, pipeline, sink):
        update = pipeline.tick(T0)

        assert update.voice_sample is None
        assert update.emotion.label == EmotionLabel.NEUTRAL
        assert update.profile_analyzed
        assert len(sink.events) == 1

    def test_pose_only_flow(self, pipeline, sink):
        for i in range(5):
            pipeline.process_snapshot(open_pose(at(i * 0.1)))

        update = pipeline.tick(at(0.5))

        assert update.fusion.pose_active
        assert not update.fusion.voice_active
        assert update.emotion.pose_weight == 1.0
        assert update.emotion.label == EmotionLabel.CALM
        assert sink.events[-1][1] is True

    def test_fusion_changes_reach_profiler(self, pipeline):
        for i in range(5):
            pipeline.process_snapshot(open_pose(at(i * 0.1)))

        pipeline.tick(at(0.5))

        profile = pipeline.profile()
        assert "calm" in profile.emotion_distribution
        assert profile.emotion_stability == pytest.approx(0.5)

    def test_cadences(self, pipeline):
        first = pipeline.tick(at(0))
        second = pipeline.tick(at(0.5))
        third = pipeline.tick(at(1.0))

        assert first.fusion is not None
        assert second.fusion is None
        assert third.fusion is not None
        assert not second.profile_analyzed

    def test_voice_flow(self, pipeline):
        t = np.arange(1024) / 16000
        block = 0.5 * np.sin(2 * np.pi * 125 * t)
        for i in range(20):
            pipeline.process_audio_block(block, at(i * 0.064))

        update = pipeline.tick(at(1.3))

        assert update.voice_sample is not None
        assert update.fusion.voice_active
        assert update.emotion.voice_weight == 1.0

    def test_inputs_forwarded_to_profiler(self, pipeline):
        pipeline.record_command("left")
        pipeline.update_stats(SessionStats(total_voice_commands=5, total_session_seconds=60.0))

        profile = pipeline.profile()
        assert profile.preferred_commands == {"left": 1}
        assert profile.commands_per_minute == pytest.approx(5.0)

    def test_close_detaches_profiler(self, pipeline):
        pipeline.close()
        for i in range(5):
            pipeline.process_snapshot(open_pose(at(i * 0.1)))

        pipeline.tick(at(0.5))

        assert pipeline.profile().emotion_distribution == {}

    def test_reset(self, pipeline):
        for i in range(5):
            pipeline.process_snapshot(open_pose(at(i * 0.1)))
        pipeline.tick(at(0.5))

        pipeline.reset()

        assert pipeline.current_emotion().label == EmotionLabel.NEUTRAL
        assert pipeline.pose.current_emotion() is None
        assert pipeline.profile().emotion_distribution == {}
