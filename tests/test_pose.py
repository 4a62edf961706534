"""
Tests for the Pose Signal Analyzer

Poses use +y up. The neutral figure has shoulders at y=1.5 (0.4 apart)
and hips at y=1.0.
"""

import math
import pytest
from datetime import datetime, timedelta
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from affect_engine.config import PoseConfig
from affect_engine.emotion import EmotionLabel
from affect_engine.errors import MalformedInputError
from affect_engine.pose import (
    Landmark, Point3, PoseSnapshot, PoseEmotionAnalyzer,
    body_openness, body_stability, body_tilt, movement_speed,
)

T0 = datetime(2024, 1, 1, 12, 0, 0)


def at(seconds):
    return T0 + timedelta(milliseconds=round(seconds * 1000))


def make_pose(timestamp=T0, wrists=((-0.7, 1.7), (0.7, 1.7)), shift=0.0,
              left_shoulder=(-0.2, 1.5), right_shoulder=(0.2, 1.5)):
    """Upright figure; default wrists are spread wide and raised."""
    points = {
        Landmark.NOSE: (0.0, 1.7),
        Landmark.LEFT_SHOULDER: left_shoulder,
        Landmark.RIGHT_SHOULDER: right_shoulder,
        Landmark.LEFT_ELBOW: (-0.4, 1.5),
        Landmark.RIGHT_ELBOW: (0.4, 1.5),
        Landmark.LEFT_WRIST: wrists[0],
        Landmark.RIGHT_WRIST: wrists[1],
        Landmark.LEFT_HIP: (-0.15, 1.0),
        Landmark.RIGHT_HIP: (0.15, 1.0),
    }
    landmarks = {lm: Point3(x + shift, y) for lm, (x, y) in points.items()}
    return PoseSnapshot(landmarks=landmarks, timestamp=timestamp)


OPEN_WRISTS = ((-0.7, 1.7), (0.7, 1.7))
CLOSED_WRISTS = ((-0.2, 1.0), (0.2, 1.0))


class TestPoseSnapshot:
    """Test cases for snapshot construction and validation."""

    def test_body_center(self):
        center = make_pose().body_center
        assert center[0] == pytest.approx(0.0)
        assert center[1] == pytest.approx(1.25)

    def test_from_landmark_array(self):
        points = [(float(i), float(i), 0.0) for i in range(33)]
        snapshot = PoseSnapshot.from_landmark_array(points, T0)

        assert snapshot.landmarks[Landmark.LEFT_HIP] == Point3(23.0, 23.0, 0.0)
        snapshot.validate()

    def test_from_short_array_raises(self):
        with pytest.raises(MalformedInputError):
            PoseSnapshot.from_landmark_array([(0.0, 0.0, 0.0)] * 10, T0)

    def test_missing_landmark_invalid(self):
        snapshot = make_pose()
        landmarks = dict(snapshot.landmarks)
        del landmarks[Landmark.LEFT_WRIST]

        with pytest.raises(MalformedInputError):
            PoseSnapshot(landmarks=landmarks, timestamp=T0).validate()

    def test_no_detection_invalid(self):
        with pytest.raises(MalformedInputError):
            PoseSnapshot.no_detection(T0).validate()

    def test_non_finite_invalid(self):
        snapshot = make_pose()
        landmarks = dict(snapshot.landmarks)
        landmarks[Landmark.NOSE] = Point3(math.nan, 0.0)

        with pytest.raises(MalformedInputError):
            PoseSnapshot(landmarks=landmarks, timestamp=T0).validate()


class TestKinematics:
    """Test cases for the feature functions."""

    def test_open_arms(self):
        assert body_openness(make_pose(wrists=OPEN_WRISTS)) == pytest.approx(0.875)

    def test_closed_arms(self):
        assert body_openness(make_pose(wrists=CLOSED_WRISTS)) == pytest.approx(0.25)

    def test_static_speed_is_zero(self):
        poses = [make_pose(at(i * 0.1)) for i in range(5)]
        assert movement_speed(poses) == pytest.approx(0.0)

    def test_speed_per_second(self):
        """Both wrists move 0.2 per 0.1 s; the head stays still."""
        poses = [
            make_pose(at(0.0), wrists=((-0.7, 1.7), (0.7, 1.7))),
            make_pose(at(0.1), wrists=((-0.7, 1.9), (0.7, 1.9))),
        ]
        assert movement_speed(poses) == pytest.approx(4.0 / 3.0)

    def test_stability(self):
        still = [make_pose(at(i * 0.1)) for i in range(5)]
        swaying = [make_pose(at(i * 0.1), shift=0.05 if i % 2 else -0.05) for i in range(6)]

        assert body_stability(still) == pytest.approx(1.0)
        assert body_stability(swaying) == pytest.approx(0.75)

    def test_upright_tilt_is_zero(self):
        assert body_tilt(make_pose()) == pytest.approx(0.0, abs=1e-6)

    def test_shoulder_tilt(self):
        tilted = make_pose(left_shoulder=(-0.2, 1.4), right_shoulder=(0.2, 1.6))
        expected = math.degrees(math.atan(0.5)) / 2
        assert body_tilt(tilted) == pytest.approx(expected, abs=0.01)

    def test_tilt_independent_of_side_order(self):
        mirrored = make_pose(left_shoulder=(0.2, 1.4), right_shoulder=(-0.2, 1.6))
        tilted = make_pose(left_shoulder=(-0.2, 1.4), right_shoulder=(0.2, 1.6))
        assert body_tilt(mirrored) == pytest.approx(body_tilt(tilted), abs=0.01)


class TestPoseEmotionAnalyzer:
    """Test cases for PoseEmotionAnalyzer."""

    @pytest.fixture
    def analyzer(self):
        return PoseEmotionAnalyzer(PoseConfig())

    def feed(self, analyzer, count, wrists=OPEN_WRISTS, start=0.0, step=0.1):
        for i in range(count):
            analyzer.process_snapshot(make_pose(at(start + i * step), wrists=wrists))
        return at(start + (count - 1) * step)

    def test_needs_min_snapshots(self, analyzer):
        now = self.feed(analyzer, 4)
        assert analyzer.current_emotion() is None
        assert not analyzer.has_recent_data(now)

    def test_open_still_pose_is_calm(self, analyzer):
        now = self.feed(analyzer, 5)
        sample = analyzer.current_emotion()

        assert sample is not None
        assert sample.arousal == pytest.approx(0.0)
        assert sample.valence == pytest.approx(0.55)
        assert sample.label == EmotionLabel.CALM
        assert sample.pose_weight == 1.0
        assert sample.voice_weight == 0.0
        assert analyzer.has_recent_data(now)

    def test_closed_still_pose_is_stressed(self, analyzer):
        self.feed(analyzer, 5, wrists=CLOSED_WRISTS)
        sample = analyzer.current_emotion()

        assert sample.valence < -0.3
        assert sample.label == EmotionLabel.STRESSED

    def test_fast_movement_raises_arousal(self, analyzer):
        for i in range(6):
            y = 1.9 if i % 2 else 1.7
            analyzer.process_snapshot(make_pose(at(i * 0.1), wrists=((-0.7, y), (0.7, y))))

        assert analyzer.current_emotion().arousal >= 0.7

    def test_stability_threshold_saturates_instability(self):
        """Body center jitters by 0.1 in x: stability 1 - 0.24 = 0.76."""
        arousals = {}
        for threshold in (0.0, 0.3, 0.9):
            analyzer = PoseEmotionAnalyzer(PoseConfig(stability_threshold=threshold))
            for i in range(5):
                analyzer.process_snapshot(make_pose(at(i * 0.1), shift=0.1 * (i % 2)))
            assert analyzer.current_features().stability == pytest.approx(0.76)
            arousals[threshold] = analyzer.current_emotion().arousal

        # Movement saturates at 0.7; instability adds up to 0.3
        assert arousals[0.0] == pytest.approx(0.7 + 0.3 * 0.24)
        assert arousals[0.3] == pytest.approx(0.7 + 0.3 * 0.24 / 0.7)
        assert arousals[0.9] == pytest.approx(1.0)

    def test_confidence(self, analyzer):
        self.feed(analyzer, 5)
        # Half-full window, default consistency with fewer than 5 speeds
        assert analyzer.current_emotion().confidence == pytest.approx(0.5)

    def test_invalid_snapshot_dropped(self, analyzer):
        assert not analyzer.process_snapshot(PoseSnapshot.no_detection(T0))
        assert analyzer.dropped_snapshots == 1
        assert len(analyzer.snapshots) == 0

    def test_validity_timeout(self, analyzer):
        now = self.feed(analyzer, 5)
        assert analyzer.has_recent_data(now + timedelta(seconds=2.9))
        assert not analyzer.has_recent_data(now + timedelta(seconds=3))

    def test_window_bounded(self, analyzer):
        self.feed(analyzer, 50)
        assert len(analyzer.snapshots) == analyzer.config.capacity
        assert len(analyzer.speed_history) <= analyzer.config.capacity

    def test_max_history_caps_window(self):
        analyzer = PoseEmotionAnalyzer(PoseConfig(history_window=40))
        self.feed(analyzer, 50)
        assert len(analyzer.snapshots) == 15

    def test_frame_skipping(self):
        analyzer = PoseEmotionAnalyzer(PoseConfig(frame_skipping=1))
        self.feed(analyzer, 10)

        assert len(analyzer.snapshots) == 5
        assert analyzer.skipped_snapshots == 5

    def test_min_snapshot_interval(self):
        analyzer = PoseEmotionAnalyzer(PoseConfig(min_snapshot_interval=0.5))
        self.feed(analyzer, 10)

        assert len(analyzer.snapshots) == 2

    def test_current_features(self, analyzer):
        self.feed(analyzer, 5)
        features = analyzer.current_features()

        assert features.openness == pytest.approx(0.875)
        assert features.stability == pytest.approx(1.0)

    def test_reset(self, analyzer):
        self.feed(analyzer, 5)
        analyzer.reset()

        assert analyzer.current_emotion() is None
        assert len(analyzer.snapshots) == 0
