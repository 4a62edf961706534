"""
Pose Signal Analyzer

Turns a stream of skeletal landmark snapshots into an EmotionSample.

Features (computed once at least `min_snapshots` are buffered):
- Movement speed: per-second displacement of head and both wrists
- Openness: arm angle opening + wrist height relative to shoulders
- Stability: inverse of body-center variance across the window
- Tilt: shoulder line vs horizontal and torso vs vertical, averaged

Coordinates are expected with +y pointing up. Snapshots arrive as an
explicit typed structure; no introspection of the landmark source.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Dict, Mapping, Optional, Sequence, Tuple, Any

import numpy as np

from .config import PoseConfig
from .emotion import EmotionSample, clamp01
from .errors import MalformedInputError
from .events import EventChannel
from .history import BoundedHistory

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT_VERSION = 1
POSE_MODEL_LANDMARK_COUNT = 33


class Landmark(IntEnum):
    """Landmarks used by the analyzer, valued by their index in a 33-point pose model."""
    NOSE = 0
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24


REQUIRED_LANDMARKS: Tuple[Landmark, ...] = tuple(Landmark)


@dataclass(frozen=True)
class Point3:
    """A 3D point."""
    x: float
    y: float
    z: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.z))

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "Point3":
        if len(values) == 2:
            return cls(float(values[0]), float(values[1]))
        if len(values) == 3:
            return cls(float(values[0]), float(values[1]), float(values[2]))
        raise MalformedInputError(f"landmark needs 2 or 3 coordinates, got {len(values)}", source="pose")


@dataclass(frozen=True)
class PoseSnapshot:
    """
    One frame from the pose source.

    `valid` is False for an explicit "no detection" frame. A valid snapshot
    must carry every landmark in REQUIRED_LANDMARKS.
    """
    landmarks: Mapping[Landmark, Point3]
    timestamp: datetime = field(default_factory=datetime.now)
    valid: bool = True
    version: int = SNAPSHOT_FORMAT_VERSION

    @classmethod
    def no_detection(cls, timestamp: Optional[datetime] = None) -> "PoseSnapshot":
        return cls(landmarks={}, timestamp=timestamp or datetime.now(), valid=False)

    @classmethod
    def from_landmark_array(
        cls,
        points: Sequence[Sequence[float]],
        timestamp: Optional[datetime] = None
    ) -> "PoseSnapshot":
        """
        Build a snapshot from a full 33-point landmark array.

        Raises:
            MalformedInputError: fewer points than the pose model defines
        """
        if points is None or len(points) < POSE_MODEL_LANDMARK_COUNT:
            count = 0 if points is None else len(points)
            raise MalformedInputError(
                f"expected {POSE_MODEL_LANDMARK_COUNT} landmarks, got {count}", source="pose"
            )
        landmarks = {lm: Point3.from_sequence(points[lm.value]) for lm in Landmark}
        return cls(landmarks=landmarks, timestamp=timestamp or datetime.now())

    def point(self, landmark: Landmark) -> np.ndarray:
        return self.landmarks[landmark].as_array()

    @property
    def body_center(self) -> np.ndarray:
        """Mean of both shoulders and both hips."""
        return (
            self.point(Landmark.LEFT_SHOULDER) + self.point(Landmark.RIGHT_SHOULDER) +
            self.point(Landmark.LEFT_HIP) + self.point(Landmark.RIGHT_HIP)
        ) / 4.0

    def validate(self):
        """
        Raises:
            MalformedInputError: not a detection, or landmarks missing/non-finite
        """
        if not self.valid:
            raise MalformedInputError("no pose detected", source="pose")
        missing = [lm.name for lm in REQUIRED_LANDMARKS if lm not in self.landmarks]
        if missing:
            raise MalformedInputError(f"missing landmarks: {', '.join(missing)}", source="pose")
        bad = [lm.name for lm in REQUIRED_LANDMARKS if not self.landmarks[lm].is_finite()]
        if bad:
            raise MalformedInputError(f"non-finite landmarks: {', '.join(bad)}", source="pose")


def angle_between(a: np.ndarray, b: np.ndarray) -> float:
    """Unsigned angle in degrees; 0 if either vector is degenerate."""
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    cosine = float(np.dot(a, b)) / norm
    return math.degrees(math.acos(max(-1.0, min(1.0, cosine))))


def movement_speed(snapshots: Sequence[PoseSnapshot]) -> float:
    """Average per-second displacement of head and both wrists."""
    total = 0.0
    comparisons = 0
    for previous, current in zip(snapshots, snapshots[1:]):
        dt = (current.timestamp - previous.timestamp).total_seconds()
        if dt <= 0:
            continue
        frame_speed = sum(
            float(np.linalg.norm(current.point(lm) - previous.point(lm))) / dt
            for lm in (Landmark.NOSE, Landmark.LEFT_WRIST, Landmark.RIGHT_WRIST)
        ) / 3.0
        total += frame_speed
        comparisons += 1
    return total / comparisons if comparisons else 0.0


def body_openness(snapshot: PoseSnapshot) -> float:
    """
    Openness in [0, 1] from arm angles and wrist height.

    Arm angle is measured between shoulder→wrist and the line toward the
    opposite shoulder, so arms spread wide give 180°. Wrist height is
    normalised by shoulder width.
    """
    left_shoulder = snapshot.point(Landmark.LEFT_SHOULDER)
    right_shoulder = snapshot.point(Landmark.RIGHT_SHOULDER)
    left_wrist = snapshot.point(Landmark.LEFT_WRIST)
    right_wrist = snapshot.point(Landmark.RIGHT_WRIST)

    shoulder_vector = right_shoulder - left_shoulder
    shoulder_width = float(np.linalg.norm(shoulder_vector))
    if shoulder_width == 0.0:
        return 0.0

    left_angle = angle_between(left_wrist - left_shoulder, shoulder_vector)
    right_angle = angle_between(right_wrist - right_shoulder, -shoulder_vector)

    left_height = (left_wrist[1] - left_shoulder[1]) / shoulder_width
    right_height = (right_wrist[1] - right_shoulder[1]) / shoulder_width
    arm_height = (left_height + right_height) / 2.0

    angle_openness = clamp01((left_angle + right_angle - 90.0) / 180.0)
    height_openness = clamp01((arm_height + 1.0) / 2.0)
    return (angle_openness + height_openness) / 2.0


def body_stability(snapshots: Sequence[PoseSnapshot]) -> float:
    """1 - scaled variance of the body center, clamped to [0, 1]."""
    if len(snapshots) < 2:
        return 1.0
    centers = np.array([s.body_center for s in snapshots])
    mean_center = centers.mean(axis=0)
    variance = float(np.mean(np.sum(np.square(centers - mean_center), axis=1)))
    return clamp01(1.0 - variance * 100.0)


def body_tilt(snapshot: PoseSnapshot) -> float:
    """Average of shoulder-line tilt and torso lean, in degrees."""
    left_shoulder = snapshot.point(Landmark.LEFT_SHOULDER)
    right_shoulder = snapshot.point(Landmark.RIGHT_SHOULDER)

    # Shoulder line vs horizontal, independent of left/right ordering
    shoulder_angle = angle_between(right_shoulder - left_shoulder, np.array([1.0, 0.0, 0.0]))
    shoulder_tilt = min(shoulder_angle, 180.0 - shoulder_angle)

    shoulder_center = (left_shoulder + right_shoulder) / 2.0
    hip_center = (snapshot.point(Landmark.LEFT_HIP) + snapshot.point(Landmark.RIGHT_HIP)) / 2.0
    torso_tilt = angle_between(shoulder_center - hip_center, np.array([0.0, 1.0, 0.0]))

    return (shoulder_tilt + torso_tilt) / 2.0


@dataclass
class PoseFeatures:
    """Kinematic features from the current window."""
    movement_speed: float = 0.0
    openness: float = 0.0
    stability: float = 1.0
    tilt: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "movement_speed": round(self.movement_speed, 4),
            "openness": round(self.openness, 3),
            "stability": round(self.stability, 3),
            "tilt": round(self.tilt, 2),
        }


class PoseEmotionAnalyzer:
    """
    Infers arousal/valence from body kinematics.

    Arousal: movement speed (70%) + instability (30%)
    Valence: openness deviation (80%) + tilt (20%)
    """

    def __init__(self, config: Optional[PoseConfig] = None):
        self.config = config or PoseConfig()
        self.config.validate()
        self.enabled = True

        capacity = self.config.capacity
        self.snapshots: BoundedHistory[PoseSnapshot] = BoundedHistory(capacity)
        self.speed_history: BoundedHistory[float] = BoundedHistory(capacity)
        self.openness_history: BoundedHistory[float] = BoundedHistory(capacity)
        self.stability_history: BoundedHistory[float] = BoundedHistory(capacity)

        self.features = PoseFeatures()
        self._current: Optional[EmotionSample] = None

        self.last_valid_time: Optional[datetime] = None
        self._last_accepted: Optional[datetime] = None
        self._frame_counter = 0

        self.dropped_snapshots = 0
        self.skipped_snapshots = 0

        self.emotion_detected: EventChannel[EmotionSample] = EventChannel("pose_emotion")

    def process_snapshot(self, snapshot: PoseSnapshot, now: Optional[datetime] = None) -> bool:
        """
        Ingest one snapshot and re-analyze when enough are buffered.

        Returns True if the snapshot was enqueued. Invalid snapshots are
        discarded; rate-limited ones are skipped.
        """
        if not self.enabled:
            return False

        now = now or snapshot.timestamp

        if self._rate_limited(snapshot.timestamp):
            self.skipped_snapshots += 1
            return False

        try:
            snapshot.validate()
        except MalformedInputError as e:
            self.dropped_snapshots += 1
            if snapshot.valid:
                logger.warning(f"Discarding pose snapshot: {e}")
            else:
                logger.debug("No pose detected")
            return False

        self.snapshots.append(snapshot)
        self.last_valid_time = now
        self._last_accepted = snapshot.timestamp

        self.analyze(now)
        return True

    def _rate_limited(self, timestamp: datetime) -> bool:
        cfg = self.config
        self._frame_counter += 1
        if cfg.frame_skipping and (self._frame_counter - 1) % (cfg.frame_skipping + 1) != 0:
            return True
        if cfg.min_snapshot_interval > 0 and self._last_accepted is not None:
            elapsed = (timestamp - self._last_accepted).total_seconds()
            if elapsed < cfg.min_snapshot_interval:
                return True
        return False

    def analyze(self, now: Optional[datetime] = None) -> Optional[EmotionSample]:
        """Compute features and an EmotionSample from the buffered window."""
        window = self.snapshots.snapshot()
        if len(window) < self.config.min_snapshots:
            return None

        cfg = self.config
        latest = window[-1]
        self.features = PoseFeatures(
            movement_speed=movement_speed(window),
            openness=body_openness(latest),
            stability=body_stability(window),
            tilt=body_tilt(latest),
        )
        f = self.features

        # Arousal
        movement_arousal = clamp01(f.movement_speed / cfg.movement_threshold)
        # Stability at or below the threshold reads as fully unstable
        instability_arousal = clamp01((1.0 - f.stability) / (1.0 - cfg.stability_threshold))
        arousal = movement_arousal * 0.7 + instability_arousal * 0.3

        # Valence
        if f.openness > cfg.openness_threshold:
            openness_valence = clamp01(
                (f.openness - cfg.openness_threshold) / (1.0 - cfg.openness_threshold)
            )
        else:
            openness_valence = -clamp01(
                (cfg.openness_threshold - f.openness) / cfg.openness_threshold
            )

        # Slight lean reads as engagement, heavy lean as negative
        tilt_valence = 0.0
        if 0 < f.tilt < cfg.tilt_threshold:
            tilt_valence = clamp01(f.tilt / cfg.tilt_threshold * 0.5)
        elif f.tilt > cfg.tilt_threshold:
            tilt_valence = -clamp01((f.tilt - cfg.tilt_threshold) / cfg.tilt_threshold)

        valence = openness_valence * 0.8 + tilt_valence * 0.2

        # Intensity
        movement_intensity = clamp01(f.movement_speed / 2.0)
        openness_intensity = abs(f.openness - 0.5) * 2.0
        intensity = (movement_intensity + openness_intensity + abs(valence) + arousal) / 4.0

        self.speed_history.append(f.movement_speed)
        self.openness_history.append(f.openness)
        self.stability_history.append(f.stability)

        # Confidence
        data_quality = clamp01(len(window) / cfg.history_window)
        confidence = (data_quality + self._consistency()) * 0.5

        sample = EmotionSample.build(
            arousal=arousal,
            valence=valence,
            intensity=intensity,
            confidence=confidence,
            voice_weight=0.0,
            pose_weight=1.0,
            timestamp=now or latest.timestamp,
        )
        self._current = sample
        self.emotion_detected.publish(sample)

        if sample.confidence > 0.4:
            logger.debug(
                f"Pose emotion: arousal={sample.arousal:.2f}, valence={sample.valence:.2f}, "
                f"speed={f.movement_speed:.2f}, openness={f.openness:.2f}"
            )
        return sample

    def _consistency(self) -> float:
        """Low spread in recent movement speed means consistent data."""
        speeds = self.speed_history.snapshot()
        if len(speeds) < 5:
            return 0.5
        return clamp01(1.0 - float(np.std(speeds)) / 2.0)

    def has_recent_data(self, now: Optional[datetime] = None) -> bool:
        if not self.enabled or self.last_valid_time is None or self._current is None:
            return False
        now = now or datetime.now()
        return (now - self.last_valid_time).total_seconds() < self.config.validity_period

    def current_emotion(self) -> Optional[EmotionSample]:
        return self._current

    def current_features(self) -> PoseFeatures:
        return self.features

    def reset(self):
        self.snapshots.clear()
        self.speed_history.clear()
        self.openness_history.clear()
        self.stability_history.clear()
        self.features = PoseFeatures()
        self._current = None
        self.last_valid_time = None
        self._last_accepted = None
        self._frame_counter = 0
        self.dropped_snapshots = 0
        self.skipped_snapshots = 0
        logger.info("Pose analysis data reset")
