"""
Emotion Data Model

Arousal/valence representation shared by every stage of the pipeline,
plus the deterministic label classifier.

Arousal: -1 (very calm) to 1 (very agitated)
Valence: -1 (negative) to 1 (positive)
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Any, Optional
from enum import Enum


class EmotionLabel(Enum):
    """Discrete emotion derived from the arousal-valence plane."""
    NEUTRAL = "neutral"
    HAPPY = "happy"
    EXCITED = "excited"
    FRUSTRATED = "frustrated"
    ANGRY = "angry"
    CALM = "calm"
    FOCUSED = "focused"
    STRESSED = "stressed"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


# Classification thresholds
LOW_SIGNAL_INTENSITY = 0.2
POSITIVE_VALENCE = 0.3
NEGATIVE_VALENCE = -0.3

# Significant change thresholds
INTENSITY_CHANGE = 0.3
AROUSAL_CHANGE = 0.4
VALENCE_CHANGE = 0.4


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def lerp(start: float, end: float, factor: float) -> float:
    """Linear interpolation, factor clamped to [0, 1]."""
    factor = clamp01(factor)
    return start + (end - start) * factor


def classify(arousal: float, valence: float, intensity: float) -> EmotionLabel:
    """
    Map an (arousal, valence, intensity) point to a discrete label.

    Priority ladder:
    1. Low intensity floor → NEUTRAL
    2. Positive valence: EXCITED > HAPPY > CALM
    3. Negative valence: ANGRY > FRUSTRATED > STRESSED
    4. Neutral valence band: FOCUSED > NEUTRAL
    """
    if intensity < LOW_SIGNAL_INTENSITY:
        return EmotionLabel.NEUTRAL

    if valence > POSITIVE_VALENCE:
        if arousal > 0.5:
            return EmotionLabel.EXCITED
        if arousal > 0.2:
            return EmotionLabel.HAPPY
        return EmotionLabel.CALM

    if valence < NEGATIVE_VALENCE:
        if arousal > 0.6:
            return EmotionLabel.ANGRY
        if arousal > 0.3:
            return EmotionLabel.FRUSTRATED
        return EmotionLabel.STRESSED

    if arousal > 0.4:
        return EmotionLabel.FOCUSED
    return EmotionLabel.NEUTRAL


@dataclass(frozen=True)
class EmotionSample:
    """
    One affect estimate.

    Immutable: stages derive new samples with build() or with_weights()
    instead of mutating the one they received. The label is always
    derived from the continuous values.
    """
    arousal: float = 0.0            # -1.0 to 1.0
    valence: float = 0.0            # -1.0 to 1.0
    intensity: float = 0.0          # 0.0 - 1.0
    confidence: float = 0.0         # 0.0 - 1.0
    label: EmotionLabel = EmotionLabel.NEUTRAL
    voice_weight: float = 0.0
    pose_weight: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def build(
        cls,
        arousal: float,
        valence: float,
        intensity: float,
        confidence: float,
        voice_weight: float = 0.0,
        pose_weight: float = 0.0,
        timestamp: Optional[datetime] = None
    ) -> "EmotionSample":
        """Clamp all dimensions into range and classify."""
        arousal = clamp(arousal, -1.0, 1.0)
        valence = clamp(valence, -1.0, 1.0)
        intensity = clamp01(intensity)
        return cls(
            arousal=arousal,
            valence=valence,
            intensity=intensity,
            confidence=clamp01(confidence),
            label=classify(arousal, valence, intensity),
            voice_weight=clamp01(voice_weight),
            pose_weight=clamp01(pose_weight),
            timestamp=timestamp or datetime.now(),
        )

    @classmethod
    def neutral(cls, timestamp: Optional[datetime] = None) -> "EmotionSample":
        """The zero sample: no signal from any source."""
        return cls(timestamp=timestamp or datetime.now())

    def with_weights(self, voice_weight: float, pose_weight: float) -> "EmotionSample":
        return replace(self, voice_weight=voice_weight, pose_weight=pose_weight)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label.value,
            "arousal": round(self.arousal, 3),
            "valence": round(self.valence, 3),
            "intensity": round(self.intensity, 3),
            "confidence": round(self.confidence, 3),
            "voice_weight": round(self.voice_weight, 3),
            "pose_weight": round(self.pose_weight, 3),
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        return (f"Emotion: {self.label.display_name}, Confidence: {self.confidence:.2f}, "
                f"Arousal: {self.arousal:.2f}, Valence: {self.valence:.2f}")


def is_significant_change(previous: EmotionSample, current: EmotionSample) -> bool:
    """Label change or a large jump in any continuous dimension."""
    if previous.label != current.label:
        return True

    if abs(previous.intensity - current.intensity) > INTENSITY_CHANGE:
        return True

    return (abs(previous.arousal - current.arousal) > AROUSAL_CHANGE or
            abs(previous.valence - current.valence) > VALENCE_CHANGE)
