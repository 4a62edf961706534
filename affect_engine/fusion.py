"""
Emotion Fusion Module

Combines the voice and pose analyzers' latest estimates into one smoothed
EmotionSample.

Per cycle:
1. Poll each enabled source for recent data
2. Blend: both → normalized configured weights; one → full weight;
   none → the zero/Neutral sample (absence decays, it never holds state)
3. Smooth toward the new value from the previous published sample
4. Re-classify from the smoothed values
5. Record and announce significant changes; hand every cycle to the sink
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple, Any

from .config import FusionConfig
from .emotion import EmotionLabel, EmotionSample, clamp01, lerp, is_significant_change
from .events import EmotionChange, EmotionEventSink, EventChannel
from .history import BoundedHistory

logger = logging.getLogger(__name__)


class EmotionSource(Protocol):
    """Upstream analyzer as seen by the fusion engine."""

    def has_recent_data(self, now: Optional[datetime] = None) -> bool:
        ...

    def current_emotion(self) -> Optional[EmotionSample]:
        ...


@dataclass
class FusionResult:
    """Outcome of one fusion cycle."""
    sample: EmotionSample          # Published (smoothed) sample
    raw: EmotionSample             # Blend before smoothing
    significant: bool
    previous_label: EmotionLabel
    voice_active: bool
    pose_active: bool
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample": self.sample.to_dict(),
            "raw": self.raw.to_dict(),
            "significant": self.significant,
            "previous_label": self.previous_label.value,
            "voice_active": self.voice_active,
            "pose_active": self.pose_active,
            "timestamp": self.timestamp.isoformat(),
        }


class EmotionFusionEngine:
    """
    Weighted, smoothed fusion of voice and pose estimates.

    Sources are injected at construction; either may be None.
    """

    def __init__(
        self,
        voice_source: Optional[EmotionSource] = None,
        pose_source: Optional[EmotionSource] = None,
        config: Optional[FusionConfig] = None,
        sink: Optional[EmotionEventSink] = None
    ):
        self.config = config or FusionConfig()
        self.config.validate()
        self.voice_source = voice_source
        self.pose_source = pose_source
        self.sink = sink

        self.use_voice = self.config.use_voice
        self.use_pose = self.config.use_pose
        self.voice_weight = self.config.voice_weight
        self.pose_weight = self.config.pose_weight

        self._current = EmotionSample.neutral()
        self._history: BoundedHistory[EmotionSample] = BoundedHistory(self.config.history_capacity)
        self._last_fusion: Optional[datetime] = None
        self.cycles = 0

        # Outbound
        self.changes: EventChannel[EmotionChange] = EventChannel("emotion_changed")

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def update(self, now: Optional[datetime] = None) -> Optional[FusionResult]:
        """Run a fusion cycle if the configured interval has elapsed."""
        now = now or datetime.now()
        if (self._last_fusion is not None and
                (now - self._last_fusion).total_seconds() < self.config.interval):
            return None
        return self.fuse(now)

    def trigger(self, now: Optional[datetime] = None) -> FusionResult:
        """Manually run a fusion cycle regardless of cadence."""
        logger.debug("Manual fusion triggered")
        return self.fuse(now)

    def fuse(self, now: Optional[datetime] = None) -> FusionResult:
        now = now or datetime.now()
        self._last_fusion = now
        self.cycles += 1

        voice = self._poll(self.voice_source, self.use_voice, now)
        pose = self._poll(self.pose_source, self.use_pose, now)

        previous = self._current
        raw = self._blend(voice, pose, now)

        if voice is None and pose is None:
            # No signal: publish the zero sample directly
            published = raw
        else:
            factor = self.config.smoothing_factor
            published = EmotionSample.build(
                arousal=lerp(previous.arousal, raw.arousal, factor),
                valence=lerp(previous.valence, raw.valence, factor),
                intensity=lerp(previous.intensity, raw.intensity, factor),
                confidence=lerp(previous.confidence, raw.confidence, factor),
                voice_weight=raw.voice_weight,
                pose_weight=raw.pose_weight,
                timestamp=now,
            )

        significant = is_significant_change(previous, published)
        self._current = published

        if significant:
            self._history.append(published)
            logger.info(f"Emotion changed: {previous.label.display_name} → {published.label.display_name}")
            self.changes.publish(EmotionChange(
                old_label=previous.label,
                new_label=published.label,
                sample=published,
                timestamp=now,
            ))

        if self.sink is not None:
            self.sink.log_emotion_event(published, significant)

        return FusionResult(
            sample=published,
            raw=raw,
            significant=significant,
            previous_label=previous.label,
            voice_active=voice is not None,
            pose_active=pose is not None,
            timestamp=now,
        )

    def _poll(
        self,
        source: Optional[EmotionSource],
        enabled: bool,
        now: datetime
    ) -> Optional[EmotionSample]:
        if not enabled or source is None:
            return None
        if not source.has_recent_data(now):
            return None
        return source.current_emotion()

    def _blend(
        self,
        voice: Optional[EmotionSample],
        pose: Optional[EmotionSample],
        now: datetime
    ) -> EmotionSample:
        if voice is None and pose is None:
            return EmotionSample.neutral(now)

        voice_weight, pose_weight = self.normalized_weights(voice is not None, pose is not None)
        parts: List[Tuple[EmotionSample, float]] = [
            (s, w) for s, w in ((voice, voice_weight), (pose, pose_weight)) if s is not None
        ]

        return EmotionSample.build(
            arousal=sum(s.arousal * w for s, w in parts),
            valence=sum(s.valence * w for s, w in parts),
            intensity=sum(s.intensity * w for s, w in parts),
            confidence=sum(s.confidence * w for s, w in parts),
            voice_weight=voice_weight,
            pose_weight=pose_weight,
            timestamp=now,
        )

    def normalized_weights(self, has_voice: bool, has_pose: bool) -> Tuple[float, float]:
        """
        Effective (voice, pose) weights for the sources that reported.

        Both → configured weights normalized to sum to 1 (even split if both
        are zero); one → 1.0 for it and exactly 0.0 for the other.
        """
        if has_voice and has_pose:
            total = self.voice_weight + self.pose_weight
            if total <= 0:
                return 0.5, 0.5
            return self.voice_weight / total, self.pose_weight / total
        if has_voice:
            return 1.0, 0.0
        if has_pose:
            return 0.0, 1.0
        return 0.0, 0.0

    # ------------------------------------------------------------------
    # Input mode
    # ------------------------------------------------------------------

    def set_voice_only_mode(self):
        self.use_voice = True
        self.use_pose = False
        logger.info("Fusion input mode: voice only")

    def set_pose_only_mode(self):
        self.use_voice = False
        self.use_pose = True
        logger.info("Fusion input mode: pose only")

    def set_combined_mode(self):
        self.use_voice = True
        self.use_pose = True
        logger.info("Fusion input mode: voice + pose")

    def set_voice_weight(self, weight: float):
        """Set the voice weight; pose gets the remainder."""
        self.voice_weight = clamp01(weight)
        self.pose_weight = 1.0 - self.voice_weight

    @property
    def input_mode(self) -> str:
        if self.use_voice and self.use_pose:
            return "Voice + Pose"
        if self.use_voice:
            return "Voice only"
        if self.use_pose:
            return "Pose only"
        return "Disabled"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_emotion(self) -> EmotionSample:
        return self._current

    def history(self) -> List[EmotionSample]:
        """Significant changes, oldest first."""
        return self._history.snapshot()

    def average_emotion(self) -> EmotionSample:
        """Mean of the recorded changes; the current sample if none."""
        samples = self._history.snapshot()
        if not samples:
            return self._current

        n = len(samples)
        return EmotionSample.build(
            arousal=sum(s.arousal for s in samples) / n,
            valence=sum(s.valence for s in samples) / n,
            intensity=sum(s.intensity for s in samples) / n,
            confidence=sum(s.confidence for s in samples) / n,
            voice_weight=sum(s.voice_weight for s in samples) / n,
            pose_weight=sum(s.pose_weight for s in samples) / n,
            timestamp=samples[-1].timestamp,
        )

    def reset(self):
        self._current = EmotionSample.neutral()
        self._history.clear()
        self._last_fusion = None
        self.cycles = 0
        logger.info("Emotion fusion reset")
