"""
Affect Pipeline Coordinator

Wires the stages together with explicit dependency injection:

    VoiceEmotionAnalyzer ─┐
                          ├─> EmotionFusionEngine ──> BehaviorProfiler
    PoseEmotionAnalyzer  ─┘            │
                                       └──> EmotionEventSink

Each stage runs on its own cadence from a single tick(). Inputs may arrive
at any rate between ticks; the tick reads whatever is buffered.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Any

from .config import AffectConfig
from .dsp import AudioBlock
from .emotion import EmotionSample
from .events import EmotionEventSink, LoggingEmotionSink
from .fusion import EmotionFusionEngine, FusionResult
from .lexicon import LexicalScore
from .pose import PoseEmotionAnalyzer, PoseSnapshot
from .profiler import BehaviorProfiler, SessionStats, UserProfile
from .voice import VoiceEmotionAnalyzer

logger = logging.getLogger(__name__)


@dataclass
class PipelineUpdate:
    """What happened during one tick."""
    timestamp: datetime
    voice_sample: Optional[EmotionSample] = None
    fusion: Optional[FusionResult] = None
    profile_analyzed: bool = False

    @property
    def emotion(self) -> Optional[EmotionSample]:
        return self.fusion.sample if self.fusion else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "voice_sample": self.voice_sample.to_dict() if self.voice_sample else None,
            "fusion": self.fusion.to_dict() if self.fusion else None,
            "profile_analyzed": self.profile_analyzed,
        }


class AffectPipeline:
    """
    Single integration point for the affect engine.

    Every stage can be injected; missing ones are built from `config`.
    """

    def __init__(
        self,
        config: Optional[AffectConfig] = None,
        voice: Optional[VoiceEmotionAnalyzer] = None,
        pose: Optional[PoseEmotionAnalyzer] = None,
        fusion: Optional[EmotionFusionEngine] = None,
        profiler: Optional[BehaviorProfiler] = None,
        sink: Optional[EmotionEventSink] = None
    ):
        self.config = (config or AffectConfig()).validate()

        self.voice = voice or VoiceEmotionAnalyzer(self.config.voice)
        self.pose = pose or PoseEmotionAnalyzer(self.config.pose)
        self.sink = sink or LoggingEmotionSink()
        self.fusion = fusion or EmotionFusionEngine(
            voice_source=self.voice,
            pose_source=self.pose,
            config=self.config.fusion,
            sink=self.sink,
        )
        self.profiler = profiler or BehaviorProfiler(self.config.profiler)

        self._unsubscribe = self.fusion.changes.subscribe(self.profiler.on_emotion_change)
        self._last_fold: Optional[datetime] = None
        self.ticks = 0

        logger.info(f"Affect pipeline ready (input mode: {self.fusion.input_mode})")

    @classmethod
    def from_env(cls, sink: Optional[EmotionEventSink] = None) -> "AffectPipeline":
        return cls(config=AffectConfig.from_env(), sink=sink)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def process_audio_block(self, samples: AudioBlock, now: Optional[datetime] = None) -> bool:
        return self.voice.process_audio_block(samples, now)

    def process_text(self, text: str, now: Optional[datetime] = None) -> Optional[LexicalScore]:
        return self.voice.process_text(text, now)

    def process_snapshot(self, snapshot: PoseSnapshot, now: Optional[datetime] = None) -> bool:
        return self.pose.process_snapshot(snapshot, now)

    def record_command(self, command: str):
        self.profiler.record_command(command)

    def update_stats(self, stats: SessionStats):
        self.profiler.update_stats(stats)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, now: Optional[datetime] = None) -> PipelineUpdate:
        """Advance every stage whose cadence is due."""
        now = now or datetime.now()
        self.ticks += 1
        update = PipelineUpdate(timestamp=now)

        if (self._last_fold is None or
                (now - self._last_fold).total_seconds() >= self.config.voice.fold_interval):
            update.voice_sample = self.voice.fold(now)
            self._last_fold = now

        update.fusion = self.fusion.update(now)
        update.profile_analyzed = self.profiler.update(now)
        return update

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_emotion(self) -> EmotionSample:
        return self.fusion.current_emotion()

    def profile(self) -> UserProfile:
        return self.profiler.profile

    def reset(self):
        """Clear every stage's state for a new session."""
        self.voice.reset()
        self.pose.reset()
        self.fusion.reset()
        self.profiler.reset()
        self._last_fold = None
        self.ticks = 0
        logger.info("Affect pipeline reset")

    def close(self):
        """Detach the profiler from the fusion change channel."""
        self._unsubscribe()
