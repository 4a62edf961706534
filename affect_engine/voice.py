"""
Voice Signal Analyzer

Turns raw audio blocks and recognised-text events into an EmotionSample.

Per audio block:
1. RMS volume
2. Voice-activity detection with hysteresis (N consecutive loud frames)
3. While speaking: autocorrelation pitch + low/mid/high band energies

Per recognised-text event:
4. Speech rate from recognition events in a trailing window
5. Lexical sentiment nudge, blended exponentially and clamped

Periodically (fold):
6. Combine buffered features into arousal / valence / intensity / confidence
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Any

from .config import VoiceConfig
from .dsp import (
    AudioBlock, to_float_block, rms_volume, estimate_pitch,
    band_energies, mean_and_variance,
)
from .emotion import EmotionSample, clamp, clamp01, lerp
from .errors import InsufficientHistoryError, MalformedInputError
from .events import EventChannel
from .history import BoundedHistory
from .lexicon import LexicalScore, LexicalSentimentScorer

logger = logging.getLogger(__name__)

EVEN_SPLIT = (1.0 / 3.0, 1.0 / 3.0, 1.0 / 3.0)

# Arousal blend weights
VOLUME_AROUSAL_WEIGHT = 0.4
FREQUENCY_AROUSAL_WEIGHT = 0.3
SPEECH_RATE_AROUSAL_WEIGHT = 0.3

PITCH_WINDOW = 10            # Recent voiced frames used for valence
MIN_PITCH_SAMPLES = 5
SPEECH_RATE_CAPACITY = 20


@dataclass(frozen=True)
class VoiceFeatureFrame:
    """Features extracted from one audio block."""
    volume: float
    pitch_hz: float
    speech_rate_wpm: float
    low_energy: float
    mid_energy: float
    high_energy: float
    is_voice_active: bool
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "volume": round(self.volume, 4),
            "pitch_hz": round(self.pitch_hz, 1),
            "speech_rate_wpm": round(self.speech_rate_wpm, 1),
            "low_energy": round(self.low_energy, 3),
            "mid_energy": round(self.mid_energy, 3),
            "high_energy": round(self.high_energy, 3),
            "is_voice_active": self.is_voice_active,
            "timestamp": self.timestamp.isoformat(),
        }


class VoiceActivityDetector:
    """
    Volume-threshold VAD with hysteresis.

    A frame counts as speech only once `min_speech_frames` consecutive frames
    have reached noise_floor + margin. Any quiet frame resets the run.
    """

    def __init__(self, noise_floor: float, margin: float, min_speech_frames: int):
        self.noise_floor = noise_floor
        self.margin = margin
        self.min_speech_frames = min_speech_frames
        self.consecutive_voice_frames = 0
        self.consecutive_silence_frames = 0

    @property
    def threshold(self) -> float:
        return self.noise_floor + self.margin

    @property
    def is_active(self) -> bool:
        return self.consecutive_voice_frames >= self.min_speech_frames

    def update(self, volume: float) -> bool:
        """Feed one frame's volume. Returns True while speech is active."""
        if volume >= self.threshold:
            self.consecutive_voice_frames += 1
            self.consecutive_silence_frames = 0
        else:
            self.consecutive_silence_frames += 1
            self.consecutive_voice_frames = 0

        if self.consecutive_voice_frames == self.min_speech_frames:
            logger.debug(f"Voice activity detected: volume={volume:.4f}, threshold={self.threshold:.4f}")

        return self.is_active

    def reset(self):
        self.consecutive_voice_frames = 0
        self.consecutive_silence_frames = 0


class NoiseFloorCalibrator:
    """
    One-shot noise floor estimate.

    Collects volumes during the first `window_seconds` of audio, then takes
    the mean of the quietest 10%. Runs exactly once.
    """

    def __init__(self, window_seconds: float, min_samples: int = 10):
        self.window_seconds = window_seconds
        self.min_samples = min_samples
        self.started_at: Optional[datetime] = None
        self.finished = False
        self.noise_floor: Optional[float] = None
        self._volumes: List[float] = []

    def observe(self, volume: float, now: datetime) -> Optional[float]:
        """Record a volume. Returns the calibrated floor on the call that finishes."""
        if self.finished:
            return None

        if self.started_at is None:
            self.started_at = now
        self._volumes.append(volume)

        if (now - self.started_at).total_seconds() < self.window_seconds:
            return None

        self.finished = True
        if len(self._volumes) < self.min_samples:
            logger.warning(
                f"Noise floor calibration skipped: only {len(self._volumes)} samples "
                f"in {self.window_seconds}s"
            )
            self._volumes = []
            return None

        ordered = sorted(self._volumes)
        count = max(1, len(ordered) // 10)
        self.noise_floor = sum(ordered[:count]) / count
        self._volumes = []
        return self.noise_floor

    def reset(self):
        self.started_at = None
        self.finished = False
        self.noise_floor = None
        self._volumes = []


class VoiceEmotionAnalyzer:
    """
    Infers arousal/valence from voice features and recognised text.

    Audio and text arrive independently; fold() turns whatever is buffered
    into one EmotionSample. Every buffer is hard-capped.
    """

    def __init__(
        self,
        config: Optional[VoiceConfig] = None,
        scorer: Optional[LexicalSentimentScorer] = None
    ):
        self.config = config or VoiceConfig()
        self.config.validate()
        self.scorer = scorer or LexicalSentimentScorer()
        self.enabled = True

        cfg = self.config
        self.vad = VoiceActivityDetector(
            cfg.initial_noise_floor, cfg.volume_margin, cfg.min_speech_frames
        )
        self.calibrator = NoiseFloorCalibrator(
            cfg.calibration_seconds, cfg.calibration_min_samples
        )

        # Bounded histories
        self.volume_history: BoundedHistory[float] = BoundedHistory(cfg.history_capacity)
        self.pitch_history: BoundedHistory[float] = BoundedHistory(cfg.history_capacity)
        self.frames: BoundedHistory[VoiceFeatureFrame] = BoundedHistory(cfg.history_capacity)
        self.speech_rate_history: BoundedHistory[float] = BoundedHistory(SPEECH_RATE_CAPACITY)
        self.speech_events: BoundedHistory[datetime] = BoundedHistory(cfg.speech_event_capacity)

        # Lexical nudge state
        self.lexical_valence = 0.0
        self.lexical_arousal = 0.0
        self.last_recognized_text = ""

        # Current values
        self.current_pitch = 0.0
        self.current_speech_rate = 0.0
        self.current_bands: Tuple[float, float, float] = EVEN_SPLIT
        self._current: Optional[EmotionSample] = None

        # Timing
        self.last_active_time: Optional[datetime] = None
        self.last_block_time: Optional[datetime] = None
        self._last_cleanup: Optional[datetime] = None

        self.dropped_blocks = 0

        # Outbound
        self.emotion_detected: EventChannel[EmotionSample] = EventChannel("voice_emotion")

    # ------------------------------------------------------------------
    # Audio ingestion
    # ------------------------------------------------------------------

    def process_audio_block(self, samples: AudioBlock, now: Optional[datetime] = None) -> bool:
        """
        Analyze one audio block.

        Malformed blocks are discarded and logged. Returns True if the block
        was consumed.
        """
        if not self.enabled:
            return False

        now = now or datetime.now()
        try:
            block = to_float_block(samples, max_length=self.config.block_size)
        except MalformedInputError as e:
            self.dropped_blocks += 1
            logger.warning(f"Discarding audio block: {e}")
            return False

        volume = rms_volume(block)
        self.volume_history.append(volume)
        self.last_block_time = now

        floor = self.calibrator.observe(volume, now)
        if floor is not None:
            self.vad.noise_floor = floor
            logger.info(f"Noise floor calibrated: {floor:.4f}")

        is_active = self.vad.update(volume)
        pitch = 0.0
        bands = EVEN_SPLIT

        if is_active:
            self.last_active_time = now
            pitch = self._analyze_pitch(block)
            bands = band_energies(block)
            self.current_bands = bands

        self.frames.append(VoiceFeatureFrame(
            volume=volume,
            pitch_hz=pitch,
            speech_rate_wpm=self.current_speech_rate,
            low_energy=bands[0],
            mid_energy=bands[1],
            high_energy=bands[2],
            is_voice_active=is_active,
            timestamp=now,
        ))
        return True

    def _analyze_pitch(self, block) -> float:
        cfg = self.config
        try:
            pitch = estimate_pitch(
                block, cfg.sample_rate, cfg.min_pitch_period, cfg.max_pitch_period
            )
        except InsufficientHistoryError as e:
            logger.debug(f"Pitch skipped: {e}")
            return 0.0

        if pitch is None:
            return 0.0

        self.current_pitch = pitch
        self.pitch_history.append(pitch)
        return pitch

    # ------------------------------------------------------------------
    # Text ingestion
    # ------------------------------------------------------------------

    def process_text(self, text: str, now: Optional[datetime] = None) -> Optional[LexicalScore]:
        """Handle a recognised-text event: update speech rate and lexical nudge."""
        if not self.enabled:
            return None

        now = now or datetime.now()
        self.last_recognized_text = text or ""
        self.speech_events.append(now)

        self._update_speech_rate(now)

        score = self.scorer.score(text)
        limit = self.config.lexical_clamp
        blend = self.config.lexical_blend
        self.lexical_valence = clamp(lerp(self.lexical_valence, score.valence, blend), -limit, limit)
        self.lexical_arousal = clamp(lerp(self.lexical_arousal, score.arousal, blend), -limit, limit)

        logger.debug(
            f"Speech recognized: '{text}', rate={self.current_speech_rate:.1f} wpm, "
            f"lexical=({self.lexical_valence:.2f}, {self.lexical_arousal:.2f})"
        )
        return score

    def _update_speech_rate(self, now: datetime):
        cutoff = now - timedelta(seconds=self.config.speech_rate_window)
        recent = [t for t in self.speech_events.snapshot() if t >= cutoff]

        if len(recent) < 2:
            return

        span_minutes = (recent[-1] - recent[0]).total_seconds() / 60
        if span_minutes <= 0:
            return

        self.current_speech_rate = (len(recent) - 1) / span_minutes
        self.speech_rate_history.append(self.current_speech_rate)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def has_recent_data(self, now: Optional[datetime] = None) -> bool:
        """Enough samples buffered and speech seen within the validity period."""
        if not self.enabled or self.last_active_time is None:
            return False
        if len(self.volume_history) < self.config.min_samples:
            return False

        now = now or datetime.now()
        age = (now - self.last_active_time).total_seconds()
        return age < self.config.validity_period

    def fold(self, now: Optional[datetime] = None) -> Optional[EmotionSample]:
        """
        Combine buffered features into one EmotionSample.

        Returns None (and keeps the previous estimate) when there is no
        recent data.
        """
        now = now or datetime.now()
        self._maybe_cleanup(now)

        if not self.has_recent_data(now):
            return None

        cfg = self.config
        avg_volume, volume_variance = mean_and_variance(self.volume_history.snapshot())

        # Arousal: loudness, high-band energy, speech rate
        volume_arousal = 0.0
        if avg_volume > self.vad.threshold:
            volume_arousal = clamp01(
                clamp01((avg_volume - self.vad.threshold) * 2.0) +
                clamp01(volume_variance * 10.0)
            )

        active = [f for f in self.frames.snapshot() if f.is_voice_active][-PITCH_WINDOW:]
        high_energy = sum(f.high_energy for f in active) / len(active) if active else 0.0
        frequency_arousal = clamp01(high_energy * 2.0)

        rates = self.speech_rate_history.snapshot()
        speech_arousal = 0.0
        if rates:
            avg_rate = sum(rates) / len(rates)
            # Only faster-than-baseline speech raises arousal
            speech_arousal = clamp01((avg_rate - cfg.baseline_speech_rate) / 120.0)

        arousal = (
            volume_arousal * VOLUME_AROUSAL_WEIGHT +
            frequency_arousal * FREQUENCY_AROUSAL_WEIGHT +
            speech_arousal * SPEECH_RATE_AROUSAL_WEIGHT
        )

        # Valence: pitch relative to baseline
        valence = 0.0
        pitch_intensity = 0.0
        pitches = self.pitch_history.tail(PITCH_WINDOW)
        if len(pitches) >= MIN_PITCH_SAMPLES:
            avg_pitch, pitch_variance = mean_and_variance(pitches)
            if avg_pitch > cfg.baseline_pitch:
                valence = clamp01((avg_pitch - cfg.baseline_pitch) / 200.0)
            else:
                valence = -clamp01((cfg.baseline_pitch - avg_pitch) / 100.0)
            pitch_intensity = clamp01(pitch_variance / 1000.0)

        arousal = clamp(arousal + self.lexical_arousal, -1.0, 1.0)
        valence = clamp(valence + self.lexical_valence, -1.0, 1.0)

        intensity = clamp01(
            (clamp01(volume_variance * 10.0) + abs(arousal) + abs(valence)) / 3.0 +
            pitch_intensity * 0.25
        )

        volume_quality = clamp01(avg_volume / 0.5)
        confidence = (volume_quality + self.volume_history.fill_ratio) * 0.5

        sample = EmotionSample.build(
            arousal=arousal,
            valence=valence,
            intensity=intensity,
            confidence=confidence,
            voice_weight=1.0,
            pose_weight=0.0,
            timestamp=now,
        )
        self._current = sample
        self.emotion_detected.publish(sample)

        if sample.confidence > 0.3:
            logger.debug(
                f"Voice emotion: arousal={sample.arousal:.2f}, valence={sample.valence:.2f}, "
                f"intensity={sample.intensity:.2f}, confidence={sample.confidence:.2f}"
            )
        return sample

    def _maybe_cleanup(self, now: datetime):
        if (self._last_cleanup is None or
                (now - self._last_cleanup).total_seconds() >= self.config.cleanup_interval):
            self.cleanup(now)

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Purge recognition events older than twice the validity period."""
        now = now or datetime.now()
        cutoff = now - timedelta(seconds=self.config.validity_period * 2)
        removed = self.speech_events.purge(lambda t: t < cutoff)
        self._last_cleanup = now
        if removed:
            logger.debug(f"Purged {removed} stale speech events")
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_emotion(self) -> Optional[EmotionSample]:
        return self._current

    def current_features(self) -> Tuple[float, float, float]:
        """(average volume, current pitch Hz, current speech rate wpm)."""
        avg_volume, _ = mean_and_variance(self.volume_history.snapshot())
        return avg_volume, self.current_pitch, self.current_speech_rate

    @property
    def noise_floor(self) -> float:
        return self.vad.noise_floor

    def reset(self):
        """Clear all buffers and VAD state."""
        self.volume_history.clear()
        self.pitch_history.clear()
        self.frames.clear()
        self.speech_rate_history.clear()
        self.speech_events.clear()
        self.vad.reset()

        self.lexical_valence = 0.0
        self.lexical_arousal = 0.0
        self.last_recognized_text = ""
        self.current_pitch = 0.0
        self.current_speech_rate = 0.0
        self.current_bands = EVEN_SPLIT
        self._current = None
        self.last_active_time = None
        self.last_block_time = None
        self.dropped_blocks = 0
        logger.info("Voice analysis data reset")
