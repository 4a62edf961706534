"""
Affect Engine Configuration

Loads environment variables and provides configuration settings for every
stage of the pipeline. Each tunable has an AFFECT_* variable and a default.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

# Load .env.local first (for local development), then .env as fallback
env_local = Path.cwd() / '.env.local'
env_file = Path.cwd() / '.env'

if env_local.exists():
    load_dotenv(env_local)
elif env_file.exists():
    load_dotenv(env_file)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def configure_logging(level: Optional[str] = None):
    """Configure root logging for the engine (AFFECT_LOG_LEVEL by default)."""
    level_name = (level or os.getenv("AFFECT_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )


@dataclass
class VoiceConfig:
    """Settings for the voice signal analyzer."""
    sample_rate: int = 16000
    block_size: int = 1024
    volume_margin: float = 0.02          # Added on top of the noise floor
    initial_noise_floor: float = 0.01
    min_speech_frames: int = 5           # Consecutive loud frames before speech counts
    history_capacity: int = 50
    speech_event_capacity: int = 20
    speech_rate_window: float = 10.0     # Seconds
    validity_period: float = 5.0         # Seconds
    min_samples: int = 10
    calibration_seconds: float = 2.0
    calibration_min_samples: int = 10    # Volumes needed before the floor is trusted
    min_pitch_period: int = 20
    max_pitch_period: int = 200
    baseline_pitch: float = 150.0        # Hz
    baseline_speech_rate: float = 60.0   # Words per minute
    lexical_blend: float = 0.3
    lexical_clamp: float = 0.5           # Bound on the cumulative lexical nudge
    cleanup_interval: float = 30.0       # Seconds
    fold_interval: float = 0.1           # Seconds

    def validate(self):
        if self.sample_rate <= 0 or self.block_size <= 0:
            raise ConfigurationError("sample_rate and block_size must be positive")
        if self.history_capacity <= 0 or self.speech_event_capacity <= 0:
            raise ConfigurationError("voice history capacities must be positive")
        if self.calibration_min_samples < 1:
            raise ConfigurationError("calibration_min_samples must be at least 1")
        if self.min_speech_frames < 1:
            raise ConfigurationError("min_speech_frames must be at least 1")
        if not 0 < self.min_pitch_period < self.max_pitch_period:
            raise ConfigurationError("pitch period range is empty")
        if not 0.0 < self.lexical_blend <= 1.0:
            raise ConfigurationError("lexical_blend must be in (0, 1]")
        if self.lexical_clamp < 0:
            raise ConfigurationError("lexical_clamp must be non-negative")

    @classmethod
    def from_env(cls) -> "VoiceConfig":
        return cls(
            sample_rate=_env_int("AFFECT_VOICE_SAMPLE_RATE", 16000),
            block_size=_env_int("AFFECT_VOICE_BLOCK_SIZE", 1024),
            volume_margin=_env_float("AFFECT_VOICE_VOLUME_MARGIN", 0.02),
            initial_noise_floor=_env_float("AFFECT_VOICE_NOISE_FLOOR", 0.01),
            min_speech_frames=_env_int("AFFECT_VOICE_MIN_SPEECH_FRAMES", 5),
            history_capacity=_env_int("AFFECT_VOICE_HISTORY", 50),
            speech_event_capacity=_env_int("AFFECT_VOICE_SPEECH_EVENTS", 20),
            speech_rate_window=_env_float("AFFECT_VOICE_RATE_WINDOW", 10.0),
            validity_period=_env_float("AFFECT_VOICE_VALIDITY", 5.0),
            min_samples=_env_int("AFFECT_VOICE_MIN_SAMPLES", 10),
            calibration_seconds=_env_float("AFFECT_VOICE_CALIBRATION", 2.0),
            calibration_min_samples=_env_int("AFFECT_VOICE_CALIBRATION_MIN_SAMPLES", 10),
            min_pitch_period=_env_int("AFFECT_VOICE_MIN_PERIOD", 20),
            max_pitch_period=_env_int("AFFECT_VOICE_MAX_PERIOD", 200),
            baseline_pitch=_env_float("AFFECT_VOICE_BASELINE_PITCH", 150.0),
            baseline_speech_rate=_env_float("AFFECT_VOICE_BASELINE_RATE", 60.0),
            lexical_blend=_env_float("AFFECT_VOICE_LEXICAL_BLEND", 0.3),
            lexical_clamp=_env_float("AFFECT_VOICE_LEXICAL_CLAMP", 0.5),
            cleanup_interval=_env_float("AFFECT_VOICE_CLEANUP_INTERVAL", 30.0),
            fold_interval=_env_float("AFFECT_VOICE_FOLD_INTERVAL", 0.1),
        )


@dataclass
class PoseConfig:
    """Settings for the pose signal analyzer."""
    validity_period: float = 3.0
    history_window: int = 10
    max_history: int = 15                # Hard cap regardless of history_window
    min_snapshots: int = 5
    openness_threshold: float = 0.6
    movement_threshold: float = 0.1
    stability_threshold: float = 0.3
    tilt_threshold: float = 15.0         # Degrees
    frame_skipping: int = 0              # Skip N snapshots after each accepted one
    min_snapshot_interval: float = 0.0   # Seconds between accepted snapshots

    @property
    def capacity(self) -> int:
        return min(self.history_window, self.max_history)

    def validate(self):
        if self.capacity <= 0:
            raise ConfigurationError("pose history capacity must be positive")
        if self.min_snapshots < 2:
            raise ConfigurationError("min_snapshots must be at least 2")
        if self.min_snapshots > self.capacity:
            raise ConfigurationError(
                f"min_snapshots ({self.min_snapshots}) exceeds history capacity ({self.capacity})"
            )
        if not 0.0 < self.openness_threshold < 1.0:
            raise ConfigurationError("openness_threshold must be in (0, 1)")
        if not 0.0 <= self.stability_threshold < 1.0:
            raise ConfigurationError("stability_threshold must be in [0, 1)")
        if self.movement_threshold <= 0 or self.tilt_threshold <= 0:
            raise ConfigurationError("movement and tilt thresholds must be positive")
        if self.frame_skipping < 0 or self.min_snapshot_interval < 0:
            raise ConfigurationError("rate limiting settings must be non-negative")

    @classmethod
    def from_env(cls) -> "PoseConfig":
        return cls(
            validity_period=_env_float("AFFECT_POSE_VALIDITY", 3.0),
            history_window=_env_int("AFFECT_POSE_HISTORY", 10),
            max_history=_env_int("AFFECT_POSE_MAX_HISTORY", 15),
            min_snapshots=_env_int("AFFECT_POSE_MIN_SNAPSHOTS", 5),
            openness_threshold=_env_float("AFFECT_POSE_OPENNESS", 0.6),
            movement_threshold=_env_float("AFFECT_POSE_MOVEMENT", 0.1),
            stability_threshold=_env_float("AFFECT_POSE_STABILITY", 0.3),
            tilt_threshold=_env_float("AFFECT_POSE_TILT", 15.0),
            frame_skipping=_env_int("AFFECT_POSE_FRAME_SKIP", 0),
            min_snapshot_interval=_env_float("AFFECT_POSE_MIN_INTERVAL", 0.0),
        )


@dataclass
class FusionConfig:
    """Settings for the emotion fusion engine."""
    interval: float = 1.0
    smoothing_factor: float = 0.3
    voice_weight: float = 0.6
    pose_weight: float = 0.4
    history_capacity: int = 10
    use_voice: bool = True
    use_pose: bool = True

    def validate(self):
        if not 0.0 < self.smoothing_factor <= 1.0:
            raise ConfigurationError("smoothing_factor must be in (0, 1]")
        if self.voice_weight < 0 or self.pose_weight < 0:
            raise ConfigurationError("source weights must be non-negative")
        if self.history_capacity <= 0:
            raise ConfigurationError("history_capacity must be positive")

    @classmethod
    def from_env(cls) -> "FusionConfig":
        return cls(
            interval=_env_float("AFFECT_FUSION_INTERVAL", 1.0),
            smoothing_factor=_env_float("AFFECT_FUSION_SMOOTHING", 0.3),
            voice_weight=_env_float("AFFECT_FUSION_VOICE_WEIGHT", 0.6),
            pose_weight=_env_float("AFFECT_FUSION_POSE_WEIGHT", 0.4),
            history_capacity=_env_int("AFFECT_FUSION_HISTORY", 10),
            use_voice=_env_bool("AFFECT_FUSION_USE_VOICE", True),
            use_pose=_env_bool("AFFECT_FUSION_USE_POSE", True),
        )


@dataclass
class ProfilerConfig:
    """Settings for the behavior profiler."""
    interval: float = 60.0
    learning_window: int = 10
    performance_capacity: int = 100
    stability_window: int = 10
    beginner_play_seconds: float = 300.0
    casual_commands_per_minute: float = 1.0
    active_threshold: float = 3.0        # Commands per minute
    stability_threshold: float = 0.7
    struggling_stability: float = 0.3
    struggling_progress: float = 0.1
    learning_slope_threshold: float = 0.05
    diversity_threshold: float = 0.7
    focus_threshold: float = 0.8
    competitive_commands_per_minute: float = 5.0
    relaxed_stability: float = 0.8
    pattern_floor: float = 0.3
    pattern_retention: float = 1800.0    # Seconds
    pattern_blend: float = 0.3

    def validate(self):
        if self.learning_window < 2 or self.performance_capacity <= 0:
            raise ConfigurationError("learning_window must be >= 2 and capacities positive")
        if self.stability_window <= 0:
            raise ConfigurationError("stability_window must be positive")
        if not 0.0 < self.pattern_blend <= 1.0:
            raise ConfigurationError("pattern_blend must be in (0, 1]")
        if self.pattern_retention <= 0:
            raise ConfigurationError("pattern_retention must be positive")

    @classmethod
    def from_env(cls) -> "ProfilerConfig":
        return cls(
            interval=_env_float("AFFECT_PROFILER_INTERVAL", 60.0),
            learning_window=_env_int("AFFECT_PROFILER_LEARNING_WINDOW", 10),
            performance_capacity=_env_int("AFFECT_PROFILER_PERFORMANCE_CAPACITY", 100),
            stability_window=_env_int("AFFECT_PROFILER_STABILITY_WINDOW", 10),
            beginner_play_seconds=_env_float("AFFECT_PROFILER_BEGINNER_SECONDS", 300.0),
            casual_commands_per_minute=_env_float("AFFECT_PROFILER_CASUAL_CPM", 1.0),
            active_threshold=_env_float("AFFECT_PROFILER_ACTIVE_CPM", 3.0),
            stability_threshold=_env_float("AFFECT_PROFILER_STABILITY", 0.7),
            struggling_stability=_env_float("AFFECT_PROFILER_STRUGGLING_STABILITY", 0.3),
            struggling_progress=_env_float("AFFECT_PROFILER_STRUGGLING_PROGRESS", 0.1),
            learning_slope_threshold=_env_float("AFFECT_PROFILER_SLOPE", 0.05),
            diversity_threshold=_env_float("AFFECT_PROFILER_DIVERSITY", 0.7),
            focus_threshold=_env_float("AFFECT_PROFILER_FOCUS", 0.8),
            competitive_commands_per_minute=_env_float("AFFECT_PROFILER_COMPETITIVE_CPM", 5.0),
            relaxed_stability=_env_float("AFFECT_PROFILER_RELAXED_STABILITY", 0.8),
            pattern_floor=_env_float("AFFECT_PROFILER_PATTERN_FLOOR", 0.3),
            pattern_retention=_env_float("AFFECT_PROFILER_PATTERN_RETENTION", 1800.0),
            pattern_blend=_env_float("AFFECT_PROFILER_PATTERN_BLEND", 0.3),
        )


@dataclass
class AffectConfig:
    """Complete configuration tree for the pipeline."""
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    pose: PoseConfig = field(default_factory=PoseConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    profiler: ProfilerConfig = field(default_factory=ProfilerConfig)

    def validate(self) -> "AffectConfig":
        self.voice.validate()
        self.pose.validate()
        self.fusion.validate()
        self.profiler.validate()
        return self

    @classmethod
    def from_env(cls) -> "AffectConfig":
        return cls(
            voice=VoiceConfig.from_env(),
            pose=PoseConfig.from_env(),
            fusion=FusionConfig.from_env(),
            profiler=ProfilerConfig.from_env(),
        ).validate()
