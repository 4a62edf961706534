"""
Behavior Profiler

Longer-horizon classification of the user from session statistics and the
fused emotion stream.

Classifications (recomputed on a coarse cadence):
- User type: Beginner / Casual / Expert / Active / Struggling
- Gameplay pattern: Exploratory / Goal-Oriented / Competitive / Relaxed / Social
- Learning state: Improving / Regressing / Mastering / Plateaued / Learning
- Behavior patterns: named, confidence-scored, decaying inferences

The classifiers are plain functions of a statistics snapshot, so the same
inputs always give the same answer regardless of call order.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Any

from .config import ProfilerConfig
from .emotion import EmotionSample, clamp01, lerp
from .errors import InsufficientHistoryError
from .events import EmotionChange, EventChannel
from .history import BoundedHistory
from .trends import TrendDetector, calculate_stability, frequency_summary

logger = logging.getLogger(__name__)

# Learning state thresholds
MASTERING_STABILITY = 0.8
MASTERING_MEAN = 0.7
PLATEAU_STABILITY = 0.9

# Pattern rule thresholds
FAST_LEARNER_PROGRESS = 0.3
FAST_LEARNER_MAX_PLAY_SECONDS = 600.0
STABLE_EMOTION = 0.9
ENGAGEMENT_HISTORY = 10


class UserType(Enum):
    BEGINNER = "beginner"
    CASUAL = "casual"
    ACTIVE = "active"
    EXPERT = "expert"
    STRUGGLING = "struggling"


class GameplayPattern(Enum):
    EXPLORATORY = "exploratory"
    GOAL_ORIENTED = "goal_oriented"
    SOCIAL = "social"
    COMPETITIVE = "competitive"
    RELAXED = "relaxed"


class LearningState(Enum):
    LEARNING = "learning"
    MASTERING = "mastering"
    PLATEAUED = "plateaued"
    IMPROVING = "improving"
    REGRESSING = "regressing"


RECOMMENDATIONS: Dict[UserType, List[str]] = {
    UserType.BEGINNER: [
        "Suggest trying more basic voice commands",
        "Keep a relaxed mindset and slowly get familiar with the system",
    ],
    UserType.STRUGGLING: [
        "Try lowering the game difficulty",
        "Suggest taking a break and adjusting your state",
        "Consider seeking help or checking tutorials",
    ],
    UserType.EXPERT: [
        "Try higher difficulty challenges",
        "Share experiences to help other users",
    ],
    UserType.ACTIVE: [
        "Maintain your current engagement",
        "Try exploring new features",
    ],
    UserType.CASUAL: [
        "Enjoy a relaxed gaming experience",
        "Try more interactive features",
    ],
}


@dataclass
class SessionStats:
    """Read-only aggregate counters supplied by the external session logger."""
    total_voice_commands: int = 0
    command_frequency: Dict[str, int] = field(default_factory=dict)
    total_session_seconds: float = 0.0
    average_confidence: float = 0.0
    total_game_actions: int = 0
    average_emotion_intensity: float = 0.0

    @property
    def session_minutes(self) -> float:
        return self.total_session_seconds / 60.0

    @property
    def commands_per_minute(self) -> float:
        if self.total_session_seconds <= 0:
            return 0.0
        return self.total_voice_commands / self.session_minutes

    @property
    def actions_per_minute(self) -> float:
        if self.total_session_seconds <= 0:
            return 0.0
        return self.total_game_actions / self.session_minutes


@dataclass
class UserProfile:
    """Live per-session profile. Only the profiler mutates it."""
    user_type: UserType = UserType.BEGINNER
    gameplay_pattern: GameplayPattern = GameplayPattern.EXPLORATORY
    learning_state: LearningState = LearningState.LEARNING
    total_play_time: float = 0.0          # Seconds
    commands_per_minute: float = 0.0
    emotion_stability: float = 0.0
    learning_progress: float = 0.0        # Performance slope
    engagement_level: float = 0.0
    preferred_commands: Dict[str, int] = field(default_factory=dict)
    emotion_distribution: Dict[str, float] = field(default_factory=dict)
    performance_history: List[float] = field(default_factory=list)
    last_analysis_time: Optional[datetime] = None

    def copy(self) -> "UserProfile":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_type": self.user_type.value,
            "gameplay_pattern": self.gameplay_pattern.value,
            "learning_state": self.learning_state.value,
            "total_play_time": round(self.total_play_time, 1),
            "commands_per_minute": round(self.commands_per_minute, 2),
            "emotion_stability": round(self.emotion_stability, 3),
            "learning_progress": round(self.learning_progress, 4),
            "engagement_level": round(self.engagement_level, 3),
            "preferred_commands": dict(self.preferred_commands),
            "emotion_distribution": {k: round(v, 3) for k, v in self.emotion_distribution.items()},
            "performance_points": len(self.performance_history),
            "last_analysis_time": self.last_analysis_time.isoformat() if self.last_analysis_time else None,
        }


@dataclass
class BehaviorPattern:
    """A named inference with confidence that decays out of the active list."""
    name: str
    description: str
    confidence: float
    detected_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "confidence": round(self.confidence, 3),
            "detected_at": self.detected_at.isoformat(),
        }


# ----------------------------------------------------------------------
# Classifiers
# ----------------------------------------------------------------------

def classify_user_type(
    play_seconds: float,
    commands_per_minute: float,
    emotion_stability: float,
    learning_progress: float,
    config: ProfilerConfig,
    default: UserType = UserType.BEGINNER
) -> UserType:
    """
    Rule cascade, first match wins:
    1. Short play time → BEGINNER
    2. Very low command rate → CASUAL
    3. High command rate → EXPERT if stable, else ACTIVE
    4. Low stability and low progress → STRUGGLING
    Otherwise `default` (the caller's previous type).
    """
    if play_seconds < config.beginner_play_seconds:
        return UserType.BEGINNER
    if commands_per_minute < config.casual_commands_per_minute:
        return UserType.CASUAL
    if commands_per_minute > config.active_threshold:
        if emotion_stability > config.stability_threshold:
            return UserType.EXPERT
        return UserType.ACTIVE
    if (emotion_stability < config.struggling_stability and
            learning_progress < config.struggling_progress):
        return UserType.STRUGGLING
    return default


def classify_gameplay_pattern(
    command_frequency: Dict[str, int],
    commands_per_minute: float,
    emotion_stability: float,
    config: ProfilerConfig,
    default: GameplayPattern = GameplayPattern.EXPLORATORY
) -> GameplayPattern:
    """
    Diversity first, then focus, then raw rate, then mood.

    An empty command map gives no evidence; `default` is returned.
    """
    if not command_frequency or sum(command_frequency.values()) <= 0:
        return default

    summary = frequency_summary(command_frequency)
    if summary["diversity"] > config.diversity_threshold:
        return GameplayPattern.EXPLORATORY
    if summary["focus"] > config.focus_threshold:
        return GameplayPattern.GOAL_ORIENTED
    if commands_per_minute > config.competitive_commands_per_minute:
        return GameplayPattern.COMPETITIVE
    if emotion_stability > config.relaxed_stability:
        return GameplayPattern.RELAXED
    return GameplayPattern.SOCIAL


def classify_learning_state(
    performances: Sequence[float],
    config: ProfilerConfig
) -> Tuple[LearningState, float]:
    """
    Learning state and slope from a recent performance series.

    Raises:
        InsufficientHistoryError: fewer than three points
    """
    detector = TrendDetector(
        window_size=config.learning_window,
        slope_threshold=config.learning_slope_threshold,
        min_points=3,
    )
    analysis = detector.analyze(performances)
    stability = calculate_stability(performances)

    if analysis.slope > config.learning_slope_threshold:
        state = LearningState.IMPROVING
    elif analysis.slope < -config.learning_slope_threshold:
        state = LearningState.REGRESSING
    elif stability > MASTERING_STABILITY and analysis.mean > MASTERING_MEAN:
        state = LearningState.MASTERING
    elif stability > PLATEAU_STABILITY:
        state = LearningState.PLATEAUED
    else:
        state = LearningState.LEARNING

    return state, analysis.slope


def evaluate_pattern_rules(
    profile: UserProfile,
    config: ProfilerConfig
) -> List[Tuple[str, str, float]]:
    """(name, description, confidence) for every rule that fires."""
    fired = []
    if (profile.learning_progress > FAST_LEARNER_PROGRESS and
            profile.total_play_time < FAST_LEARNER_MAX_PLAY_SECONDS):
        fired.append(("Fast Learner", "User shows rapid learning and adaptation", 0.8))
    if profile.emotion_stability > STABLE_EMOTION:
        fired.append(("Emotion Stability", "User maintains stable emotional state", 0.9))
    if profile.commands_per_minute > config.active_threshold * 2:
        fired.append(("High Engagement", "User exhibits high engagement", 0.85))
    if (profile.user_type == UserType.STRUGGLING and
            profile.emotion_stability < config.struggling_stability):
        fired.append(("Needs Help", "User may require additional guidance and support", 0.75))
    if (profile.gameplay_pattern == GameplayPattern.GOAL_ORIENTED and
            profile.emotion_stability > config.stability_threshold):
        fired.append(("Focused Mode", "User exhibits high focus and goal-oriented behavior", 0.8))
    return fired


# ----------------------------------------------------------------------
# Profiler
# ----------------------------------------------------------------------

class BehaviorProfiler:
    """
    Owns the UserProfile and the active pattern list.

    Inputs: fused emotion changes, per-command events, session statistics.
    Outputs: profile snapshots, pattern list, recommendations, and
    notifications on three channels.
    """

    def __init__(self, config: Optional[ProfilerConfig] = None):
        self.config = config or ProfilerConfig()
        self.config.validate()
        self.enabled = True

        self._profile = UserProfile()
        self._patterns: List[BehaviorPattern] = []
        self._last_stats: Optional[SessionStats] = None
        self._last_intensity = 0.0
        self._last_analysis: Optional[datetime] = None

        self.recent_performance: BoundedHistory[float] = BoundedHistory(self.config.learning_window)
        self.recent_engagement: BoundedHistory[float] = BoundedHistory(ENGAGEMENT_HISTORY)
        self.recent_confidence: BoundedHistory[float] = BoundedHistory(self.config.stability_window)

        # Outbound
        self.profile_updated: EventChannel[UserProfile] = EventChannel("profile_updated")
        self.pattern_detected: EventChannel[BehaviorPattern] = EventChannel("pattern_detected")
        self.user_type_changed: EventChannel[UserType] = EventChannel("user_type_changed")

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def on_emotion_change(self, change: EmotionChange):
        """Subscriber for the fusion engine's change channel."""
        self.record_emotion(change.sample)

    def record_emotion(self, sample: EmotionSample):
        """Accumulate intensity per label and the rolling confidence mean."""
        key = sample.label.value
        distribution = self._profile.emotion_distribution
        distribution[key] = distribution.get(key, 0.0) + sample.intensity

        self.recent_confidence.append(sample.confidence)
        confidences = self.recent_confidence.snapshot()
        self._profile.emotion_stability = sum(confidences) / len(confidences)
        self._last_intensity = sample.intensity
        self._refresh_engagement()

    def record_command(self, command: str):
        """Count one recognised voice command."""
        if not command:
            return
        commands = self._profile.preferred_commands
        commands[command] = commands.get(command, 0) + 1

    def update_stats(self, stats: SessionStats):
        """
        Take a new statistics snapshot from the session logger.

        Adds one point to the performance series and one to the
        engagement series.
        """
        self._last_stats = stats
        profile = self._profile
        profile.total_play_time = stats.total_session_seconds
        profile.commands_per_minute = stats.commands_per_minute

        performance = self._session_performance(stats)
        self.recent_performance.append(performance)
        profile.performance_history.append(performance)
        overflow = len(profile.performance_history) - self.config.performance_capacity
        if overflow > 0:
            del profile.performance_history[:overflow]

        self.recent_engagement.append(self._session_engagement(stats))
        self._refresh_engagement()

    def _session_performance(self, stats: SessionStats) -> float:
        command_efficiency = clamp01(stats.commands_per_minute / 5.0)
        emotion_quality = clamp01(stats.average_confidence)
        stability = clamp01(self._profile.emotion_stability)
        return (command_efficiency + emotion_quality + stability) / 3.0

    def _session_engagement(self, stats: SessionStats) -> float:
        return clamp01((stats.actions_per_minute / 3.0 + stats.average_emotion_intensity) / 2.0)

    def _refresh_engagement(self):
        profile = self._profile
        profile.engagement_level = clamp01(
            (profile.commands_per_minute / 10.0 + self._last_intensity) / 2.0
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def update(self, now: Optional[datetime] = None) -> bool:
        """Run analyze() if the configured interval has elapsed."""
        if not self.enabled:
            return False
        now = now or datetime.now()
        if (self._last_analysis is not None and
                (now - self._last_analysis).total_seconds() < self.config.interval):
            return False
        self.analyze(now)
        return True

    def analyze(self, now: Optional[datetime] = None) -> UserProfile:
        """Recompute every classification and refresh the pattern list."""
        now = now or datetime.now()
        self._last_analysis = now
        cfg = self.config
        profile = self._profile

        # Learning state first so the user-type rules see fresh progress
        try:
            state, slope = classify_learning_state(self.recent_performance.snapshot(), cfg)
            profile.learning_state = state
            profile.learning_progress = slope
        except InsufficientHistoryError as e:
            logger.debug(f"Learning state unchanged: {e}")

        new_type = classify_user_type(
            profile.total_play_time,
            profile.commands_per_minute,
            profile.emotion_stability,
            profile.learning_progress,
            cfg,
            default=profile.user_type,
        )
        if new_type != profile.user_type:
            old_type = profile.user_type
            profile.user_type = new_type
            logger.info(f"User type changed: {old_type.value} → {new_type.value}")
            self.user_type_changed.publish(new_type)

        if self._last_stats is not None:
            profile.gameplay_pattern = classify_gameplay_pattern(
                self._last_stats.command_frequency,
                self._last_stats.commands_per_minute,
                profile.emotion_stability,
                cfg,
                default=profile.gameplay_pattern,
            )

        fired = evaluate_pattern_rules(profile, cfg)
        for name, description, confidence in fired:
            self._detect_pattern(name, description, confidence, now)
        self._decay_patterns({name for name, _, _ in fired})
        self._purge_patterns(now)

        profile.last_analysis_time = now
        logger.debug(
            f"Behavior analysis: type={profile.user_type.value}, "
            f"pattern={profile.gameplay_pattern.value}, learning={profile.learning_state.value}"
        )
        snapshot = profile.copy()
        self.profile_updated.publish(snapshot)
        return snapshot

    def _detect_pattern(self, name: str, description: str, confidence: float, now: datetime):
        for pattern in self._patterns:
            if pattern.name == name:
                pattern.confidence = lerp(pattern.confidence, confidence, self.config.pattern_blend)
                pattern.detected_at = now
                return

        pattern = BehaviorPattern(name=name, description=description, confidence=confidence, detected_at=now)
        self._patterns.append(pattern)
        logger.info(f"Behavior pattern detected: {name} ({confidence:.2f})")
        self.pattern_detected.publish(copy.copy(pattern))

    def _decay_patterns(self, fired_names):
        """Blend patterns whose rule stayed silent this cycle toward zero."""
        for pattern in self._patterns:
            if pattern.name not in fired_names:
                pattern.confidence = lerp(pattern.confidence, 0.0, self.config.pattern_blend)

    def _purge_patterns(self, now: datetime) -> int:
        cutoff = now - timedelta(seconds=self.config.pattern_retention)
        before = len(self._patterns)
        self._patterns = [
            p for p in self._patterns
            if p.detected_at >= cutoff and p.confidence >= self.config.pattern_floor
        ]
        return before - len(self._patterns)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def profile(self) -> UserProfile:
        """Read-only snapshot of the live profile."""
        return self._profile.copy()

    @property
    def patterns(self) -> List[BehaviorPattern]:
        return [copy.copy(p) for p in self._patterns]

    @property
    def average_engagement(self) -> float:
        values = self.recent_engagement.snapshot()
        return sum(values) / len(values) if values else 0.0

    def recommendations(self) -> List[str]:
        return list(RECOMMENDATIONS.get(self._profile.user_type, []))

    def reset(self):
        self._profile = UserProfile()
        self._patterns = []
        self._last_stats = None
        self._last_intensity = 0.0
        self._last_analysis = None
        self.recent_performance.clear()
        self.recent_engagement.clear()
        self.recent_confidence.clear()
        logger.info("User profile reset")
