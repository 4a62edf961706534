"""
Affect Engine - Multimodal Emotion Inference & Behavior Profiling

Infers a user's affective state from vocal audio and body pose, fuses the
two into one smoothed estimate, and profiles longer-horizon behavior.

Layers:
1. Shared model (arousal/valence/labels) - emotion.py, history.py, events.py
2. Voice signals (DSP + lexical) - dsp.py, lexicon.py, voice.py
3. Pose signals (kinematics) - pose.py
4. Fusion (weighting, smoothing, transitions) - fusion.py
5. Behavior profiling (trends, patterns) - trends.py, profiler.py
6. Coordinator (wiring + cadence) - pipeline.py
"""

from .config import (
    AffectConfig,
    VoiceConfig,
    PoseConfig,
    FusionConfig,
    ProfilerConfig,
    configure_logging,
)

from .errors import (
    AffectEngineError,
    ConfigurationError,
    MalformedInputError,
    InsufficientHistoryError,
)

from .emotion import (
    EmotionLabel,
    EmotionSample,
    classify,
    is_significant_change,
)

from .history import BoundedHistory

from .events import (
    EventChannel,
    EmotionChange,
    EmotionEventSink,
    LoggingEmotionSink,
)

from .lexicon import (
    LexicalSentimentScorer,
    LexicalScore,
    LexicalCategory,
)

from .voice import (
    VoiceEmotionAnalyzer,
    VoiceActivityDetector,
    NoiseFloorCalibrator,
    VoiceFeatureFrame,
)

from .pose import (
    PoseEmotionAnalyzer,
    PoseSnapshot,
    PoseFeatures,
    Landmark,
    Point3,
)

from .fusion import (
    EmotionFusionEngine,
    FusionResult,
    EmotionSource,
)

from .trends import (
    TrendDetector,
    TrendAnalysis,
    TrendDirection,
)

from .profiler import (
    BehaviorProfiler,
    BehaviorPattern,
    SessionStats,
    UserProfile,
    UserType,
    GameplayPattern,
    LearningState,
)

from .pipeline import (
    AffectPipeline,
    PipelineUpdate,
)

__version__ = "0.1.0"
__all__ = [
    # Config
    "AffectConfig",
    "VoiceConfig",
    "PoseConfig",
    "FusionConfig",
    "ProfilerConfig",
    "configure_logging",
    # Errors
    "AffectEngineError",
    "ConfigurationError",
    "MalformedInputError",
    "InsufficientHistoryError",
    # Emotion model
    "EmotionLabel",
    "EmotionSample",
    "classify",
    "is_significant_change",
    "BoundedHistory",
    # Events
    "EventChannel",
    "EmotionChange",
    "EmotionEventSink",
    "LoggingEmotionSink",
    # Voice
    "LexicalSentimentScorer",
    "LexicalScore",
    "LexicalCategory",
    "VoiceEmotionAnalyzer",
    "VoiceActivityDetector",
    "NoiseFloorCalibrator",
    "VoiceFeatureFrame",
    # Pose
    "PoseEmotionAnalyzer",
    "PoseSnapshot",
    "PoseFeatures",
    "Landmark",
    "Point3",
    # Fusion
    "EmotionFusionEngine",
    "FusionResult",
    "EmotionSource",
    # Trends
    "TrendDetector",
    "TrendAnalysis",
    "TrendDirection",
    # Profiler
    "BehaviorProfiler",
    "BehaviorPattern",
    "SessionStats",
    "UserProfile",
    "UserType",
    "GameplayPattern",
    "LearningState",
    # Pipeline
    "AffectPipeline",
    "PipelineUpdate",
]
