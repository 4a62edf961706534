"""
Tests for the Voice Signal Analyzer

Covers voice-activity hysteresis, noise floor calibration, speech rate,
lexical blending and the periodic fold.
"""

import numpy as np
import pytest
from datetime import datetime, timedelta
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from affect_engine.config import VoiceConfig
from affect_engine.voice import (
    VoiceActivityDetector, NoiseFloorCalibrator, VoiceEmotionAnalyzer
)

T0 = datetime(2024, 1, 1, 12, 0, 0)
BLOCK_SECONDS = 1024 / 16000


def sine(freq=125, amplitude=0.5, n=1024, sr=16000):
    t = np.arange(n) / sr
    return amplitude * np.sin(2 * np.pi * freq * t)


def at(seconds):
    return T0 + timedelta(seconds=seconds)


class TestVoiceActivityDetector:
    """Test cases for VAD hysteresis."""

    def test_activation_after_min_speech_frames(self):
        """Quiet ×5 then loud ×10: active only from the 5th loud frame."""
        vad = VoiceActivityDetector(noise_floor=0.01, margin=0.02, min_speech_frames=5)

        quiet = [vad.update(0.01) for _ in range(5)]
        loud = [vad.update(0.5) for _ in range(10)]

        assert quiet == [False] * 5
        assert loud[:4] == [False] * 4
        assert loud[4:] == [True] * 6

    def test_threshold_is_inclusive(self):
        vad = VoiceActivityDetector(noise_floor=0.01, margin=0.02, min_speech_frames=1)
        assert vad.update(0.03)

    def test_quiet_frame_resets_run(self):
        vad = VoiceActivityDetector(noise_floor=0.01, margin=0.02, min_speech_frames=3)
        vad.update(0.5)
        vad.update(0.5)
        vad.update(0.0)
        vad.update(0.5)

        assert not vad.is_active
        assert vad.consecutive_voice_frames == 1


class TestNoiseFloorCalibrator:
    """Test cases for one-shot calibration."""

    def test_lowest_decile_mean(self):
        calibrator = NoiseFloorCalibrator(window_seconds=2.0, min_samples=10)
        result = None
        for i in range(21):
            volume = 0.002 if i < 2 else 0.1
            result = calibrator.observe(volume, T0 + timedelta(milliseconds=100 * i))

        assert result == pytest.approx(0.002)
        assert calibrator.finished

    def test_runs_once(self):
        calibrator = NoiseFloorCalibrator(window_seconds=1.0, min_samples=1)
        calibrator.observe(0.01, at(0))
        assert calibrator.observe(0.01, at(1)) == pytest.approx(0.01)
        assert calibrator.observe(0.5, at(5)) is None
        assert calibrator.noise_floor == pytest.approx(0.01)

    def test_too_few_samples(self):
        calibrator = NoiseFloorCalibrator(window_seconds=2.0, min_samples=10)
        for i in range(3):
            assert calibrator.observe(0.01, at(i * 1.5)) is None

        assert calibrator.finished
        assert calibrator.noise_floor is None


class TestVoiceEmotionAnalyzer:
    """Test cases for VoiceEmotionAnalyzer."""

    @pytest.fixture
    def analyzer(self):
        return VoiceEmotionAnalyzer(VoiceConfig())

    def feed(self, analyzer, count, start=0.0, block=None):
        block = sine() if block is None else block
        for i in range(count):
            analyzer.process_audio_block(block, at(start + i * BLOCK_SECONDS))
        return at(start + count * BLOCK_SECONDS)

    def test_no_data_no_output(self, analyzer):
        assert not analyzer.has_recent_data(T0)
        assert analyzer.fold(T0) is None
        assert analyzer.current_emotion() is None

    def test_fold_after_speech(self, analyzer):
        now = self.feed(analyzer, 20)

        sample = analyzer.fold(now)

        assert sample is not None
        assert sample.voice_weight == 1.0
        assert sample.pose_weight == 0.0
        assert 0.0 <= sample.confidence <= 1.0
        # 125 Hz is below the 150 Hz baseline
        assert sample.valence < 0.0
        assert analyzer.current_emotion() is sample

    def test_fold_publishes(self, analyzer):
        received = []
        analyzer.emotion_detected.subscribe(received.append)
        now = self.feed(analyzer, 20)

        analyzer.fold(now)

        assert len(received) == 1

    def test_pitch_only_while_active(self, analyzer):
        self.feed(analyzer, 4)
        assert len(analyzer.pitch_history) == 0

        self.feed(analyzer, 4, start=4 * BLOCK_SECONDS)
        assert len(analyzer.pitch_history) > 0
        assert 115.0 < analyzer.current_pitch < 135.0

    def test_stale_data_reports_nothing(self, analyzer):
        now = self.feed(analyzer, 20)
        analyzer.fold(now)
        previous = analyzer.current_emotion()

        later = now + timedelta(seconds=6)

        assert not analyzer.has_recent_data(later)
        assert analyzer.fold(later) is None
        # Previous estimate is retained
        assert analyzer.current_emotion() is previous

    def test_malformed_block_discarded(self, analyzer):
        assert not analyzer.process_audio_block(np.array([]), T0)
        assert not analyzer.process_audio_block(np.zeros((2, 2)), T0)
        assert analyzer.dropped_blocks == 2
        assert len(analyzer.volume_history) == 0

        assert analyzer.process_audio_block(sine(), T0)

    def test_buffers_bounded(self, analyzer):
        self.feed(analyzer, 200)

        assert len(analyzer.volume_history) <= analyzer.config.history_capacity
        assert len(analyzer.frames) <= analyzer.config.history_capacity
        assert len(analyzer.pitch_history) <= analyzer.config.history_capacity

    def test_speech_rate(self, analyzer):
        for i in range(3):
            analyzer.process_text("left", at(i))

        # 2 intervals over 2 seconds
        assert analyzer.current_speech_rate == pytest.approx(60.0)

    def test_speech_rate_window(self, analyzer):
        analyzer.process_text("left", at(0))
        analyzer.process_text("left", at(20))
        analyzer.process_text("left", at(21))

        # Only the last two are inside the 10 s window
        assert analyzer.current_speech_rate == pytest.approx(60.0)

    def test_lexical_nudge_blends(self, analyzer):
        analyzer.process_text("great", T0)
        assert analyzer.lexical_valence == pytest.approx(0.2 * 0.3)

    def test_lexical_nudge_clamped(self, analyzer):
        for i in range(20):
            analyzer.process_text("good great excellent amazing wonderful happy", at(i))

        assert analyzer.lexical_valence == pytest.approx(analyzer.config.lexical_clamp)

    def test_cleanup_purges_old_events(self, analyzer):
        analyzer.process_text("hello", at(0))
        analyzer.process_text("hello", at(1))
        analyzer.process_text("hello", at(15))

        removed = analyzer.cleanup(at(15))

        assert removed == 2
        assert len(analyzer.speech_events) == 1

    def test_calibration_updates_noise_floor(self):
        analyzer = VoiceEmotionAnalyzer(VoiceConfig(calibration_seconds=1.0))
        self.feed(analyzer, 20, block=sine(amplitude=0.05))

        assert analyzer.noise_floor == pytest.approx(0.05 / np.sqrt(2), rel=0.01)

    def test_single_utterance_keeps_arousal(self):
        """One recognition event has no rate and must not read as slow speech."""
        silent = VoiceEmotionAnalyzer(VoiceConfig())
        spoken = VoiceEmotionAnalyzer(VoiceConfig())
        now = self.feed(silent, 20)
        self.feed(spoken, 20)

        spoken.process_text("left", now)

        assert spoken.current_speech_rate == 0.0
        assert len(spoken.speech_rate_history) == 0
        assert spoken.fold(now).arousal == pytest.approx(silent.fold(now).arousal)

    def test_slow_speech_does_not_lower_arousal(self):
        silent = VoiceEmotionAnalyzer(VoiceConfig())
        spoken = VoiceEmotionAnalyzer(VoiceConfig())
        now = self.feed(silent, 20)
        self.feed(spoken, 20)

        spoken.process_text("left", at(0))
        spoken.process_text("left", at(1.2))

        # 1 interval over 1.2 s, below the 60 wpm baseline
        assert spoken.current_speech_rate == pytest.approx(50.0)
        assert spoken.fold(now).arousal == pytest.approx(silent.fold(now).arousal)

    def test_fast_speech_raises_arousal(self):
        silent = VoiceEmotionAnalyzer(VoiceConfig())
        spoken = VoiceEmotionAnalyzer(VoiceConfig())
        now = self.feed(silent, 20)
        self.feed(spoken, 20)

        for i in range(4):
            spoken.process_text("left", at(i * 0.4))

        # 3 intervals over 1.2 s = 150 wpm, (150 - 60) / 120 * 0.3
        assert spoken.fold(now).arousal == pytest.approx(silent.fold(now).arousal + 0.225)

    def test_calibration_has_own_sample_minimum(self):
        analyzer = VoiceEmotionAnalyzer(
            VoiceConfig(calibration_seconds=1.0, calibration_min_samples=100)
        )
        now = self.feed(analyzer, 20, block=sine(amplitude=0.05))

        assert analyzer.calibrator.finished
        assert analyzer.noise_floor == pytest.approx(analyzer.config.initial_noise_floor)
        # The fold's own sample minimum is unaffected
        assert analyzer.has_recent_data(now)

    def test_disabled_ignores_input(self, analyzer):
        analyzer.enabled = False
        assert not analyzer.process_audio_block(sine(), T0)
        assert analyzer.process_text("great", T0) is None

    def test_reset(self, analyzer):
        now = self.feed(analyzer, 20)
        analyzer.process_text("great", now)
        analyzer.fold(now)

        analyzer.reset()

        assert len(analyzer.volume_history) == 0
        assert analyzer.lexical_valence == 0.0
        assert analyzer.current_emotion() is None
        assert not analyzer.vad.is_active
