"""
Custom exceptions for the affect engine.

None of these escape a processing tick: ingestion and analysis code catches
them, logs, and degrades to "no new estimate". Only ConfigurationError
propagates, and only at construction time.
"""


class AffectEngineError(Exception):
    """Base exception for the affect engine."""
    pass


class ConfigurationError(AffectEngineError):
    """Exception raised when a configuration value is invalid."""
    pass


class MalformedInputError(AffectEngineError):
    """Exception raised when an audio block or pose snapshot fails shape validation."""

    def __init__(self, message: str, source: str = "unknown"):
        """
        Initialize malformed input error.

        Args:
            message: Error message
            source: Which input stream produced the bad item ("audio", "pose", ...)
        """
        super().__init__(message)
        self.source = source


class InsufficientHistoryError(AffectEngineError):
    """Exception raised when a derived statistic needs more buffered data."""

    def __init__(self, message: str, required: int = 0, available: int = 0):
        super().__init__(message)
        self.required = required
        self.available = available
