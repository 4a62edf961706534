"""
Event Channels

Observer abstraction used for outbound notifications (emotion changes,
profile updates, detected patterns) and the emotion event sink contract
consumed by the external logger.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, Generic, List, Protocol, Tuple, TypeVar

from .emotion import EmotionLabel, EmotionSample

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventChannel(Generic[T]):
    """
    Broadcast channel with ordered delivery.

    Subscribers are notified in registration order. Dispatch iterates over a
    snapshot of the subscriber list, so subscribing or unsubscribing from
    inside a callback only takes effect on the next publish.
    """

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callable[[T], None]] = []
        self._lock = Lock()

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe():
            self.unsubscribe(callback)

        return _unsubscribe

    def unsubscribe(self, callback: Callable[[T], None]) -> bool:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
                return True
        return False

    def publish(self, event: T) -> int:
        """
        Deliver event to every subscriber.

        A failing subscriber is logged and skipped; later subscribers still
        receive the event. Returns the number of successful deliveries.
        """
        with self._lock:
            subscribers: Tuple[Callable[[T], None], ...] = tuple(self._subscribers)

        delivered = 0
        for callback in subscribers:
            try:
                callback(event)
                delivered += 1
            except Exception:
                logger.exception(f"Subscriber on channel '{self.name}' failed")
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def clear(self):
        with self._lock:
            self._subscribers.clear()


@dataclass(frozen=True)
class EmotionChange:
    """Notification for a significant emotion transition."""
    old_label: EmotionLabel
    new_label: EmotionLabel
    sample: EmotionSample
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def label_changed(self) -> bool:
        return self.old_label != self.new_label

    def to_dict(self) -> Dict[str, Any]:
        return {
            "old_label": self.old_label.value,
            "new_label": self.new_label.value,
            "sample": self.sample.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


class EmotionEventSink(Protocol):
    """External logging collaborator: receives each published fusion cycle."""

    def log_emotion_event(self, sample: EmotionSample, significant: bool) -> None:
        ...


class LoggingEmotionSink:
    """Default sink: one structured log record per fusion cycle."""

    def __init__(self, logger_name: str = "affect_engine.emotion_events"):
        self._logger = logging.getLogger(logger_name)
        self.events_logged = 0

    def log_emotion_event(self, sample: EmotionSample, significant: bool) -> None:
        payload = sample.to_dict()
        payload["significant"] = significant
        level = logging.INFO if significant else logging.DEBUG
        self._logger.log(level, f"EmotionStateChange {payload}")
        self.events_logged += 1
