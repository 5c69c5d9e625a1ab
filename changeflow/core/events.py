"""
Event Bus
=========
Typed observer channel for cross-component notifications.

Topics are enumerated, never free-form strings:
    AGENTIC_PROGRESS - AgenticProgress payloads pushed while an agentic run is in flight
    ANALYZE_PROGRESS - plain-text progress lines from the analysis backend
    TRANSCRIPT       - ChatMessage appended to the current transcript
    UNDO_REDO        - UndoRedoState after every refresh

Delivery is synchronous and in subscription order. A failing subscriber is
logged and skipped; it never breaks the publisher or other subscribers.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class Topic(str, Enum):
    AGENTIC_PROGRESS = "agentic_progress"
    ANALYZE_PROGRESS = "analyze_progress"
    TRANSCRIPT = "transcript"
    UNDO_REDO = "undo_redo"


Subscriber = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe over the closed Topic set."""

    def __init__(self) -> None:
        self._subscribers: Dict[Topic, List[Subscriber]] = {topic: [] for topic in Topic}

    def subscribe(self, topic: Topic, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it again."""
        if not isinstance(topic, Topic):
            raise ValueError(f"Unknown topic: {topic!r}")
        self._subscribers[topic].append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers[topic]:
                self._subscribers[topic].remove(callback)

        return _unsubscribe

    def publish(self, topic: Topic, payload: Any) -> None:
        for callback in list(self._subscribers[topic]):
            try:
                callback(payload)
            except Exception as exc:
                logger.error("Subscriber for %s failed: %s", topic.value, exc, exc_info=True)

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._subscribers[topic])
