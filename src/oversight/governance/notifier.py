"""Change notifications for dashboard views.

Subscribers register per topic ("capabilities", "proposals") and receive
one ChangeEvent per committed change. Events are only emitted after commit,
and a failing subscriber never affects the transition that produced it.
Recent events are also kept for pollers.
"""

from __future__ import annotations

import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from .constants import TOPIC_CAPABILITIES, TOPIC_PROPOSALS
from .models import utc_now

logger = logging.getLogger(__name__)

TOPICS = (TOPIC_CAPABILITIES, TOPIC_PROPOSALS)

Subscriber = Callable[["ChangeEvent"], Any]


@dataclass
class ChangeEvent:
    """One committed change to a capability or proposal row."""
    topic: str
    action: str  # "insert" or "update"
    record_id: str
    capability_id: Optional[str] = None
    status: Optional[str] = None
    timestamp: str = field(default_factory=utc_now)


class ChangeNotifier:
    """Topic-based publish/subscribe with a bounded event history."""

    def __init__(self, history_size: int = 500):
        self._subscribers: Dict[str, List[Subscriber]] = {topic: [] for topic in TOPICS}
        self._events: Deque[ChangeEvent] = deque(maxlen=history_size)

    def subscribe(self, topic: str, callback: Subscriber) -> Callable[[], None]:
        """Register callback for topic. Returns an unsubscribe function."""
        if topic not in self._subscribers:
            raise ValueError(f"Unknown topic: {topic}")
        self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[topic]:
                self._subscribers[topic].remove(callback)

        return unsubscribe

    async def emit_async(self, event: ChangeEvent) -> None:
        """Deliver an event to every subscriber of its topic."""
        self._events.append(event)
        for callback in list(self._subscribers.get(event.topic, [])):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Subscriber for {event.topic} failed on {event.record_id}: {e}")

    def get_events(self, topic: Optional[str] = None) -> List[ChangeEvent]:
        """Recent events, oldest first, optionally for one topic."""
        if topic is None:
            return list(self._events)
        return [e for e in self._events if e.topic == topic]

    def clear(self) -> None:
        self._events.clear()
