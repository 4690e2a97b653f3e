"""Simple in-process pub/sub bus for table change notifications.

Writers publish the table name after a commit; subscribers re-read whatever
slice of the table they watch.
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def publish(self, topic: str, message: Any = None) -> None:
        with self._lock:
            listeners = list(self._subscribers.get(topic, []))
        # listener errors are logged, never raised to the publisher
        for listener in listeners:
            try:
                listener(message)
            except Exception:
                logger.exception(f"Listener {listener!r} failed on topic {topic}")

    def subscribe(self, topic: str, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._subscribers[topic].append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(topic, listener)

        return unsubscribe

    def unsubscribe(self, topic: str, listener: Listener) -> None:
        with self._lock:
            if listener in self._subscribers.get(topic, []):
                self._subscribers[topic].remove(listener)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))


# Global singleton bus
bus = EventBus()
