"""Thread-safe notification channel for user-visible runtime events."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import threading
import time
from typing import Callable, Deque, Iterable

from core.logging import logger


_PRIORITIES = {"critical": 3, "high": 2, "normal": 1, "low": 0}


@dataclass(frozen=True)
class Event:
    """Toast-style notification payload."""

    source: str
    kind: str
    title: str = ""
    content: str | None = None
    priority: str = "normal"
    metadata: dict[str, object] = field(default_factory=dict)
    dedupe_key: str | None = None
    ttl_s: float | None = None
    created_at: float = field(default_factory=time.time)

    def is_expired(self, now: float | None = None) -> bool:
        if self.ttl_s is None:
            return False
        if now is None:
            now = time.time()
        return now - self.created_at > self.ttl_s


Subscriber = Callable[[Event], None]


class EventBus:
    """Bounded queue of pending notifications with optional push subscribers."""

    def __init__(self, maxlen: int = 200) -> None:
        self._maxlen = maxlen
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._queue: Deque[Event] = deque()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def publish(self, event: Event, *, coalesce: bool = False) -> None:
        with self._cond:
            if coalesce and event.dedupe_key:
                self._remove_matching(event.dedupe_key)
            if len(self._queue) >= self._maxlen:
                dropped = self._queue.popleft()
                logger.warning("[EVENTS] Bus full; dropping oldest event from %s.", dropped.source)
            self._queue.append(event)
            subscribers = list(self._subscribers)
            self._cond.notify()
        for callback in subscribers:
            callback(event)

    def publish_text(
        self,
        message: str,
        *,
        title: str = "",
        source: str = "system",
        kind: str = "message",
        priority: str = "normal",
        metadata: dict[str, object] | None = None,
    ) -> None:
        self.publish(
            Event(
                source=source,
                kind=kind,
                title=title,
                content=message,
                priority=priority,
                metadata=metadata or {},
            )
        )

    def get_next(self, timeout: float | None = None) -> Event | None:
        with self._cond:
            self._discard_expired()
            if not self._queue:
                self._cond.wait(timeout=timeout)
                self._discard_expired()
            if not self._queue:
                return None
            return self._pop_highest_priority()

    def drain(self) -> Iterable[Event]:
        with self._cond:
            self._discard_expired()
            events = list(self._queue)
            self._queue.clear()
            return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def _discard_expired(self) -> None:
        now = time.time()
        if any(event.is_expired(now) for event in self._queue):
            self._queue = deque(event for event in self._queue if not event.is_expired(now))

    def _remove_matching(self, dedupe_key: str) -> None:
        for index, event in enumerate(self._queue):
            if event.dedupe_key == dedupe_key:
                del self._queue[index]
                return

    def _pop_highest_priority(self) -> Event:
        best_index = 0
        best_score = -1
        for index, event in enumerate(self._queue):
            score = _PRIORITIES.get(event.priority, 1)
            if score > best_score:
                best_score = score
                best_index = index
                if best_score == 3:
                    break
        event = self._queue[best_index]
        del self._queue[best_index]
        return event
