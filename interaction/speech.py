"""Single-flow speech queue with flush, immediate and append modes.

One ``SpeechScheduler`` exists per session. Each ``speak`` call is awaitable
and resolves when its own utterance has finished, or fails with a
``SpeechError`` subclass when it is rejected, interrupted, stalls, or the
engine reports an error.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Mapping

from core.errors import (
    AlreadySpeakingError,
    SpeechError,
    SpeechInterruptedError,
    SpeechNotUnlockedError,
    SpeechStalledError,
)
from core.logging import logger
from interaction.engines import SpeechEngine, VoiceParams


class QueueMode(str, Enum):
    APPEND = "append"
    FLUSH = "flush"
    IMMEDIATE = "immediate"


class SpeechState(str, Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


@dataclass(frozen=True)
class SchedulerConfig:
    rate: float = 1.0
    volume: float = 1.0
    gated_rate: float = 0.8
    requires_user_gesture: bool = False
    debounce_s: float = 0.05
    watchdog_interval_s: float = 1.0
    max_utterance_base_s: float = 5.0
    max_utterance_per_char_s: float = 0.12

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SchedulerConfig":
        speech_cfg = config.get("speech") or {}
        return cls(
            rate=float(speech_cfg.get("rate", 1.0)),
            volume=float(speech_cfg.get("volume", 1.0)),
            requires_user_gesture=bool(speech_cfg.get("requires_user_gesture", False)),
            debounce_s=float(speech_cfg.get("debounce_ms", 50)) / 1000.0,
            watchdog_interval_s=float(speech_cfg.get("watchdog_interval_s", 1.0)),
            max_utterance_base_s=float(speech_cfg.get("max_utterance_base_s", 5.0)),
            max_utterance_per_char_s=float(speech_cfg.get("max_utterance_per_char_s", 0.12)),
        )

    @property
    def default_rate(self) -> float:
        return self.gated_rate if self.requires_user_gesture else self.rate


@dataclass
class _Utterance:
    text: str
    params: VoiceParams
    future: asyncio.Future


class SpeechScheduler:
    """Serializes utterances so at most one is audible at a time."""

    def __init__(self, engine: SpeechEngine, config: SchedulerConfig | None = None) -> None:
        self._engine = engine
        self.config = config or SchedulerConfig()
        self._queue: Deque[_Utterance] = deque()
        self._active: _Utterance | None = None
        self._active_task: asyncio.Task | None = None
        self._next_handle: asyncio.TimerHandle | None = None
        self._unlocked = not self.config.requires_user_gesture
        self.error_count = 0

    @property
    def engine(self) -> SpeechEngine:
        return self._engine

    @property
    def state(self) -> SpeechState:
        return SpeechState.SPEAKING if self._active is not None else SpeechState.IDLE

    @property
    def is_speaking(self) -> bool:
        return self._active is not None

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def unlocked(self) -> bool:
        return self._unlocked

    def unlock(self) -> None:
        """Record that a user interaction occurred, allowing audio from now on."""

        if not self._unlocked:
            logger.info("[SPEECH] Audio unlocked by user interaction")
        self._unlocked = True

    def list_voices(self) -> list[str]:
        return self._engine.list_voices()

    async def speak(
        self,
        text: str,
        *,
        rate: float | None = None,
        volume: float | None = None,
        voice: str | None = None,
        queue_mode: QueueMode | str = QueueMode.APPEND,
        interrupt: bool = False,
    ) -> None:
        if not self._unlocked:
            raise SpeechNotUnlockedError(
                "Speech requires a user interaction first. Tap a button to enable voice."
            )

        mode = QueueMode(queue_mode)
        params = VoiceParams(
            rate=self.config.default_rate if rate is None else rate,
            volume=self.config.volume if volume is None else volume,
            voice=voice,
        )
        item = _Utterance(text=text, params=params, future=asyncio.get_running_loop().create_future())

        if mode is QueueMode.IMMEDIATE:
            if self._active is not None:
                if not interrupt:
                    raise AlreadySpeakingError("Speech already in progress")
                self._cancel_active()
            self._start(item)
        elif mode is QueueMode.FLUSH:
            self._drop_queue()
            self._cancel_active()
            self._queue.append(item)
            self._process_next()
        else:
            self._queue.append(item)
            if self._active is None and self._next_handle is None:
                self._process_next()

        try:
            await item.future
        except asyncio.CancelledError:
            if item in self._queue:
                self._queue.remove(item)
            elif item is self._active:
                self._cancel_active()
            raise

    def stop(self) -> None:
        """Drop everything queued and silence the active utterance."""

        if self._next_handle is not None:
            self._next_handle.cancel()
            self._next_handle = None
        self._drop_queue()
        self._cancel_active()

    def _drop_queue(self) -> None:
        while self._queue:
            item = self._queue.popleft()
            if not item.future.done():
                item.future.set_exception(SpeechInterruptedError("Utterance flushed"))

    def _cancel_active(self) -> None:
        if self._active is None:
            return
        logger.debug("[SPEECH] Cancelling: %s", self._active.text)
        self._engine.cancel()
        if self._active_task is not None:
            self._active_task.cancel()
        self._active = None
        self._active_task = None

    def _process_next(self) -> None:
        self._next_handle = None
        if self._active is not None or not self._queue:
            return
        self._start(self._queue.popleft())

    def _schedule_next(self) -> None:
        if self._next_handle is not None or not self._queue:
            return
        loop = asyncio.get_running_loop()
        self._next_handle = loop.call_later(self.config.debounce_s, self._process_next)

    def _start(self, item: _Utterance) -> None:
        self._active = item
        task = asyncio.ensure_future(self._play(item))
        self._active_task = task
        task.add_done_callback(lambda done, item=item: self._on_done(item, done))

    def _max_duration(self, text: str) -> float:
        return self.config.max_utterance_base_s + len(text) * self.config.max_utterance_per_char_s

    async def _play(self, item: _Utterance) -> None:
        watchdog = asyncio.ensure_future(self._watchdog())
        limit = self._max_duration(item.text)
        try:
            await asyncio.wait_for(self._engine.speak(item.text, item.params), limit)
        except asyncio.TimeoutError as exc:
            self._engine.cancel()
            raise SpeechStalledError(f"Utterance did not finish within {limit:.1f}s") from exc
        finally:
            watchdog.cancel()

    async def _watchdog(self) -> None:
        while True:
            await asyncio.sleep(self.config.watchdog_interval_s)
            if self._engine.is_paused():
                logger.warning("[SPEECH] Engine paused mid-utterance; resuming")
                self._engine.resume()

    def _on_done(self, item: _Utterance, task: asyncio.Task) -> None:
        if item is self._active:
            self._active = None
            self._active_task = None

        if not item.future.done():
            if task.cancelled():
                item.future.set_exception(SpeechInterruptedError("Utterance interrupted"))
            elif task.exception() is not None:
                exc = task.exception()
                self.error_count += 1
                if not isinstance(exc, SpeechError):
                    wrapped = SpeechError(f"Speech synthesis error: {exc}")
                    wrapped.__cause__ = exc
                    exc = wrapped
                logger.warning("[SPEECH] %s", exc)
                item.future.set_exception(exc)
            else:
                item.future.set_result(None)
        elif not task.cancelled():
            # Consume the outcome so a late failure is not reported as unretrieved.
            task.exception()

        self._schedule_next()
