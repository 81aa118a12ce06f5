"""Tests for the single-flow speech scheduler."""

from __future__ import annotations

import asyncio

import pytest

from core.errors import (
    AlreadySpeakingError,
    SpeechError,
    SpeechInterruptedError,
    SpeechNotUnlockedError,
    SpeechStalledError,
)
from interaction.engines import VoiceParams
from interaction.speech import QueueMode, SchedulerConfig, SpeechScheduler, SpeechState


class _FakeEngine:
    name = "fake"

    def __init__(self, duration_s: float = 0.0, error: Exception | None = None) -> None:
        self.duration_s = duration_s
        self.error = error
        self.started: list[str] = []
        self.finished: list[str] = []
        self.params: list[VoiceParams] = []
        self.cancel_count = 0
        self.paused = False
        self.resumed = 0

    async def speak(self, text: str, params: VoiceParams) -> None:
        self.started.append(text)
        self.params.append(params)
        if self.error is not None:
            raise self.error
        await asyncio.sleep(self.duration_s)
        self.finished.append(text)

    def cancel(self) -> None:
        self.cancel_count += 1

    def list_voices(self) -> list[str]:
        return ["fake-voice"]

    def is_paused(self) -> bool:
        return self.paused

    def resume(self) -> None:
        self.resumed += 1
        self.paused = False


def _scheduler(engine: _FakeEngine, **config) -> SpeechScheduler:
    config.setdefault("debounce_s", 0.0)
    return SpeechScheduler(engine, SchedulerConfig(**config))


def test_append_speaks_in_fifo_order() -> None:
    engine = _FakeEngine(duration_s=0.01)
    scheduler = _scheduler(engine)

    async def scenario() -> None:
        await asyncio.gather(scheduler.speak("one"), scheduler.speak("two"), scheduler.speak("three"))

    asyncio.run(scenario())

    assert engine.finished == ["one", "two", "three"]
    assert scheduler.state is SpeechState.IDLE
    assert scheduler.queue_length == 0


def test_only_one_utterance_is_active_at_a_time() -> None:
    engine = _FakeEngine(duration_s=0.05)
    scheduler = _scheduler(engine)

    async def scenario() -> tuple[int, list[str]]:
        first = asyncio.ensure_future(scheduler.speak("one"))
        second = asyncio.ensure_future(scheduler.speak("two"))
        await asyncio.sleep(0.01)
        snapshot = (scheduler.queue_length, list(engine.started))
        await asyncio.gather(first, second)
        return snapshot

    queued, started = asyncio.run(scenario())

    assert queued == 1
    assert started == ["one"]


def test_flush_drops_queue_and_interrupts_active() -> None:
    engine = _FakeEngine(duration_s=0.5)
    scheduler = _scheduler(engine)

    async def scenario() -> list:
        active = asyncio.ensure_future(scheduler.speak("active"))
        queued = asyncio.ensure_future(scheduler.speak("queued"))
        await asyncio.sleep(0.01)
        engine.duration_s = 0.0
        await scheduler.speak("urgent", queue_mode=QueueMode.FLUSH)
        return await asyncio.gather(active, queued, return_exceptions=True)

    outcomes = asyncio.run(scenario())

    assert all(isinstance(outcome, SpeechInterruptedError) for outcome in outcomes)
    assert engine.finished == ["urgent"]
    assert engine.cancel_count >= 1


def test_immediate_while_speaking_requires_interrupt() -> None:
    engine = _FakeEngine(duration_s=0.2)
    scheduler = _scheduler(engine)

    async def scenario() -> object:
        active = asyncio.ensure_future(scheduler.speak("active"))
        await asyncio.sleep(0.01)
        with pytest.raises(AlreadySpeakingError):
            await scheduler.speak("now", queue_mode=QueueMode.IMMEDIATE)
        engine.duration_s = 0.0
        await scheduler.speak("now", queue_mode="immediate", interrupt=True)
        return (await asyncio.gather(active, return_exceptions=True))[0]

    outcome = asyncio.run(scenario())

    assert isinstance(outcome, SpeechInterruptedError)
    assert engine.finished == ["now"]


def test_immediate_when_idle_speaks_right_away() -> None:
    engine = _FakeEngine()
    scheduler = _scheduler(engine)

    asyncio.run(scheduler.speak("hello", queue_mode=QueueMode.IMMEDIATE))

    assert engine.finished == ["hello"]


def test_gated_audio_requires_unlock_and_uses_slower_rate() -> None:
    engine = _FakeEngine()
    scheduler = _scheduler(engine, requires_user_gesture=True)

    with pytest.raises(SpeechNotUnlockedError):
        asyncio.run(scheduler.speak("hello"))

    scheduler.unlock()
    asyncio.run(scheduler.speak("hello"))

    assert scheduler.unlocked
    assert engine.params[0].rate == pytest.approx(0.8)


def test_explicit_voice_params_are_forwarded() -> None:
    engine = _FakeEngine()
    scheduler = _scheduler(engine)

    asyncio.run(scheduler.speak("hello", rate=1.4, volume=0.5, voice="v1"))

    assert engine.params[0] == VoiceParams(rate=1.4, volume=0.5, voice="v1")


def test_stalled_utterance_is_cancelled() -> None:
    engine = _FakeEngine(duration_s=1.0)
    scheduler = _scheduler(engine, max_utterance_base_s=0.05, max_utterance_per_char_s=0.0)

    with pytest.raises(SpeechStalledError):
        asyncio.run(scheduler.speak("this never ends"))

    assert engine.cancel_count >= 1
    assert scheduler.error_count == 1
    assert not scheduler.is_speaking


def test_engine_failures_surface_as_speech_errors_and_queue_continues() -> None:
    engine = _FakeEngine(error=RuntimeError("driver crashed"))
    scheduler = _scheduler(engine)

    async def scenario() -> list:
        first = asyncio.ensure_future(scheduler.speak("one"))
        second = asyncio.ensure_future(scheduler.speak("two"))
        return await asyncio.gather(first, second, return_exceptions=True)

    outcomes = asyncio.run(scenario())

    assert all(isinstance(outcome, SpeechError) for outcome in outcomes)
    assert isinstance(outcomes[0].__cause__, RuntimeError)
    assert engine.started == ["one", "two"]
    assert scheduler.error_count == 2


def test_watchdog_resumes_paused_engine() -> None:
    engine = _FakeEngine(duration_s=0.1)
    engine.paused = True
    scheduler = _scheduler(engine, watchdog_interval_s=0.02)

    asyncio.run(scheduler.speak("hello"))

    assert engine.resumed >= 1


def test_stop_interrupts_everything() -> None:
    engine = _FakeEngine(duration_s=0.5)
    scheduler = _scheduler(engine)

    async def scenario() -> list:
        tasks = [asyncio.ensure_future(scheduler.speak(text)) for text in ("a", "b")]
        await asyncio.sleep(0.01)
        scheduler.stop()
        return await asyncio.gather(*tasks, return_exceptions=True)

    outcomes = asyncio.run(scenario())

    assert all(isinstance(outcome, SpeechInterruptedError) for outcome in outcomes)
    assert engine.finished == []


def test_cancelled_caller_removes_its_queued_item() -> None:
    engine = _FakeEngine(duration_s=0.05)
    scheduler = _scheduler(engine)

    async def scenario() -> None:
        first = asyncio.ensure_future(scheduler.speak("one"))
        second = asyncio.ensure_future(scheduler.speak("two"))
        await asyncio.sleep(0.01)
        second.cancel()
        await asyncio.gather(second, return_exceptions=True)
        assert scheduler.queue_length == 0
        await first

    asyncio.run(scenario())

    assert engine.finished == ["one"]


def test_scheduler_config_from_config() -> None:
    config = SchedulerConfig.from_config({"speech": {"rate": 1.2, "debounce_ms": 100}})

    assert config.rate == 1.2
    assert config.debounce_s == pytest.approx(0.1)
    assert config.default_rate == 1.2
    assert _scheduler(_FakeEngine()).list_voices() == ["fake-voice"]
