"""Speech engines behind the scheduler: remote TTS, local TTS, and fallback."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import importlib
import importlib.util
import json
import threading
from typing import Any, Callable, Protocol
from urllib import error, request
import wave

from core.errors import ConfigurationError, SpeechError
from core.logging import logger
from interaction.audio import AudioOutput


BASE_WORDS_PER_MINUTE = 200
CARTESIA_VERSION = "2024-06-10"


@dataclass(frozen=True)
class VoiceParams:
    rate: float = 1.0
    volume: float = 1.0
    voice: str | None = None


class SpeechEngine(Protocol):
    """Capability the scheduler drives; ``speak`` resolves when audio ends."""

    name: str

    async def speak(self, text: str, params: VoiceParams) -> None:
        """Play ``text`` to completion."""

    def cancel(self) -> None:
        """Stop the current utterance as soon as possible."""

    def list_voices(self) -> list[str]:
        """Return available voice identifiers."""

    def is_paused(self) -> bool:
        """Whether the engine is stuck in a paused state."""

    def resume(self) -> None:
        """Resume a paused engine."""


def select_preferred_voice(voices: list[Any], language: str = "en") -> Any | None:
    """First voice in ``language`` that is not a Google network voice, else the first."""

    def _languages(voice: Any) -> str:
        values = getattr(voice, "languages", None) or []
        decoded = [
            value.decode("utf-8", "ignore") if isinstance(value, bytes) else str(value)
            for value in values
        ]
        return " ".join(decoded + [str(getattr(voice, "id", ""))]).lower()

    matching = [
        voice
        for voice in voices
        if language in _languages(voice) and "google" not in str(getattr(voice, "name", "")).lower()
    ]
    if matching:
        return matching[0]
    return voices[0] if voices else None


class LocalSpeechEngine:
    """pyttsx3 running on one dedicated thread, since its drivers are not thread-safe."""

    name = "local"

    def __init__(self, *, language: str = "en") -> None:
        if importlib.util.find_spec("pyttsx3") is None:
            raise RuntimeError("pyttsx3 is required for local speech")
        self._pyttsx3 = importlib.import_module("pyttsx3")
        self._language = language
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tts")
        self._engine: Any | None = None
        self._voices: list[str] = []
        self._preferred_voice: str | None = None

    def _ensure_engine(self) -> Any:
        if self._engine is None:
            self._engine = self._pyttsx3.init()
            voices = list(self._engine.getProperty("voices") or [])
            self._voices = [str(voice.id) for voice in voices]
            preferred = select_preferred_voice(voices, self._language)
            self._preferred_voice = str(preferred.id) if preferred is not None else None
            logger.info(
                "[SPEECH] Local voices loaded: %s (preferred=%s)",
                len(self._voices),
                self._preferred_voice,
            )
        return self._engine

    def _speak_blocking(self, text: str, params: VoiceParams) -> None:
        engine = self._ensure_engine()
        engine.setProperty("rate", int(BASE_WORDS_PER_MINUTE * params.rate))
        engine.setProperty("volume", max(0.0, min(1.0, params.volume)))
        voice = params.voice or self._preferred_voice
        if voice:
            engine.setProperty("voice", voice)
        engine.say(text)
        engine.runAndWait()

    async def speak(self, text: str, params: VoiceParams) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, self._speak_blocking, text, params)
        except RuntimeError as exc:
            raise SpeechError(f"Local speech failed: {exc}") from exc

    def cancel(self) -> None:
        if self._engine is not None:
            self._engine.stop()

    def list_voices(self) -> list[str]:
        return list(self._voices)

    def is_paused(self) -> bool:
        return False

    def resume(self) -> None:
        return None

    def close(self) -> None:
        self._executor.shutdown(wait=False)


# (request, timeout_s) -> audio bytes
SynthesisTransport = Callable[[request.Request, float], bytes]


def _urllib_synthesis(req: request.Request, timeout_s: float) -> bytes:
    with request.urlopen(req, timeout=timeout_s) as response:
        return response.read()


class RemoteSpeechEngine:
    """Cartesia ``tts/bytes`` synthesis played back as 16-bit WAV."""

    name = "cartesia"

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = "https://api.cartesia.ai/tts/bytes",
        voice_id: str = "bf0a246a-8642-498a-9950-80c35e9276b5",
        language: str = "en",
        model_id: str = "sonic-2",
        timeout_s: float = 10.0,
        output: AudioOutput | None = None,
        transport: SynthesisTransport | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._api_url = api_url
        self._voice_id = voice_id
        self._language = language
        self._model_id = model_id
        self._timeout_s = timeout_s
        self._output = output
        self._transport = transport or _urllib_synthesis
        self._cancel_event = threading.Event()

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _build_request(self, text: str) -> request.Request:
        payload = {
            "model_id": self._model_id,
            "transcript": text,
            "voice": {"mode": "id", "id": self._voice_id},
            "output_format": {
                "container": "wav",
                "encoding": "pcm_s16le",
                "sample_rate": 44100,
            },
            "language": self._language,
        }
        return request.Request(
            self._api_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Cartesia-Version": CARTESIA_VERSION,
                "X-API-Key": self._api_key,
            },
            method="POST",
        )

    def synthesize(self, text: str) -> bytes:
        if not self._api_key:
            raise ConfigurationError("Cartesia API key not configured", source=self.name)
        try:
            return self._transport(self._build_request(text), self._timeout_s)
        except error.HTTPError as exc:
            raise SpeechError(f"Cartesia API error: {exc.code}") from exc
        except (error.URLError, OSError) as exc:
            raise SpeechError(f"Cartesia unreachable: {exc}") from exc

    def _audio(self) -> AudioOutput:
        if self._output is None:
            self._output = AudioOutput()
        return self._output

    async def speak(self, text: str, params: VoiceParams) -> None:
        cancel_event = threading.Event()
        self._cancel_event = cancel_event
        audio = await asyncio.to_thread(self.synthesize, text)
        if cancel_event.is_set():
            return
        try:
            await asyncio.to_thread(
                self._audio().play_wav,
                audio,
                volume=params.volume,
                cancel_event=cancel_event,
            )
        except (RuntimeError, OSError, EOFError, wave.Error) as exc:
            raise SpeechError(f"Playback failed: {exc}") from exc

    def cancel(self) -> None:
        self._cancel_event.set()

    def list_voices(self) -> list[str]:
        return [self._voice_id]

    def is_paused(self) -> bool:
        return False

    def resume(self) -> None:
        return None


class FallbackSpeechEngine:
    """Prefers the remote voice and degrades to the local one on failure."""

    name = "fallback"

    def __init__(self, remote: RemoteSpeechEngine | None, local: SpeechEngine) -> None:
        self._remote = remote
        self._local = local
        self._active: SpeechEngine = local
        self.remote_failures = 0

    async def speak(self, text: str, params: VoiceParams) -> None:
        if self._remote is not None and self._remote.is_configured:
            self._active = self._remote
            try:
                await self._remote.speak(text, params)
                return
            except (ConfigurationError, SpeechError) as exc:
                self.remote_failures += 1
                logger.warning("[SPEECH] Remote voice unavailable, using local: %s", exc)
        self._active = self._local
        await self._local.speak(text, params)

    def cancel(self) -> None:
        self._active.cancel()

    def list_voices(self) -> list[str]:
        voices = list(self._local.list_voices())
        if self._remote is not None and self._remote.is_configured:
            voices = self._remote.list_voices() + voices
        return voices

    def is_paused(self) -> bool:
        return self._active.is_paused()

    def resume(self) -> None:
        self._active.resume()


class ConsoleSpeechEngine:
    """Logs utterances instead of speaking them. Used headless or without pyttsx3."""

    name = "console"

    def __init__(self, *, words_per_second: float = 0.0) -> None:
        self._words_per_second = words_per_second
        self._cancel = asyncio.Event()
        self.spoken: list[str] = []

    async def speak(self, text: str, params: VoiceParams) -> None:
        self._cancel.clear()
        logger.info("[SPEECH] (console) %s", text)
        self.spoken.append(text)
        if self._words_per_second <= 0:
            return
        duration = len(text.split()) / (self._words_per_second * max(params.rate, 0.1))
        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=duration)
        except asyncio.TimeoutError:
            return

    def cancel(self) -> None:
        self._cancel.set()

    def list_voices(self) -> list[str]:
        return ["console"]

    def is_paused(self) -> bool:
        return False

    def resume(self) -> None:
        return None
