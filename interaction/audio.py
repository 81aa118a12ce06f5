"""Blocking PCM/WAV playback through PyAudio, with cooperative cancellation."""

from __future__ import annotations

import importlib
import importlib.util
import io
import threading
from typing import Any
import wave

import numpy as np

from core.logging import logger


CHUNK_FRAMES = 2048


def _require_pyaudio() -> Any:
    if importlib.util.find_spec("pyaudio") is None:
        raise RuntimeError("PyAudio is required for audio playback")
    return importlib.import_module("pyaudio")


def scale_volume(pcm: bytes, volume: float) -> bytes:
    """Scale 16-bit little-endian PCM by ``volume`` (0..1)."""

    volume = max(0.0, min(1.0, float(volume)))
    if volume >= 1.0:
        return pcm
    samples = np.frombuffer(pcm, dtype="<i2").astype(np.float32) * volume
    return np.clip(samples, -32768, 32767).astype("<i2").tobytes()


class AudioOutput:
    """Opens one output stream per clip and writes it in small chunks.

    Chunked writes let a ``threading.Event`` stop playback between chunks.
    """

    def __init__(self, output_device_index: int | None = None) -> None:
        self._pyaudio = _require_pyaudio()
        self._output_device_index = output_device_index
        self._lock = threading.Lock()
        self.p = self._pyaudio.PyAudio()

    def play_pcm(
        self,
        pcm: bytes,
        *,
        sample_rate: int,
        channels: int = 1,
        sample_width: int = 2,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """Play raw PCM. Returns ``False`` when cancelled before the end."""

        with self._lock:
            stream = self.p.open(
                format=self.p.get_format_from_width(sample_width),
                channels=channels,
                rate=sample_rate,
                output=True,
                output_device_index=self._output_device_index,
            )
            try:
                step = CHUNK_FRAMES * channels * sample_width
                for offset in range(0, len(pcm), step):
                    if cancel_event is not None and cancel_event.is_set():
                        logger.debug("[AUDIO] Playback cancelled")
                        return False
                    stream.write(pcm[offset : offset + step])
            finally:
                stream.stop_stream()
                stream.close()
        return True

    def play_wav(
        self,
        wav_bytes: bytes,
        *,
        volume: float = 1.0,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        with wave.open(io.BytesIO(wav_bytes), "rb") as wav_file:
            sample_width = wav_file.getsampwidth()
            channels = wav_file.getnchannels()
            sample_rate = wav_file.getframerate()
            pcm = wav_file.readframes(wav_file.getnframes())
        if sample_width == 2:
            pcm = scale_volume(pcm, volume)
        return self.play_pcm(
            pcm,
            sample_rate=sample_rate,
            channels=channels,
            sample_width=sample_width,
            cancel_event=cancel_event,
        )

    def list_output_devices(self) -> list[str]:
        names: list[str] = []
        for index in range(self.p.get_device_count()):
            info = self.p.get_device_info_by_index(index)
            if info.get("maxOutputChannels", 0) > 0:
                names.append(str(info.get("name")))
        return names

    def close(self) -> None:
        self.p.terminate()
