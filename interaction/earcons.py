"""Short priority tones played ahead of announcements."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np

from core.logging import logger
from interaction.audio import AudioOutput


SAMPLE_RATE = 22050


@dataclass(frozen=True)
class Tone:
    frequency_hz: float
    duration_ms: int
    volume: float
    gap_after_ms: int = 0


def pattern(priority: str, volume: float = 0.15) -> list[Tone]:
    """High: two 1400 Hz beeps. Medium: one 900 Hz beep. Low: a quiet 600 Hz tick."""

    volume = max(0.0, min(1.0, volume))
    if priority == "high":
        return [Tone(1400, 100, volume, gap_after_ms=60), Tone(1400, 100, volume)]
    if priority == "medium":
        return [Tone(900, 120, volume)]
    return [Tone(600, 90, min(volume, 0.1))]


def render(tones: list[Tone], sample_rate: int = SAMPLE_RATE) -> bytes:
    """Synthesize ``tones`` as mono 16-bit PCM."""

    chunks: list[np.ndarray] = []
    for tone in tones:
        count = int(sample_rate * tone.duration_ms / 1000)
        t = np.arange(count, dtype=np.float32) / sample_rate
        wave = np.sin(2 * np.pi * tone.frequency_hz * t) * tone.volume
        chunks.append(wave)
        if tone.gap_after_ms:
            chunks.append(np.zeros(int(sample_rate * tone.gap_after_ms / 1000), dtype=np.float32))
    if not chunks:
        return b""
    samples = np.concatenate(chunks)
    return (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2").tobytes()


class EarconPlayer:
    """Plays priority tones; a missing audio backend disables it quietly."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        volume: float = 0.15,
        output: AudioOutput | None = None,
    ) -> None:
        self.enabled = enabled
        self.volume = max(0.0, min(1.0, volume))
        self._output = output

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "EarconPlayer":
        speech_cfg = config.get("speech") or {}
        return cls(
            enabled=bool(speech_cfg.get("earcons_enabled", True)),
            volume=float(speech_cfg.get("earcon_volume", 0.15)),
        )

    def _audio(self) -> AudioOutput | None:
        if self._output is None:
            try:
                self._output = AudioOutput()
            except RuntimeError as exc:
                logger.warning("[EARCON] Disabled: %s", exc)
                self.enabled = False
                return None
        return self._output

    async def play(self, priority: str) -> None:
        if not self.enabled:
            return
        output = self._audio()
        if output is None:
            return
        pcm = render(pattern(priority, self.volume))
        await asyncio.to_thread(output.play_pcm, pcm, sample_rate=SAMPLE_RATE)
