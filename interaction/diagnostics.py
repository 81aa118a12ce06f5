"""Diagnostics routines for speech and audio output."""

from __future__ import annotations

import importlib
import importlib.util
from typing import Iterable

from core.logging import logger
from diagnostics.models import DiagnosticResult, DiagnosticStatus


def probe(available_modules: Iterable[str] | None = None) -> DiagnosticResult:
    """Check the speech and playback backends.

    Args:
        available_modules: Optional module names treated as installed, for offline runs.

    Returns:
        PASS when local speech and audio playback are both available, WARN when
        announcements would fall back to log output.
    """

    name = "speech"
    if available_modules is None:
        modules = {
            module for module in ("pyttsx3", "pyaudio") if importlib.util.find_spec(module) is not None
        }
    else:
        modules = set(available_modules)

    missing = [module for module in ("pyttsx3", "pyaudio") if module not in modules]
    if missing:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.WARN,
            details=f"Missing {', '.join(missing)}; announcements will be logged only",
        )

    if available_modules is None:
        _log_output_devices()
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details="Local speech and audio playback available",
    )


def _log_output_devices() -> None:
    pyaudio = importlib.import_module("pyaudio")
    audio = pyaudio.PyAudio()
    try:
        for i in range(audio.get_device_count()):
            info = audio.get_device_info_by_index(i)
            if info.get("maxOutputChannels", 0) <= 0:
                continue
            logger.info("[AUDIO DIAG] Output device %s: %s", i, info.get("name"))
    finally:
        audio.terminate()
