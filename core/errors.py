"""Error taxonomy shared by detection sources, fusion and speech."""

from __future__ import annotations

from enum import Enum
from typing import Sequence


class EchoVisionError(Exception):
    """Base class for recoverable runtime errors."""


class ConfigurationError(EchoVisionError):
    """Missing or invalid endpoint/key. Not retryable."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class SourceErrorKind(str, Enum):
    """Failure categories reported by detection sources."""

    NETWORK = "network"
    AUTH = "auth"
    PARSE = "parse"
    TIMEOUT = "timeout"
    INFERENCE = "inference"
    UNKNOWN = "unknown"


class SourceError(EchoVisionError):
    """A detection source failed to produce a usable result."""

    def __init__(self, message: str, *, source: str, kind: SourceErrorKind) -> None:
        super().__init__(message)
        self.source = source
        self.kind = kind

    def __str__(self) -> str:
        return f"{self.source}/{self.kind.value}: {super().__str__()}"


class ModelLoadError(EchoVisionError):
    """The local detection model could not be loaded."""


class ModelLoadTimeout(ModelLoadError):
    """The local detection model did not finish loading in time."""


class DetectionInFlightError(EchoVisionError):
    """A fusion attempt was started while another was still running."""


class DetectionExhaustedError(EchoVisionError):
    """Every source in the fallback chain failed, including the local model."""

    def __init__(
        self,
        message: str,
        *,
        attempts: Sequence[object] = (),
        recommendation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = list(attempts)
        self.recommendation = recommendation


class SpeechError(EchoVisionError):
    """Speech engine failure or platform-gating violation."""


class AlreadySpeakingError(SpeechError):
    """An immediate utterance was requested while another one is playing."""


class SpeechNotUnlockedError(SpeechError):
    """Audio requires a user interaction before playback is allowed."""


class SpeechInterruptedError(SpeechError):
    """The utterance was flushed or cancelled before it finished."""


class SpeechStalledError(SpeechError):
    """The engine did not finish the utterance within its time bound."""
