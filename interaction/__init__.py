"""Interaction package utilities."""

from interaction.audio import AudioOutput
from interaction.speech import QueueMode, SpeechScheduler

__all__ = ["AudioOutput", "QueueMode", "SpeechScheduler"]
