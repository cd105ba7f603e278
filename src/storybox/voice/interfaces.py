"""Contracts for speech recognition and synthesis."""

from typing import Protocol


class RecognitionSession(Protocol):
    """Shared speech recognizer that push-to-talk controls turn on and off."""

    def start(self) -> None:
        """Begin delivering recognized text."""

    def stop(self) -> None:
        """Stop listening; results already in flight may still arrive."""


class SpeechSynthesizer(Protocol):
    """Speaks text aloud, blocking until playback finishes."""

    def speak(self, text: str, voice: str | None = None) -> None:
        """Play ``text`` with the given voice, or the default voice."""
