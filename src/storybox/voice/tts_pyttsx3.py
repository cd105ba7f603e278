"""Text-to-speech backend powered by ``pyttsx3``."""

from __future__ import annotations

from storybox.errors import BackendUnavailableError

from .interfaces import SpeechSynthesizer


class Pyttsx3SpeechSynthesizer(SpeechSynthesizer):
    """Speaker playback using a local pyttsx3 engine instance."""

    def __init__(self, *, rate: int | None = None, volume: float | None = None) -> None:
        try:
            import pyttsx3
        except ImportError as exc:  # pragma: no cover - import guard
            raise BackendUnavailableError(
                "Voice TTS backend unavailable. Install extras with: pip install 'storybox[voice]'"
            ) from exc

        self._engine = pyttsx3.init()
        self._default_voice = self._engine.getProperty("voice")
        if rate is not None:
            self._engine.setProperty("rate", rate)
        if volume is not None:
            clamped = max(0.0, min(1.0, volume))
            self._engine.setProperty("volume", clamped)

    def speak(self, text: str, voice: str | None = None) -> None:
        text = text.strip()
        if not text:
            return
        self._engine.setProperty("voice", voice or self._default_voice)
        self._engine.say(text)
        self._engine.runAndWait()
