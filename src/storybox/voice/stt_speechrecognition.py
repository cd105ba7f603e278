"""Speech-to-text backend powered by ``speech_recognition``."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from storybox.errors import BackendUnavailableError

from .interfaces import RecognitionSession

TextCallback = Callable[[str], None]


class SpeechRecognitionSession(RecognitionSession):
    """Background microphone listening that reports transcripts on the event loop.

    Only one background listener runs at a time; ``start`` while listening is a
    no-op.
    """

    def __init__(
        self,
        *,
        language: str = "en-US",
        phrase_time_limit: float = 5.0,
        sample_rate: int = 16_000,
        chunk_size: int = 1024,
        adjust_noise_seconds: float = 0.2,
        logger: logging.Logger | None = None,
    ) -> None:
        try:
            import speech_recognition as sr
        except ImportError as exc:  # pragma: no cover - import guard
            raise BackendUnavailableError(
                "Voice STT backend unavailable. Install extras with: pip install 'storybox[voice]'"
            ) from exc
        self._sr = sr
        self._recognizer = sr.Recognizer()
        try:
            self._microphone = sr.Microphone(sample_rate=sample_rate, chunk_size=chunk_size)
        except (AttributeError, OSError) as exc:
            raise BackendUnavailableError(
                "Microphone backend unavailable. Install extras with: pip install 'storybox[voice]'"
            ) from exc
        self._language = language
        self._phrase_time_limit = phrase_time_limit
        self._logger = logger or logging.getLogger("storybox.voice.stt")
        self._callback: TextCallback | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_listening: Callable[..., None] | None = None

        noise_seconds = max(0.0, adjust_noise_seconds)
        if noise_seconds > 0:
            # Blocks for noise_seconds; start() runs on the event loop.
            try:
                with self._microphone as source:
                    self._recognizer.adjust_for_ambient_noise(source, duration=noise_seconds)
            except OSError as exc:
                raise BackendUnavailableError(f"Microphone could not be opened: {exc}") from exc

    def connect(self, callback: TextCallback) -> None:
        """Deliver every recognized transcript to ``callback``."""
        self._callback = callback

    def start(self) -> None:
        if self._stop_listening is not None:
            self._logger.warning("recognition_already_active")
            return

        self._loop = asyncio.get_running_loop()
        self._stop_listening = self._recognizer.listen_in_background(
            self._microphone,
            self._handle_audio,
            phrase_time_limit=self._phrase_time_limit,
        )
        self._logger.info("recognition_started")

    def stop(self) -> None:
        if self._stop_listening is None:
            return
        self._stop_listening(wait_for_stop=False)
        self._stop_listening = None
        self._logger.info("recognition_stopped")

    def _handle_audio(self, recognizer, audio) -> None:
        # Runs on the speech_recognition background thread.
        try:
            text = recognizer.recognize_google(audio, language=self._language)
        except self._sr.UnknownValueError:
            return
        except self._sr.RequestError:
            self._logger.exception("recognition_request_failed")
            return

        if self._loop is not None and self._callback is not None and text:
            self._loop.call_soon_threadsafe(self._callback, text)
