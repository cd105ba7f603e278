"""Queued text-to-speech playback for spoken assistant output."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .interfaces import SpeechSynthesizer


@dataclass(slots=True)
class Utterance:
    """One queued piece of speech."""

    text: str
    voice: str | None = None


class SpeechOutputQueue:
    """Queue-backed async worker that plays utterances one at a time."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        *,
        max_chars: int = 500,
        logger: logging.Logger | None = None,
    ) -> None:
        self._synthesizer = synthesizer
        self._max_chars = max_chars
        self._logger = logger or logging.getLogger("storybox.voice.output")
        self._queue: asyncio.Queue[Utterance] = asyncio.Queue()
        self._worker_task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the worker loop once for this queue."""
        if self._worker_task and not self._worker_task.done():
            return

        self._worker_task = asyncio.create_task(self._worker_loop(), name="speech-output-worker")
        self._logger.info("speech_output_started")

    async def stop(self) -> None:
        """Stop worker loop and wait for graceful cancellation."""
        if not self._worker_task:
            return

        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        finally:
            self._worker_task = None

        self._logger.info("speech_output_stopped")

    def queue(self, text: str, voice: str | None = None) -> bool:
        """Queue ``text`` for playback; blank text is ignored."""
        normalized = " ".join(text.split())
        if not normalized:
            return False

        self._queue.put_nowait(Utterance(text=normalized[: self._max_chars], voice=voice))
        self._logger.info("speech_queued", extra={"voice": voice, "queue_size": self._queue.qsize()})
        return True

    def clear(self) -> None:
        """Drop every utterance that has not started playing."""
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            dropped += 1
        if dropped:
            self._logger.info("speech_cleared", extra={"dropped": dropped})

    async def join(self) -> None:
        await self._queue.join()

    async def _worker_loop(self) -> None:
        while True:
            utterance = await self._queue.get()
            try:
                await asyncio.to_thread(self._synthesizer.speak, utterance.text, utterance.voice)
            except Exception:  # noqa: BLE001 - playback failures must not stop the worker.
                self._logger.exception("speech_failed", extra={"voice": utterance.voice})
            finally:
                self._queue.task_done()
