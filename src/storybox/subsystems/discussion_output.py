"""Discussion lane: a simulated two-person dialogue about the world, read aloud."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass

from storybox.fields import TextField
from storybox.lanes import CancellableLane, CancellationToken
from storybox.llm import ChatClient, prompts
from storybox.voice import SpeechOutputQueue
from storybox.world_model import WorldModelStore


@dataclass(slots=True, frozen=True)
class DialogueLine:
    speaker: str
    utterance: str


class DialogueStreamParser:
    """Pulls complete ``{"speaker", "utterance"}`` objects out of a streamed JSON reply.

    Objects are yielded as soon as they close, before the rest of the document
    has arrived.
    """

    def __init__(self, key: str = "utterances") -> None:
        self._key = f'"{key}"'
        self._decoder = json.JSONDecoder()
        self._buffer = ""
        self._position: int | None = None
        self._done = False

    def feed(self, chunk: str) -> list[DialogueLine]:
        self._buffer += chunk
        lines: list[DialogueLine] = []
        if self._done:
            return lines

        if self._position is None:
            key_at = self._buffer.find(self._key)
            if key_at < 0:
                return lines
            array_at = self._buffer.find("[", key_at + len(self._key))
            if array_at < 0:
                return lines
            self._position = array_at + 1

        while True:
            pos = self._skip_separators(self._position)
            if pos >= len(self._buffer):
                self._position = pos
                break
            if self._buffer[pos] == "]":
                self._done = True
                break
            try:
                value, end = self._decoder.raw_decode(self._buffer, pos)
            except json.JSONDecodeError:
                self._position = pos
                break
            self._position = end
            if isinstance(value, dict) and "utterance" in value:
                lines.append(DialogueLine(speaker=str(value.get("speaker", "")), utterance=str(value["utterance"])))
        return lines

    def _skip_separators(self, pos: int) -> int:
        while pos < len(self._buffer) and self._buffer[pos] in " \t\r\n,":
            pos += 1
        return pos


class DiscussionOutput:
    """Start/stop toggle around a streamed, spoken dialogue."""

    def __init__(
        self,
        store: WorldModelStore,
        llm: ChatClient,
        *,
        speech: SpeechOutputQueue | None = None,
        voices: dict[str, str | None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._llm = llm
        self._speech = speech
        self._voices = voices or {}
        self._logger = logger or logging.getLogger("storybox.subsystems.discussion")
        self.dialogue_prompt = TextField("dialogue-prompt")
        self.lines: list[DialogueLine] = []
        self.running = False
        self.lane: CancellableLane[str, None] = CancellableLane("discussion", self._discuss, self._finish)

    async def toggle(self) -> None:
        if self.running:
            await self.stop()
        else:
            self.start()

    def start(self) -> asyncio.Task[None]:
        self.running = True
        self.lines = []
        return self.lane.trigger(self.dialogue_prompt.value)

    async def stop(self) -> None:
        self.running = False
        await self.lane.stop()

    async def _discuss(self, requirement: str, token: CancellationToken) -> None:
        if self._speech is not None:
            token.add_callback(self._speech.clear)

        parser = DialogueStreamParser()
        stream = self._llm.stream(
            prompts.discussion_messages(self._store.current(), requirement),
            response_format={"type": "json_object"},
            max_tokens=4000,
        )
        try:
            async for delta in stream:
                for line in parser.feed(delta):
                    token.raise_if_cancelled()
                    self._logger.info("dialogue_line", extra={"speaker": line.speaker})
                    self.lines.append(line)
                    if self._speech is not None:
                        self._speech.queue(line.utterance, voice=self._voices.get(line.speaker))
        except Exception:
            if not token.cancelled:
                self.running = False
            raise

    def _finish(self, _: None) -> None:
        self.running = False
