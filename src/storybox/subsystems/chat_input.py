"""Conversational lane: chat with the user while taking notes in the world model."""

from __future__ import annotations

import asyncio
import logging

from storybox.fields import TextField
from storybox.lanes import CancellableLane, CancellationToken
from storybox.llm import ChatClient, prompts
from storybox.submission_queue import SubmissionQueue
from storybox.talk_router import TalkRouter
from storybox.voice import SpeechOutputQueue
from storybox.world_model import WorldModelStore, WorldModelTools

TALK_TARGET = "default-talk-transcription"
OPENING_LINE = "Let's get started."


class ChatInput:
    """Keeps a running transcript and speaks every reply."""

    def __init__(
        self,
        store: WorldModelStore,
        llm: ChatClient,
        *,
        speech: SpeechOutputQueue | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._llm = llm
        self._speech = speech
        self._logger = logger or logging.getLogger("storybox.subsystems.chat")
        self.queue = SubmissionQueue()
        self.transcript: list[str] = []
        self.goal = TextField("chat-goal-prompt")
        self.talk_output = TextField(TALK_TARGET)
        self.transcript_display = TextField("chat-transcript")
        self.lane: CancellableLane[list[str], tuple[list[str], str]] = CancellableLane(
            "chat", self._converse, self._apply
        )

    def bind(self, router: TalkRouter) -> None:
        router.declare_target(TALK_TARGET, self.talk_output)
        router.listen(self._on_recognized)

    def start(self) -> asyncio.Task[None] | None:
        """Begin a fresh conversation."""
        self.transcript = []
        self.transcript_display.clear()
        return self.submit(OPENING_LINE)

    def submit(self, text: str) -> asyncio.Task[None] | None:
        if not text:
            return None
        self.queue.push(text)
        return self.lane.trigger(self.queue.snapshot())

    def _on_recognized(self, target_id: str, text: str) -> None:
        if target_id == TALK_TARGET:
            self.submit(text)

    async def _converse(self, inputs: list[str], token: CancellationToken) -> tuple[list[str], str]:
        world_xml = self._store.current()
        messages = prompts.chat_messages(self.goal.value, list(self.transcript), world_xml, inputs)
        tools = WorldModelTools(self._store, token, lane=self.lane.name)
        content = await self._llm.run_tools(messages, tools)
        return inputs, content

    def _apply(self, result: tuple[list[str], str]) -> None:
        inputs, content = result
        self.queue.reconcile(inputs)
        self.transcript.extend(f"User: {text}" for text in inputs)
        self.transcript.append(f"You: {content}")
        self.transcript_display.value = "\n".join(self.transcript)
        if content:
            self._logger.info("chat_replied", extra={"reply": content})
            if self._speech is not None:
                self._speech.queue(content)
