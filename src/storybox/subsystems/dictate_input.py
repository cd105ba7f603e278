"""Dictation lane: spoken or typed instructions edit the world model directly."""

from __future__ import annotations

import asyncio
import logging

from storybox.fields import TextField
from storybox.lanes import CancellableLane, CancellationToken
from storybox.llm import ChatClient, prompts
from storybox.submission_queue import SubmissionQueue
from storybox.talk_router import TalkRouter
from storybox.world_model import WorldModelStore, WorldModelTools

TELL_PROMPT = "tell-prompt"


class DictateInput:
    """Turns each instruction, plus anything still queued, into one tool-calling request."""

    def __init__(self, store: WorldModelStore, llm: ChatClient, *, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._llm = llm
        self._logger = logger or logging.getLogger("storybox.subsystems.dictate")
        self.queue = SubmissionQueue()
        self.tell_prompt = TextField(TELL_PROMPT)
        self.message_output = TextField("message-output")
        self.lane: CancellableLane[list[str], tuple[list[str], str]] = CancellableLane(
            "dictate", self._update_world, self._apply
        )

    def bind(self, router: TalkRouter) -> None:
        router.declare_target(TELL_PROMPT, self.tell_prompt)
        router.listen(self._on_recognized)

    def submit(self, text: str) -> asyncio.Task[None] | None:
        text = text.strip()
        if not text:
            return None
        self.queue.push(text)
        return self.lane.trigger(self.queue.snapshot())

    def _on_recognized(self, target_id: str, text: str) -> None:
        if target_id == TELL_PROMPT:
            self.submit(text)

    async def _update_world(self, inputs: list[str], token: CancellationToken) -> tuple[list[str], str]:
        world_xml = self._store.current()
        self._logger.info("dictate_requested", extra={"inputs": inputs})
        tools = WorldModelTools(self._store, token, lane=self.lane.name)
        content = await self._llm.run_tools(prompts.dictate_messages(world_xml, inputs), tools)
        return inputs, content

    def _apply(self, result: tuple[list[str], str]) -> None:
        inputs, content = result
        self.message_output.value = content
        self.queue.reconcile(inputs)
