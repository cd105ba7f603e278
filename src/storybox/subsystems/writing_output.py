"""Writing lane: stream prose grounded in the world model."""

from __future__ import annotations

import asyncio

from storybox.fields import TextField
from storybox.lanes import CancellableLane, CancellationToken
from storybox.llm import ChatClient, prompts
from storybox.world_model import WorldModelStore


class WritingOutput:
    def __init__(self, store: WorldModelStore, llm: ChatClient) -> None:
        self._store = store
        self._llm = llm
        self.writing_prompt = TextField("writing-prompt")
        self.preview = TextField("writing-preview")
        self.lane: CancellableLane[str, None] = CancellableLane("writing", self._write)

    def write(self, prompt: str | None = None) -> asyncio.Task[None]:
        if prompt is not None:
            self.writing_prompt.value = prompt
        return self.lane.trigger(self.writing_prompt.value)

    async def _write(self, writing_prompt: str, token: CancellationToken) -> None:
        self.preview.clear()
        messages = prompts.writing_messages(self._store.current(), writing_prompt)
        async for delta in self._llm.stream(messages):
            token.raise_if_cancelled()
            self.preview.append(delta)
