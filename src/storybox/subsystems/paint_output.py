"""Painting lane: render the world model as an image."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from storybox.fields import TextField
from storybox.lanes import CancellableLane, CancellationToken
from storybox.llm import ChatClient, ImageGenerator, prompts
from storybox.world_model import EMPTY_XML, WorldModelStore

EMPTY_PROMPT = "Empty"


class PaintOutput:
    """Describes the world as an image prompt, then renders it.

    Requests repeat only when the visual prompt, the world or the render click
    count changed since the last one.
    """

    def __init__(
        self,
        store: WorldModelStore,
        llm: ChatClient,
        images: ImageGenerator,
        *,
        placeholder_url: str = "https://placehold.co/400",
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._llm = llm
        self._images = images
        self._placeholder_url = placeholder_url
        self._logger = logger or logging.getLogger("storybox.subsystems.paint")
        self.visual_prompt = TextField("visual-prompt")
        self.image_prompt = TextField("image-prompt")
        self.image_output = TextField("image-output")
        self.click_count = 0
        self._last_key: str | None = None
        self._stop_continuous: Callable[[], None] | None = None
        self.lane: CancellableLane[str, str] = CancellableLane("paint", self._paint, self._apply)

    @property
    def continuous(self) -> bool:
        return self._stop_continuous is not None

    def render(self) -> asyncio.Task[None] | None:
        self.click_count += 1
        return self._request(self._store.current())

    def set_continuous(self, enabled: bool) -> None:
        if enabled and self._stop_continuous is None:
            self._stop_continuous = self._store.subscribe(self._request)
        elif not enabled and self._stop_continuous is not None:
            self._stop_continuous()
            self._stop_continuous = None

    def _request(self, world_xml: str) -> asyncio.Task[None] | None:
        key = f"{self.visual_prompt.value}::{world_xml}::{self.click_count}"
        if key == self._last_key:
            return None
        self._last_key = key
        return self.lane.trigger(world_xml)

    async def _paint(self, world_xml: str, token: CancellationToken) -> str:
        if world_xml == EMPTY_XML:
            self.image_prompt.value = EMPTY_PROMPT
            return self._placeholder_url

        image_prompt = await self._llm.complete(prompts.paint_messages(world_xml, self.visual_prompt.value))
        token.raise_if_cancelled()
        self.image_prompt.value = image_prompt
        if not image_prompt:
            return self._placeholder_url
        self._logger.info("paint_prompt_ready", extra={"prompt": image_prompt})
        return await self._images.generate(image_prompt)

    def _apply(self, url: str) -> None:
        self.image_output.value = url
