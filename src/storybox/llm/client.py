"""OpenAI-backed chat, tool-calling and image generation clients."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Protocol

from openai import AsyncOpenAI

from .tools import WORLD_MODEL_TOOLS, MutationHandler, dispatch_tool_call

Message = dict[str, Any]


class ChatClient(Protocol):
    """What lanes need from a language-model service."""

    async def complete(self, messages: list[Message], *, model: str | None = None) -> str:
        """Return the assistant reply for ``messages``."""

    def stream(
        self,
        messages: list[Message],
        *,
        response_format: dict[str, Any] | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield reply text deltas as they arrive."""

    async def run_tools(
        self,
        messages: list[Message],
        handler: MutationHandler,
        *,
        tools: list[dict[str, Any]] | None = None,
    ) -> str:
        """Let the model call world-model tools until it produces final content."""

    async def describe_image(self, system_prompt: str, prompt: str, image_url: str) -> str:
        """Return the model's description of an image."""


class ImageGenerator(Protocol):
    """Turns a prompt into a displayable image URL."""

    async def generate(self, prompt: str) -> str:
        """Return an image URL (possibly a data URL) for ``prompt``."""


class OpenAIChatClient:
    """Chat completions client; cancelling the awaiting task aborts the request."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str = "gpt-4o",
        vision_model: str = "gpt-4o-mini",
        max_tool_rounds: int = 10,
        client: AsyncOpenAI | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model
        self._vision_model = vision_model
        self._max_tool_rounds = max_tool_rounds
        self._logger = logger or logging.getLogger("storybox.llm")

    async def complete(self, messages: list[Message], *, model: str | None = None) -> str:
        response = await self._client.chat.completions.create(model=model or self._model, messages=messages)
        return response.choices[0].message.content or ""

    async def stream(
        self,
        messages: list[Message],
        *,
        response_format: dict[str, Any] | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        kwargs: dict[str, Any] = {}
        if response_format is not None:
            kwargs["response_format"] = response_format
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            stream=True,
            **kwargs,
        )
        async for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

    async def run_tools(
        self,
        messages: list[Message],
        handler: MutationHandler,
        *,
        tools: list[dict[str, Any]] | None = None,
    ) -> str:
        history = list(messages)
        for _ in range(self._max_tool_rounds):
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=history,
                tools=tools or WORLD_MODEL_TOOLS,
            )
            message = response.choices[0].message
            if not message.tool_calls:
                return message.content or ""

            history.append(
                {
                    "role": "assistant",
                    "content": message.content,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.function.name, "arguments": call.function.arguments},
                        }
                        for call in message.tool_calls
                    ],
                }
            )
            for call in message.tool_calls:
                result = dispatch_tool_call(call.function.name, call.function.arguments, handler)
                self._logger.info("tool_called", extra={"tool": call.function.name, "result": result})
                history.append({"role": "tool", "tool_call_id": call.id, "content": result})

        self._logger.warning("tool_rounds_exhausted", extra={"max_rounds": self._max_tool_rounds})
        return ""

    async def describe_image(self, system_prompt: str, prompt: str, image_url: str) -> str:
        messages: list[Message] = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            },
        ]
        return await self.complete(messages, model=self._vision_model)


class OpenAIImageGenerator:
    """Image generation through the OpenAI images endpoint."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str = "dall-e-3",
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model

    async def generate(self, prompt: str) -> str:
        response = await self._client.images.generate(
            model=self._model,
            prompt=prompt,
            n=1,
            response_format="b64_json",
        )
        image = response.data[0]
        if image.b64_json:
            return f"data:image/png;base64,{image.b64_json}"
        return image.url or ""
