"""Interview lane: a realtime voice session that models the user as it talks."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from storybox.fields import TextField
from storybox.llm import WORLD_MODEL_TOOLS, dispatch_tool_call, prompts
from storybox.world_model import WorldModelStore

ToolCallHandler = Callable[[str, str], str]

INTERVIEW_OPENER = "Start the interview now by asking me for an intro"


class RealtimeSession(Protocol):
    """Speech-to-speech model session that can call tools."""

    async def start(self) -> None:
        """Open the session."""

    def stop(self) -> None:
        """Close the session."""

    def update_instructions(self, instructions: str) -> None:
        """Replace the session's system instructions."""

    def register_tools(self, tools: list[dict[str, Any]], handler: ToolCallHandler) -> None:
        """Expose tools; ``handler(name, arguments_json)`` returns the tool output."""

    def mute_microphone(self) -> None:
        """Stop streaming microphone audio."""

    def unmute_microphone(self) -> None:
        """Resume streaming microphone audio."""

    def send_user_message(self, text: str) -> None:
        """Append a user message and request a response."""


class InterviewInput:
    """Keeps the session's instructions in step with the world model."""

    def __init__(
        self,
        store: WorldModelStore,
        session: RealtimeSession,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._session = session
        self._logger = logger or logging.getLogger("storybox.subsystems.interview")
        self.interview_prompt = TextField("interview-prompt")
        self.model_prompt = TextField("model-prompt")
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    async def toggle(self) -> None:
        if self.active:
            self.stop()
        else:
            await self.start()

    async def start(self) -> None:
        if self.active:
            return
        await self._session.start()
        self._session.mute_microphone()
        self._unsubscribe = self._store.subscribe(self._update_instructions)
        self._session.register_tools(WORLD_MODEL_TOOLS, self._handle_tool_call)
        self._session.send_user_message(INTERVIEW_OPENER)
        self._logger.info("interview_started")

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._session.stop()
        self._logger.info("interview_stopped")

    def press_to_talk(self) -> None:
        self._session.unmute_microphone()

    def release_to_talk(self) -> None:
        self._session.mute_microphone()

    def _update_instructions(self, world_xml: str) -> None:
        self._session.update_instructions(
            prompts.interview_instructions(self.interview_prompt.value, self.model_prompt.value, world_xml)
        )

    def _handle_tool_call(self, name: str, arguments: str) -> str:
        return dispatch_tool_call(name, arguments, self._store.apply)
