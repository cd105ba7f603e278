"""Push-to-talk routing of one shared speech recognizer to many input fields."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from storybox.fields import TextField
from storybox.voice.interfaces import RecognitionSession

TALK_ACTION = "talk"

RecognitionListener = Callable[[str, str], None]


class TalkMode(str, Enum):
    """How recognized text is written into the armed field."""

    REPLACE = "replace"
    APPEND = "append"


class TalkState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


@dataclass(slots=True, frozen=True)
class TalkTrigger:
    """A declared push-to-talk control.

    ``talk`` names the field that receives recognized speech, ``action`` is the
    logical action the control belongs to.
    """

    talk: str | None
    mode: TalkMode = TalkMode.APPEND
    action: str = TALK_ACTION


class TalkRouter:
    """Arms a target field on press and releases the recognizer on release.

    Results that arrive after a release still go to the last armed field until
    the next press re-arms the router.
    """

    def __init__(self, recognizer: RecognitionSession, *, logger: logging.Logger | None = None) -> None:
        self._recognizer = recognizer
        self._logger = logger or logging.getLogger("storybox.talk_router")
        self._fields: dict[str, TextField] = {}
        self._listeners: list[RecognitionListener] = []
        self._state = TalkState.IDLE
        self._target_id: str | None = None
        self._target: TextField | None = None
        self._mode = TalkMode.APPEND

    @property
    def state(self) -> TalkState:
        return self._state

    @property
    def target_id(self) -> str | None:
        return self._target_id if self._target is not None else None

    @property
    def mode(self) -> TalkMode:
        return self._mode

    def declare_target(self, target_id: str, field: TextField) -> None:
        self._fields[target_id] = field

    def listen(self, listener: RecognitionListener) -> Callable[[], None]:
        """Receive ``(target_id, text)`` for every result routed to a field."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def press(self, trigger: TalkTrigger) -> None:
        if trigger.action != TALK_ACTION:
            return
        if self._state == TalkState.ARMED:
            self._logger.warning("talk_session_overlap", extra={"target": trigger.talk})

        self._target_id = trigger.talk
        self._target = self._fields.get(trigger.talk or "")
        self._mode = trigger.mode
        self._recognizer.start()
        self._state = TalkState.ARMED
        self._logger.info("talk_pressed", extra={"target": trigger.talk, "mode": trigger.mode.value})

    def release(self, trigger: TalkTrigger) -> None:
        if trigger.action != TALK_ACTION:
            return
        self._recognizer.stop()
        self._state = TalkState.IDLE
        self._logger.info("talk_released", extra={"target": self._target_id})

    def on_recognized(self, text: str) -> None:
        if not text:
            return
        target = self._target
        if target is None or self._target_id is None:
            self._logger.debug("recognition_dropped", extra={"text": text})
            return

        if self._mode == TalkMode.APPEND and target.value:
            target.value = f"{target.value} {text}"
        else:
            target.value = text

        for listener in list(self._listeners):
            try:
                listener(self._target_id, text)
            except Exception:  # noqa: BLE001
                self._logger.exception("recognition_listener_failed", extra={"target": self._target_id})


class NullRecognitionSession:
    """Recognizer stand-in for text-only front ends."""

    def start(self) -> None:
        return None

    def stop(self) -> None:
        return None
