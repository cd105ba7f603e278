"""Camera lane: describe captured frames and fold them into the world model."""

from __future__ import annotations

import asyncio
import itertools
import logging
import re
from datetime import datetime
from typing import Callable

import numpy as np

from storybox.fields import TextField
from storybox.frames import FrameChangeDetector, FrameSource, encode_data_url
from storybox.lanes import CancellableLane, CancellationToken
from storybox.llm import ChatClient, prompts
from storybox.world_model import RewriteMutation, WorldModelStore

_SCENE_RE = re.compile(r"<scene>([\s\S]*?)</scene>")
_WORLD_RE = re.compile(r"<world>[\s\S]*?</world>")


def format_scene(response: str, *, timestamp: str | None = None) -> str:
    """Normalize a ``<scene>`` description, optionally stamping it with a time."""
    match = _SCENE_RE.search(response)
    if not match:
        return ""
    body = "\n".join(f"  {line}" for line in match.group(1).strip().split("\n"))
    opening = f'<scene timestamp="{timestamp}">' if timestamp else "<scene>"
    return f"{opening}\n{body}\n</scene>"


def extract_world(response: str) -> str:
    match = _WORLD_RE.search(response)
    return match.group(0) if match else ""


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S")


class CameraInput:
    """Captures frames manually or on detected change.

    Descriptions run concurrently; only the most recently started, distinct
    description is used to rewrite the world model, and each new one
    supersedes the rewrite in flight.
    """

    def __init__(
        self,
        store: WorldModelStore,
        llm: ChatClient,
        detector: FrameChangeDetector,
        *,
        temporal: bool = False,
        clock: Callable[[], str] = _clock,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._llm = llm
        self._detector = detector
        self._clock = clock
        self._logger = logger or logging.getLogger("storybox.subsystems.camera")
        self.temporal = temporal
        self.camera_prompt = TextField("camera-prompt")
        self.description = TextField("cam-description")
        self.task_count = 0
        self._sequence = itertools.count(1)
        self._latest_started = 0
        self._last_scene = ""
        self._last_frame: np.ndarray | None = None
        self._describe_tasks: set[asyncio.Task[None]] = set()
        self._stop_auto_capture: Callable[[], None] | None = None
        self.lane: CancellableLane[str, str] = CancellableLane("camera", self._update_world, self._apply)

    @property
    def auto_capture(self) -> bool:
        return self._stop_auto_capture is not None

    def set_auto_capture(self, enabled: bool) -> None:
        if enabled and self._stop_auto_capture is None:
            self._stop_auto_capture = self._detector.on_change(self._on_frame_change)
        elif not enabled and self._stop_auto_capture is not None:
            self._stop_auto_capture()
            self._stop_auto_capture = None

    def observe(self, frame: np.ndarray) -> None:
        """Feed a live frame to change detection."""
        self._last_frame = frame
        self._detector.on_sample(frame)

    async def run_camera(self, source: FrameSource, *, interval_seconds: float = 1 / 15) -> None:
        await self._detector.watch(source, interval_seconds=interval_seconds, sink=self.observe)

    def capture(self, frame: np.ndarray | None = None) -> asyncio.Task[None] | None:
        """Describe ``frame``, or the latest observed frame."""
        frame = frame if frame is not None else self._last_frame
        if frame is None:
            return None
        task = asyncio.create_task(self._describe(frame, next(self._sequence)))
        self._describe_tasks.add(task)
        task.add_done_callback(self._describe_tasks.discard)
        return task

    async def wait(self) -> None:
        """Wait for every in-flight description and the world update they lead to."""
        while self._describe_tasks:
            await asyncio.gather(*list(self._describe_tasks), return_exceptions=True)
        await self.lane.wait()

    async def stop(self) -> None:
        self.set_auto_capture(False)
        for task in list(self._describe_tasks):
            task.cancel()
        await asyncio.gather(*list(self._describe_tasks), return_exceptions=True)
        await self.lane.stop()
        self.description.clear()

    def _on_frame_change(self, ratio: float) -> None:
        self.capture()

    async def _describe(self, frame: np.ndarray, started: int) -> None:
        self.task_count += 1
        try:
            response = await self._llm.describe_image(
                prompts.CAMERA_DESCRIBE_SYSTEM,
                self.camera_prompt.value or prompts.DEFAULT_CAMERA_PROMPT,
                encode_data_url(frame),
            )
        except Exception:  # noqa: BLE001 - a failed description just yields nothing.
            self._logger.exception("camera_describe_failed")
            response = ""
        finally:
            self.task_count -= 1

        scene = format_scene(response, timestamp=self._clock() if self.temporal else None)
        if not scene or started <= self._latest_started:
            return
        self._latest_started = started
        if scene == self._last_scene:
            return
        self._last_scene = scene
        self.description.value = scene
        self.lane.trigger(scene)

    async def _update_world(self, scene: str, token: CancellationToken) -> str:
        messages = prompts.camera_world_messages(self.temporal, self._store.current(), scene)
        response = await self._llm.complete(messages)
        xml = extract_world(response)
        if not xml:
            self._logger.error("camera_invalid_world_response", extra={"response": response})
        return xml

    def _apply(self, xml: str) -> None:
        if xml:
            self._store.apply(RewriteMutation(document=xml))
