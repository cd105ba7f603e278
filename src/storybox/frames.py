"""Camera frame change detection."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from pathlib import Path
from typing import Callable, Protocol

import numpy as np
from PIL import Image

from storybox.debounce import Debouncer

ChangeListener = Callable[[float], None]
FrameSink = Callable[[np.ndarray], object]


class FrameSource(Protocol):
    """Anything that can hand out the latest camera frame."""

    def read(self) -> np.ndarray | None:
        """Return an ``(height, width, channels)`` frame, or ``None`` when no frame is ready."""


def _rgb(frame: np.ndarray) -> np.ndarray:
    pixels = np.asarray(frame)
    if pixels.ndim == 2:
        pixels = np.repeat(pixels[:, :, None], 3, axis=2)
    return pixels[..., :3].astype(np.int32)


def compare_frames(reference: np.ndarray, sample: np.ndarray, color_distance_threshold: float) -> float:
    """Fraction of pixels whose RGB distance from the reference exceeds the threshold."""
    ref = _rgb(reference)
    cur = _rgb(sample)
    if ref.shape != cur.shape:
        return 1.0

    total = ref.shape[0] * ref.shape[1]
    if total == 0:
        return 0.0

    distance = np.sqrt(((cur - ref) ** 2).sum(axis=-1))
    return float(np.count_nonzero(distance > color_distance_threshold)) / total


class FrameChangeDetector:
    """Keeps a reference frame and announces when the view changes enough.

    Change events are debounced so continuous motion produces one event after
    the scene settles instead of one per frame.
    """

    def __init__(
        self,
        *,
        color_distance_threshold: float = 30.0,
        change_threshold: float = 0.02,
        debounce_seconds: float = 0.2,
        logger: logging.Logger | None = None,
    ) -> None:
        self.color_distance_threshold = color_distance_threshold
        self.change_threshold = change_threshold
        self._logger = logger or logging.getLogger("storybox.frames")
        self._reference: np.ndarray | None = None
        self._listeners: list[ChangeListener] = []
        self._debouncer: Debouncer[float] = Debouncer(debounce_seconds, self._emit)

    @property
    def reference(self) -> np.ndarray | None:
        return self._reference

    def update_settings(self, color_distance_threshold: float, change_threshold: float) -> None:
        self.color_distance_threshold = color_distance_threshold
        self.change_threshold = change_threshold

    def compare(self, reference: np.ndarray, sample: np.ndarray) -> float:
        return compare_frames(reference, sample, self.color_distance_threshold)

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def on_sample(self, sample: np.ndarray) -> bool:
        """Feed one frame; return whether it replaced the reference as a change."""
        if self._reference is None:
            self._reference = sample
            return False

        ratio = self.compare(self._reference, sample)
        if ratio <= self.change_threshold:
            return False

        self._reference = sample
        self._debouncer.push(ratio)
        return True

    def reset(self) -> None:
        self._debouncer.cancel()
        self._reference = None

    def close(self) -> None:
        self._debouncer.cancel()
        self._listeners.clear()

    async def watch(
        self,
        source: FrameSource,
        *,
        interval_seconds: float = 1 / 15,
        sink: FrameSink | None = None,
    ) -> None:
        """Poll ``source`` until cancelled, feeding every frame to ``sink``."""
        feed = sink or self.on_sample
        try:
            while True:
                frame = source.read()
                if frame is not None:
                    feed(frame)
                await asyncio.sleep(interval_seconds)
        finally:
            self._debouncer.cancel()

    def _emit(self, ratio: float) -> None:
        self._logger.info("frame_changed", extra={"diff_ratio": ratio})
        for listener in list(self._listeners):
            try:
                listener(ratio)
            except Exception:  # noqa: BLE001
                self._logger.exception("frame_listener_failed")


def load_frame(path: str | Path) -> np.ndarray:
    """Read an image file into an RGB frame."""
    with Image.open(Path(path).expanduser()) as image:
        return np.asarray(image.convert("RGB"))


def encode_data_url(frame: np.ndarray, *, image_format: str = "JPEG") -> str:
    """Encode a frame as a base64 data URL for multimodal model input."""
    image = Image.fromarray(_rgb(frame).clip(0, 255).astype(np.uint8))
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    mime = f"image/{image_format.lower()}"
    return f"data:{mime};base64,{base64.b64encode(buffer.getvalue()).decode('ascii')}"
