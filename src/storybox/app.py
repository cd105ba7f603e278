"""Wires the world model, routing and every lane into one session."""

from __future__ import annotations

from storybox.config import Settings
from storybox.frames import FrameChangeDetector
from storybox.llm import ChatClient, ImageGenerator
from storybox.subsystems import (
    CameraInput,
    ChatInput,
    DictateInput,
    DiscussionOutput,
    InterviewInput,
    MemoryView,
    PaintOutput,
    RealtimeSession,
    WritingOutput,
)
from storybox.talk_router import NullRecognitionSession, TalkRouter
from storybox.voice import RecognitionSession, SpeechOutputQueue
from storybox.world_model import WorldModelStore


class StoryboxApp:
    """One in-memory session: a shared world model plus its producers and consumers."""

    def __init__(
        self,
        settings: Settings,
        *,
        llm: ChatClient,
        images: ImageGenerator,
        recognizer: RecognitionSession | None = None,
        speech: SpeechOutputQueue | None = None,
        realtime: RealtimeSession | None = None,
    ) -> None:
        self.settings = settings
        self.speech = speech
        self.store = WorldModelStore()
        self.router = TalkRouter(recognizer or NullRecognitionSession())
        self.detector = FrameChangeDetector(
            color_distance_threshold=settings.color_distance_threshold,
            change_threshold=settings.change_threshold,
            debounce_seconds=settings.frame_debounce_ms / 1000,
        )

        self.memory = MemoryView(
            self.store,
            export_dir=settings.export_dir,
            filename_pattern=settings.export_filename_pattern,
        )
        self.chat = ChatInput(self.store, llm, speech=speech)
        self.chat.bind(self.router)
        self.dictate = DictateInput(self.store, llm)
        self.dictate.bind(self.router)
        self.camera = CameraInput(self.store, llm, self.detector)
        self.interview = InterviewInput(self.store, realtime) if realtime is not None else None
        self.paint = PaintOutput(self.store, llm, images, placeholder_url=settings.placeholder_image_url)
        self.writing = WritingOutput(self.store, llm)
        self.discussion = DiscussionOutput(
            self.store,
            llm,
            speech=speech,
            voices={"expert": settings.expert_voice, "novice": settings.novice_voice},
        )

    async def start(self) -> None:
        if self.speech is not None:
            await self.speech.start()

    async def close(self) -> None:
        """Cancel every live lane and release timers and workers."""
        if self.interview is not None and self.interview.active:
            self.interview.stop()
        self.paint.set_continuous(False)
        await self.camera.stop()
        for lane in (self.chat.lane, self.dictate.lane, self.paint.lane, self.writing.lane, self.discussion.lane):
            await lane.stop()
        self.detector.close()
        self.memory.close()
        if self.speech is not None:
            await self.speech.stop()
