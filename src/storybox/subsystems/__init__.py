"""Input producers and output consumers built on cancellable lanes."""

from .camera_input import CameraInput
from .chat_input import ChatInput
from .dictate_input import DictateInput
from .discussion_output import DialogueLine, DialogueStreamParser, DiscussionOutput
from .interview_input import InterviewInput, RealtimeSession
from .memory import MemoryView
from .paint_output import PaintOutput
from .writing_output import WritingOutput

__all__ = [
    "CameraInput",
    "ChatInput",
    "DialogueLine",
    "DialogueStreamParser",
    "DictateInput",
    "DiscussionOutput",
    "InterviewInput",
    "MemoryView",
    "PaintOutput",
    "RealtimeSession",
    "WritingOutput",
]
