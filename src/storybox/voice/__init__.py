"""Speech input and output module boundaries."""

from .interfaces import RecognitionSession, SpeechSynthesizer
from .output import SpeechOutputQueue, Utterance

__all__ = [
    "RecognitionSession",
    "SpeechOutputQueue",
    "SpeechSynthesizer",
    "Utterance",
]
