from __future__ import annotations

import asyncio
import sys
import types

from storybox.voice.stt_speechrecognition import SpeechRecognitionSession


def _fake_speech_recognition(events: list[str]) -> types.ModuleType:
    module = types.ModuleType("speech_recognition")

    class UnknownValueError(Exception):
        pass

    class RequestError(Exception):
        pass

    class Microphone:
        def __init__(self, *args, **kwargs) -> None:
            pass

        def __enter__(self) -> "Microphone":
            return self

        def __exit__(self, *exc) -> None:
            return None

    class Recognizer:
        def adjust_for_ambient_noise(self, source, duration: float) -> None:
            events.append(f"calibrate:{duration}")

        def listen_in_background(self, source, callback, phrase_time_limit=None):
            events.append("listen")

            def _stop(wait_for_stop: bool = True) -> None:
                events.append("stop")

            return _stop

        def recognize_google(self, audio, language: str = "en-US") -> str:
            return audio

    module.UnknownValueError = UnknownValueError
    module.RequestError = RequestError
    module.Microphone = Microphone
    module.Recognizer = Recognizer
    return module


def test_calibration_happens_at_construction_not_on_start(monkeypatch) -> None:
    events: list[str] = []
    monkeypatch.setitem(sys.modules, "speech_recognition", _fake_speech_recognition(events))

    session = SpeechRecognitionSession(adjust_noise_seconds=0.5)
    constructed = list(events)

    async def _run() -> None:
        session.start()
        session.start()
        session.stop()
        session.start()

    asyncio.run(_run())

    assert constructed == ["calibrate:0.5"]
    assert events == ["calibrate:0.5", "listen", "stop", "listen"]


def test_recognized_text_is_posted_to_the_loop(monkeypatch) -> None:
    events: list[str] = []
    monkeypatch.setitem(sys.modules, "speech_recognition", _fake_speech_recognition(events))
    session = SpeechRecognitionSession(adjust_noise_seconds=0)
    heard: list[str] = []
    session.connect(heard.append)

    async def _run() -> None:
        session.start()
        session._handle_audio(session._recognizer, "add a tree")
        await asyncio.sleep(0)

    asyncio.run(_run())

    assert events == ["listen"]
    assert heard == ["add a tree"]
