from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import numpy as np

from storybox.frames import FrameChangeDetector
from storybox.lanes import LaneOutcome
from storybox.subsystems import CameraInput, ChatInput, DictateInput, InterviewInput, MemoryView
from storybox.subsystems.chat_input import OPENING_LINE, TALK_TARGET
from storybox.subsystems.dictate_input import TELL_PROMPT
from storybox.talk_router import TalkRouter, TalkTrigger
from storybox.world_model import EMPTY_XML, MutationRequest, RewriteMutation, ScriptMutation, WorldModelStore


@dataclass
class ToolStep:
    mutations: list[MutationRequest] = field(default_factory=list)
    content: str = ""
    gate: asyncio.Event | None = None
    ignore_cancel: bool = False


class StubLLM:
    def __init__(self) -> None:
        self.steps: list[ToolStep] = []
        self.replies: list[str] = []
        self.descriptions: list[tuple[asyncio.Event | None, str]] = []
        self.tool_requests: list[list[dict[str, Any]]] = []
        self.complete_requests: list[list[dict[str, Any]]] = []
        self.image_urls: list[str] = []

    async def run_tools(self, messages, handler, *, tools=None) -> str:
        self.tool_requests.append(messages)
        step = self.steps.pop(0)
        if step.gate is not None:
            try:
                await step.gate.wait()
            except asyncio.CancelledError:
                if not step.ignore_cancel:
                    raise
                await step.gate.wait()
        for mutation in step.mutations:
            handler(mutation)
        return step.content

    async def complete(self, messages, *, model=None) -> str:
        self.complete_requests.append(messages)
        return self.replies.pop(0)

    async def describe_image(self, system_prompt: str, prompt: str, image_url: str) -> str:
        self.image_urls.append(image_url)
        gate, text = self.descriptions.pop(0)
        if gate is not None:
            await gate.wait()
        return text


class StubRecognizer:
    def start(self) -> None:
        return None

    def stop(self) -> None:
        return None


class StubSpeech:
    def __init__(self) -> None:
        self.spoken: list[tuple[str, str | None]] = []

    def queue(self, text: str, voice: str | None = None) -> bool:
        self.spoken.append((text, voice))
        return True

    def clear(self) -> None:
        return None


def _add(tag: str) -> ScriptMutation:
    return ScriptMutation(script=f"world.append(world.makeelement({tag!r}, {{}}))")


def test_dictation_supersedes_and_reconciles_queue() -> None:
    async def _run() -> tuple[DictateInput, WorldModelStore, StubLLM]:
        store = WorldModelStore()
        llm = StubLLM()
        gate = asyncio.Event()
        llm.steps = [
            ToolStep(mutations=[_add("cat")], content="first", gate=gate),
            ToolStep(mutations=[_add("cat"), ScriptMutation("world.find('cat').set('color', 'red')")], content="ok"),
        ]
        dictate = DictateInput(store, llm)
        dictate.submit("add a cat")
        await asyncio.sleep(0)
        await dictate.submit("make it red")
        gate.set()
        await asyncio.sleep(0)
        return dictate, store, llm

    dictate, store, llm = asyncio.run(_run())
    assert store.current() == '<world><cat color="red"></cat></world>'
    assert dictate.message_output.value == "ok"
    assert len(dictate.queue) == 0
    assert llm.tool_requests[1][-1]["content"] == "add a cat; make it red"


def test_superseded_tool_call_cannot_publish() -> None:
    async def _run() -> tuple[WorldModelStore, LaneOutcome | None, int]:
        store = WorldModelStore()
        llm = StubLLM()
        gate = asyncio.Event()
        llm.steps = [
            ToolStep(mutations=[_add("stale")], gate=gate, ignore_cancel=True),
            ToolStep(mutations=[_add("fresh")], content="ok"),
        ]
        dictate = DictateInput(store, llm)
        first = dictate.submit("one")
        await asyncio.sleep(0)
        await dictate.submit("two")
        revision = store.revision
        gate.set()
        await first
        return store, dictate.lane.last_run.outcome if dictate.lane.last_run else None, store.revision - revision

    store, outcome, extra_revisions = asyncio.run(_run())
    assert store.current() == "<world><fresh></fresh></world>"
    assert outcome == LaneOutcome.APPLIED
    assert extra_revisions == 0


def test_blank_dictation_is_ignored() -> None:
    dictate = DictateInput(WorldModelStore(), StubLLM())

    assert dictate.submit("   ") is None
    assert len(dictate.queue) == 0


def test_speech_routed_to_tell_prompt_submits_dictation() -> None:
    async def _run() -> tuple[DictateInput, WorldModelStore]:
        store = WorldModelStore()
        llm = StubLLM()
        llm.steps = [ToolStep(mutations=[_add("tree")], content="Added a tree.")]
        router = TalkRouter(StubRecognizer())
        dictate = DictateInput(store, llm)
        dictate.bind(router)
        router.press(TalkTrigger(talk=TELL_PROMPT))
        router.on_recognized("add a tree")
        await dictate.lane.wait()
        return dictate, store

    dictate, store = asyncio.run(_run())
    assert dictate.tell_prompt.value == "add a tree"
    assert dictate.message_output.value == "Added a tree."
    assert store.current() == "<world><tree></tree></world>"


def test_chat_keeps_transcript_and_speaks_reply() -> None:
    async def _run() -> tuple[ChatInput, StubSpeech, StubLLM]:
        llm = StubLLM()
        llm.steps = [
            ToolStep(content="Hi! What did you do today?"),
            ToolStep(mutations=[_add("hike")], content="Sounds fun."),
        ]
        speech = StubSpeech()
        router = TalkRouter(StubRecognizer())
        chat = ChatInput(WorldModelStore(), llm, speech=speech)
        chat.bind(router)
        chat.goal.value = "Learn about the user's day."
        await chat.start()
        router.press(TalkTrigger(talk=TALK_TARGET))
        router.on_recognized("I went hiking")
        await chat.lane.wait()
        return chat, speech, llm

    chat, speech, llm = asyncio.run(_run())
    assert chat.transcript == [
        f"User: {OPENING_LINE}",
        "You: Hi! What did you do today?",
        "User: I went hiking",
        "You: Sounds fun.",
    ]
    assert chat.transcript_display.value.endswith("You: Sounds fun.")
    assert speech.spoken == [("Hi! What did you do today?", None), ("Sounds fun.", None)]
    system_prompt = llm.tool_requests[1][0]["content"]
    assert "Learn about the user's day." in system_prompt
    assert "You: Hi! What did you do today?" in system_prompt


def _frame(value: int) -> np.ndarray:
    return np.full((8, 8, 3), value, dtype=np.uint8)


def test_camera_description_rewrites_world() -> None:
    async def _run() -> tuple[CameraInput, WorldModelStore, StubLLM]:
        store = WorldModelStore()
        llm = StubLLM()
        llm.descriptions = [(None, "<scene>\n<cat>on a mat</cat>\n</scene>")]
        llm.replies = ["Updated:\n<world><cat>on a mat</cat></world>"]
        camera = CameraInput(store, llm, FrameChangeDetector(), temporal=True, clock=lambda: "12:00:00")
        camera.capture(_frame(0))
        await camera.wait()
        return camera, store, llm

    camera, store, llm = asyncio.run(_run())
    assert store.current() == "<world><cat>on a mat</cat></world>"
    assert camera.description.value == '<scene timestamp="12:00:00">\n  <cat>on a mat</cat>\n</scene>'
    assert llm.image_urls[0].startswith("data:image/jpeg;base64,")
    assert camera.task_count == 0


def test_camera_ignores_response_without_world() -> None:
    async def _run() -> WorldModelStore:
        store = WorldModelStore()
        llm = StubLLM()
        llm.descriptions = [(None, "<scene>a cat</scene>")]
        llm.replies = ["I cannot help with that."]
        camera = CameraInput(store, llm, FrameChangeDetector())
        camera.capture(_frame(0))
        await camera.wait()
        return store

    assert asyncio.run(_run()).current() == EMPTY_XML


def test_older_description_finishing_late_is_ignored() -> None:
    async def _run() -> tuple[CameraInput, StubLLM, WorldModelStore]:
        store = WorldModelStore()
        llm = StubLLM()
        slow = asyncio.Event()
        llm.descriptions = [(slow, "<scene>old view</scene>"), (None, "<scene>new view</scene>")]
        llm.replies = ["<world><new/></world>"]
        camera = CameraInput(store, llm, FrameChangeDetector())
        camera.capture(_frame(0))
        await asyncio.sleep(0)
        camera.capture(_frame(255))
        await asyncio.sleep(0.01)
        slow.set()
        await camera.wait()
        return camera, llm, store

    camera, llm, store = asyncio.run(_run())
    assert "new view" in camera.description.value
    assert len(llm.complete_requests) == 1
    assert store.current() == "<world><new/></world>"


def test_repeated_scene_does_not_trigger_update() -> None:
    async def _run() -> StubLLM:
        llm = StubLLM()
        llm.descriptions = [(None, "<scene>same</scene>"), (None, "<scene>same</scene>")]
        llm.replies = ["<world><same/></world>"]
        camera = CameraInput(WorldModelStore(), llm, FrameChangeDetector())
        camera.capture(_frame(0))
        await camera.wait()
        camera.capture(_frame(0))
        await camera.wait()
        return llm

    assert len(asyncio.run(_run()).complete_requests) == 1


def test_auto_capture_describes_frame_after_change() -> None:
    async def _run() -> tuple[StubLLM, bool]:
        llm = StubLLM()
        llm.descriptions = [(None, "<scene>changed</scene>")]
        llm.replies = ["<world><changed/></world>"]
        camera = CameraInput(WorldModelStore(), llm, FrameChangeDetector(debounce_seconds=0))
        camera.set_auto_capture(True)
        camera.observe(_frame(0))
        camera.observe(_frame(255))
        await asyncio.sleep(0.01)
        await camera.wait()
        await camera.stop()
        return llm, camera.auto_capture

    llm, auto_capture = asyncio.run(_run())
    assert len(llm.image_urls) == 1
    assert auto_capture is False


def test_capture_without_frame_does_nothing() -> None:
    camera = CameraInput(WorldModelStore(), StubLLM(), FrameChangeDetector())

    assert camera.capture() is None


class StubRealtime:
    def __init__(self) -> None:
        self.instructions: list[str] = []
        self.events: list[str] = []
        self.messages: list[str] = []
        self.handler = None
        self.tools: list[dict[str, Any]] = []

    async def start(self) -> None:
        self.events.append("start")

    def stop(self) -> None:
        self.events.append("stop")

    def update_instructions(self, instructions: str) -> None:
        self.instructions.append(instructions)

    def register_tools(self, tools, handler) -> None:
        self.tools = tools
        self.handler = handler

    def mute_microphone(self) -> None:
        self.events.append("mute")

    def unmute_microphone(self) -> None:
        self.events.append("unmute")

    def send_user_message(self, text: str) -> None:
        self.messages.append(text)


def test_interview_tracks_world_in_instructions() -> None:
    store = WorldModelStore()
    session = StubRealtime()
    interview = InterviewInput(store, session)
    interview.interview_prompt.value = "Find out about the user's hobbies."

    asyncio.run(interview.start())
    result = session.handler("rewrite_xml", '{"xml": "<world><user name=\\"Ada\\"/></world>"}')
    interview.press_to_talk()
    interview.release_to_talk()
    interview.stop()
    store.forget()

    assert result == "Done"
    assert len(session.instructions) == 2
    assert "Get started by modeling the <user>" in session.instructions[0]
    assert "hobbies" in session.instructions[0]
    assert 'name="Ada"' in session.instructions[1]
    assert session.events == ["start", "mute", "unmute", "mute", "stop"]
    assert [tool["function"]["name"] for tool in session.tools] == ["update_by_script", "rewrite_xml"]
    assert len(session.messages) == 1
    assert interview.active is False


def test_memory_view_previews_exports_and_imports(tmp_path: Path) -> None:
    store = WorldModelStore()
    memory = MemoryView(store, export_dir=tmp_path)
    store.apply(RewriteMutation("<world><lamp/></world>"))

    exported = memory.export(now=datetime(2024, 5, 6, 7, 8, 9))
    memory.forget()
    forgotten = memory.preview.value
    memory.import_file(exported)

    assert exported == tmp_path / "storybox-20240506-070809.xml"
    assert forgotten == EMPTY_XML
    assert memory.preview.value == "<world><lamp/></world>"
    memory.close()
    store.forget()
    assert memory.preview.value == "<world><lamp/></world>"
