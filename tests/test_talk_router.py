from __future__ import annotations

from storybox.fields import TextField
from storybox.talk_router import TalkMode, TalkRouter, TalkState, TalkTrigger


class StubRecognizer:
    def __init__(self) -> None:
        self.events: list[str] = []

    def start(self) -> None:
        self.events.append("start")

    def stop(self) -> None:
        self.events.append("stop")


def _router() -> tuple[TalkRouter, StubRecognizer, TextField, TextField]:
    recognizer = StubRecognizer()
    router = TalkRouter(recognizer)
    field1 = TextField("field1")
    field2 = TextField("field2")
    router.declare_target("field1", field1)
    router.declare_target("field2", field2)
    return router, recognizer, field1, field2


def test_append_mode_joins_results_with_a_space() -> None:
    router, recognizer, field1, _ = _router()

    router.press(TalkTrigger(talk="field1", mode=TalkMode.APPEND))
    router.on_recognized("hello")
    router.on_recognized("world")

    assert field1.value == "hello world"
    assert router.state == TalkState.ARMED
    assert recognizer.events == ["start"]


def test_replace_mode_overwrites_field() -> None:
    router, _, field1, _ = _router()
    field1.value = "old text"

    router.press(TalkTrigger(talk="field1", mode=TalkMode.REPLACE))
    router.on_recognized("hello")
    router.on_recognized("world")

    assert field1.value == "world"


def test_results_without_armed_target_are_dropped() -> None:
    router, _, field1, field2 = _router()
    heard: list[tuple[str, str]] = []
    router.listen(lambda target, text: heard.append((target, text)))

    router.on_recognized("nobody listening")

    assert field1.value == ""
    assert field2.value == ""
    assert heard == []


def test_late_results_route_to_last_armed_target_until_next_press() -> None:
    router, recognizer, field1, field2 = _router()
    trigger1 = TalkTrigger(talk="field1")

    router.press(trigger1)
    router.release(trigger1)
    router.on_recognized("late")
    router.press(TalkTrigger(talk="field2"))
    router.on_recognized("fresh")

    assert field1.value == "late"
    assert field2.value == "fresh"
    assert recognizer.events == ["start", "stop", "start"]
    assert router.target_id == "field2"


def test_release_matches_by_action_not_by_trigger() -> None:
    router, recognizer, _, _ = _router()

    router.press(TalkTrigger(talk="field1"))
    router.release(TalkTrigger(talk=None, action="record"))
    assert router.state == TalkState.ARMED

    router.release(TalkTrigger(talk="field2"))
    assert router.state == TalkState.IDLE
    assert recognizer.events == ["start", "stop"]


def test_undeclared_target_drops_results() -> None:
    router, _, field1, _ = _router()

    router.press(TalkTrigger(talk="missing"))
    router.on_recognized("hello")

    assert router.target_id is None
    assert field1.value == ""


def test_listeners_receive_target_and_text() -> None:
    router, _, _, _ = _router()
    heard: list[tuple[str, str]] = []
    remove = router.listen(lambda target, text: heard.append((target, text)))

    router.press(TalkTrigger(talk="field2"))
    router.on_recognized("")
    router.on_recognized("a cat")
    remove()
    router.on_recognized("ignored")

    assert heard == [("field2", "a cat")]


def test_pressing_while_armed_rearms_without_guard() -> None:
    router, recognizer, field1, field2 = _router()

    router.press(TalkTrigger(talk="field1"))
    router.press(TalkTrigger(talk="field2", mode=TalkMode.REPLACE))
    router.on_recognized("second")

    assert recognizer.events == ["start", "start"]
    assert router.mode == TalkMode.REPLACE
    assert field1.value == ""
    assert field2.value == "second"


def test_failing_listener_does_not_block_others() -> None:
    router, _, field1, _ = _router()
    heard: list[tuple[str, str]] = []

    def _broken(target: str, text: str) -> None:
        raise RuntimeError("lane gone")

    router.listen(_broken)
    router.listen(lambda target, text: heard.append((target, text)))
    router.press(TalkTrigger(talk="field1"))
    router.on_recognized("still here")

    assert field1.value == "still here"
    assert heard == [("field1", "still here")]
