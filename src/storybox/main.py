"""CLI startup entrypoint for Storybox."""

from __future__ import annotations

import asyncio

import typer
from openai import OpenAIError
from rich import print

from storybox.app import StoryboxApp
from storybox.config import settings
from storybox.errors import BackendUnavailableError
from storybox.frames import FrameChangeDetector, load_frame
from storybox.llm import OpenAIChatClient, OpenAIImageGenerator
from storybox.talk_router import TalkMode, TalkTrigger
from storybox.telemetry import configure_logging

app = typer.Typer(
    help=(
        "Storybox collaborative world modeling. Interview mode needs a realtime speech session "
        "and is not available from the CLI."
    )
)

REPL_HELP = "Commands: /forget, /export [path], /import <path>, /show <image>, /paint, /write <prompt>, /discuss, /quit"


def _build_clients() -> tuple[OpenAIChatClient, OpenAIImageGenerator]:
    try:
        llm = OpenAIChatClient(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.chat_model,
            vision_model=settings.vision_model,
        )
        images = OpenAIImageGenerator(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.image_model,
        )
    except OpenAIError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)
    return llm, images


async def _handle_command(session: StoryboxApp, line: str) -> bool:
    """Run one REPL slash command; return False when the session should end."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()

    if command == "/quit":
        return False
    if command == "/forget":
        session.memory.forget()
    elif command == "/export":
        print({"exported": str(session.memory.export(argument or None))})
    elif command == "/import":
        print({"imported": session.memory.import_file(argument)})
    elif command == "/show":
        session.camera.capture(load_frame(argument))
        await session.camera.wait()
        print({"scene": session.camera.description.value})
    elif command == "/paint":
        session.paint.render()
        await session.paint.lane.wait()
        print({"image_prompt": session.paint.image_prompt.value, "image": session.paint.image_output.value[:80]})
    elif command == "/write":
        await session.writing.write(argument)
        print(session.writing.preview.value)
    elif command == "/discuss":
        session.discussion.start()
        await session.discussion.lane.wait()
        for line_ in session.discussion.lines:
            print({"speaker": line_.speaker, "utterance": line_.utterance})
    else:
        print({"hint": REPL_HELP})
    return True


@app.command()
def start() -> None:
    """Show runtime configuration."""
    print(
        {
            "app_name": settings.app_name,
            "chat_model": settings.chat_model,
            "vision_model": settings.vision_model,
            "image_model": settings.image_model,
            "color_distance_threshold": settings.color_distance_threshold,
            "change_threshold": settings.change_threshold,
            "frame_debounce_ms": settings.frame_debounce_ms,
            "export_dir": settings.export_dir,
            "interview": "unavailable: no realtime session backend",
        }
    )


@app.command("frame-diff")
def frame_diff(reference: str, sample: str) -> None:
    """Compare two image files the way the camera change detector does."""
    detector = FrameChangeDetector(
        color_distance_threshold=settings.color_distance_threshold,
        change_threshold=settings.change_threshold,
    )
    try:
        ratio = detector.compare(load_frame(reference), load_frame(sample))
    except (FileNotFoundError, OSError) as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)
    print({"diff_ratio": round(ratio, 6), "changed": ratio > detector.change_threshold})


@app.command()
def chat(
    converse: bool = typer.Option(False, help="Hold a conversation instead of dictating edits"),
    goal: str = typer.Option("", help="Conversation goal when --converse is set"),
    world_file: str = typer.Option(None, help="World model XML file to start from"),
) -> None:
    """Edit the world model from typed input."""
    configure_logging(settings.log_level)
    llm, images = _build_clients()

    async def _run() -> None:
        session = StoryboxApp(settings, llm=llm, images=images)
        await session.start()
        if world_file:
            session.memory.import_file(world_file)
        session.chat.goal.value = goal
        print({"chat": "started", "hint": REPL_HELP})

        if converse:
            await session.chat.start()
            print({"assistant": session.chat.transcript[-1] if session.chat.transcript else ""})

        try:
            while True:
                line = (await asyncio.to_thread(input, "> ")).strip()
                if not line:
                    continue
                if line.startswith("/"):
                    if not await _handle_command(session, line):
                        break
                    continue

                if converse:
                    await session.chat.submit(line)
                    print({"assistant": session.chat.transcript[-1] if session.chat.transcript else ""})
                else:
                    await session.dictate.submit(line)
                    print({"message": session.dictate.message_output.value})
                print(session.store.current())
        finally:
            await session.close()

    try:
        asyncio.run(_run())
    except (EOFError, KeyboardInterrupt):
        print({"chat": "stopped"})


@app.command("voice-chat")
def voice_chat(
    dictate: bool = typer.Option(False, help="Route speech to dictation instead of conversation"),
    append: bool = typer.Option(True, help="Append recognized speech to the field instead of replacing it"),
) -> None:
    """Push-to-talk conversation: press Enter to talk, Enter again to send."""
    configure_logging(settings.log_level)
    try:
        from storybox.voice.stt_speechrecognition import SpeechRecognitionSession
        from storybox.voice.tts_pyttsx3 import Pyttsx3SpeechSynthesizer
    except ImportError:
        print({"error": "Voice extras are missing. Install with: pip install 'storybox[voice]'"})
        raise typer.Exit(code=1)

    try:
        recognizer = SpeechRecognitionSession(phrase_time_limit=settings.phrase_time_limit)
        synthesizer = Pyttsx3SpeechSynthesizer()
    except (BackendUnavailableError, RuntimeError) as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)

    llm, images = _build_clients()

    from storybox.subsystems.chat_input import TALK_TARGET
    from storybox.subsystems.dictate_input import TELL_PROMPT
    from storybox.voice import SpeechOutputQueue

    trigger = TalkTrigger(
        talk=TELL_PROMPT if dictate else TALK_TARGET,
        mode=TalkMode.APPEND if append else TalkMode.REPLACE,
    )

    async def _run() -> None:
        session = StoryboxApp(
            settings,
            llm=llm,
            images=images,
            recognizer=recognizer,
            speech=SpeechOutputQueue(synthesizer),
        )
        recognizer.connect(session.router.on_recognized)
        await session.start()
        if not dictate:
            session.chat.start()
        print({"voice_chat": "started", "hint": "Press Enter to talk, Enter again to send. Ctrl+C to quit."})
        try:
            while True:
                await asyncio.to_thread(input, "Press Enter to talk ...")
                session.router.press(trigger)
                await asyncio.to_thread(input, "Listening, press Enter to send ...")
                session.router.release(trigger)
                print({"world": session.store.current()})
        finally:
            await session.close()

    try:
        asyncio.run(_run())
    except (EOFError, KeyboardInterrupt):
        print({"voice_chat": "stopped"})


if __name__ == "__main__":
    app()
