"""Message builders for each lane's model calls."""

from __future__ import annotations

from typing import Any, Sequence

from storybox.world_model import EMPTY_XML

Message = dict[str, Any]

SYNTAX_GUIDELINE = """Syntax guideline
- Be hierarchical and efficient. Add details when asked by user.
- Avoid nesting too much. Prefer simple, obvious tag names.
- Use arbitrary xml tags and attributes. Prefer tags over attributes.
  - Use tags to describe subjects, objects, environments and entities.
  - Use attribute to describe un-materialized property of a tag, such as style, material, lighting.
- Use concise natural language where description is needed.
- Spatial relationship must be explicitly described."""

TOOL_GUIDELINE = """You must use one of the following tools:
- update_by_script. Pass a Python script that edits the tree with the xml.etree.ElementTree API. `world` is the <world> element.
- rewrite_xml. You must rewrite the entire world xml."""

DEFAULT_CHAT_GOAL = (
    "A casual chat, just to gather facts about things from the user without explicitly asking the user. "
    "Prompt the user to keep the conversation going."
)


def _system(text: str) -> Message:
    return {"role": "system", "content": text.strip()}


def _user(text: str) -> Message:
    return {"role": "user", "content": text.strip()}


def dictate_messages(world_xml: str, inputs: Sequence[str]) -> list[Message]:
    return [
        _system(
            f"""
Model the world with XML. The current model is

```xml
{world_xml}
```

{SYNTAX_GUIDELINE}

Now update the world XML based on user provided instructions. {TOOL_GUIDELINE}

Use exactly one tool. Do NOT say anything after tool use.
"""
        ),
        _user("; ".join(inputs)),
    ]


def chat_messages(goal: str, transcript: Sequence[str], world_xml: str, inputs: Sequence[str]) -> list[Message]:
    transcript_block = ""
    if transcript:
        transcript_block = "\nThe conversation transcript so far:\n" + "\n".join(transcript) + "\n"
    return [
        _system(
            f"""
Chat with the user and take notes. The notes is a XML document that models the world.

The goal and format of the chat must be the following:
{goal or DEFAULT_CHAT_GOAL}
{transcript_block}
The note you have taken so far:
```xml
{world_xml}
```

{SYNTAX_GUIDELINE}

When you update the note XML, {TOOL_GUIDELINE}

Now, use exactly one tool to take notes, and IMMEDIATELY respond to the user in a short utterance.
Always keep the conversation going by prompting user.
"""
        ),
        _user("; ".join(inputs)),
    ]


def interview_instructions(goal: str, model_focus: str, world_xml: str) -> str:
    if world_xml == EMPTY_XML:
        gathered = f"\nThe starting state of the model is {EMPTY_XML}. Get started by modeling the <user>"
    else:
        gathered = f"\nHere is what you have gathered so far:\n{world_xml}\n"
    focus = (
        f"- The world model should be related to {model_focus}"
        if model_focus
        else "- The world model should be detailed and hierarchical."
    )
    return f"""
Conduct an interview to model the user. The interview should be focused on the following goal:
{goal}
{gathered}

Everytime after user speaks, before you respond, you must update the XML with one of the tools:
  - Use the update_by_script tool to add information with the ElementTree API. `world` is the <world> element.
  - Each update_by_script call runs in a fresh scope. Re-query nodes with world.find/world.iter each time.
  - Use rewrite_xml tool to perform large updates. The new XML should have <world>...</world> as the top level tag.

Requirements:
{focus}
- Before you respond, add the new information to the world model to reflect on what you have learned about the user.
- Do NOT remove/overwrite the information you have gathered unless user makes a correction. Only add to the model.
- Your interview style is very concise. Let the user do the talking.
""".strip()


CAMERA_DESCRIBE_SYSTEM = f"""Follow user's instruction and describe the image. Respond with a hierarchical XML scene description.

{SYNTAX_GUIDELINE}

Respond in XML with top level tags like this:
<scene>...</scene>"""

DEFAULT_CAMERA_PROMPT = "Describe the scene."


def camera_world_messages(temporal: bool, world_xml: str, scene_xml: str) -> list[Message]:
    if temporal:
        framing = "The series of frames tell a coherent story that unfolds in time."
        shape = (
            '<world>\n  <event timestamp="HH:MM:SS">describe initial state</event>\n'
            '  <event timestamp="HH:MM:SS">summarize the change</event>\n</world>'
        )
    else:
        framing = (
            "The images are captured from different angles, "
            "representing different perspectives of the same subject"
        )
        shape = "<world>...</world>"
    return [
        _system(
            f"""
You are modeling the world based on a series of images captured by a camera. {framing}
Carefully analyze the incoming image and update the existing world model based on the new information.

{SYNTAX_GUIDELINE}

Respond with the updated world model in XML with top level tags like this:
{shape}
"""
        ),
        _user(
            f"""
{"Previous" if temporal else "Observed"} world model:
{world_xml}

{"Newer" if temporal else "Alternative perspective"} image:
{scene_xml}
"""
        ),
    ]


def paint_messages(world_xml: str, instruction: str) -> list[Message]:
    return [
        _system(
            f"""
Follow user's instruction to interpret the following XML world description to a single paragraph of natural language description.

{world_xml}

Requirements:
- Use user's instruction to interpret the subject and scene, foreground and background, content and style.
- Be observative. Do NOT add narrative or emotional description.
- Be concise. Describe only a single scene. If multiple scenes are described, construct the most representative moment to depict.
"""
        ),
        _user(f"Instruction: {instruction or 'Faithfully describe the scene.'}"),
    ]


def writing_messages(world_xml: str, writing_prompt: str) -> list[Message]:
    return [
        _system(
            f"""
You are a talented writer. Here is the world knowledge you have:
{world_xml}

Based on user's writing prompt, produce the writing based on the world knowledge. Respond in markdown format.
"""
        ),
        _user(writing_prompt),
    ]


def discussion_messages(world_xml: str, requirement: str) -> list[Message]:
    return [
        _system(
            f"""
Simulate a dialogue based on the user provided world model.

The dialogue must involve exactly two participants. Their abstract roles must be these:
- Participant 1 is the expert, who is knowledgeable about the world model, provides authoritative answers, confident, and good listener.
- Participant 2 is the novice, who is curious, takes the initiative to ask questions, and is eager to learn.

The dialogue must meet this requirement: {requirement or "related to the world model"}

Respond in this JSON format:
{{
  "utterances": [{{"speaker": "expert" | "novice", "utterance": string}}]
}}
"""
        ),
        _user(f"{world_xml}\n\nNow respond with the FULL dialogue. Do NOT stop until the entire dialogue is complete."),
    ]
