"""Tool schemas that let the model edit the world model."""

from __future__ import annotations

import json
from typing import Any, Callable

from storybox.world_model import MutationRequest, RewriteMutation, ScriptMutation

UPDATE_BY_SCRIPT = "update_by_script"
REWRITE_XML = "rewrite_xml"

WORLD_MODEL_TOOLS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": UPDATE_BY_SCRIPT,
            "description": "Update the world model by executing a Python ElementTree manipulation script",
            "parameters": {
                "type": "object",
                "properties": {
                    "script": {
                        "type": "string",
                        "description": (
                            "A Python script using the xml.etree.ElementTree API. `document` offers read-only "
                            "getroot/find/findall/findtext/iter lookups and `world` is the root <world> element. "
                            "Create children with world.makeelement(tag, {}) and append them."
                        ),
                    },
                },
                "required": ["script"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": REWRITE_XML,
            "description": "Rewrite the entire world xml",
            "parameters": {
                "type": "object",
                "properties": {
                    "xml": {
                        "type": "string",
                        "description": "The new world xml, top level tag must be <world>...</world>",
                    },
                },
                "required": ["xml"],
            },
        },
    },
]

MutationHandler = Callable[[MutationRequest], str]


class ToolCallError(ValueError):
    """Raised when a tool call cannot be turned into a mutation."""


def mutation_from_tool_call(name: str, arguments: str | dict[str, Any]) -> MutationRequest:
    """Translate a tool name and its JSON arguments into a mutation request."""
    if isinstance(arguments, str):
        try:
            payload = json.loads(arguments or "{}")
        except json.JSONDecodeError as exc:
            raise ToolCallError(f"invalid JSON arguments for {name}: {exc.msg}") from exc
    else:
        payload = arguments
    if not isinstance(payload, dict):
        raise ToolCallError(f"arguments for {name} must be a JSON object")

    if name == UPDATE_BY_SCRIPT:
        script = payload.get("script")
        if not isinstance(script, str):
            raise ToolCallError("update_by_script requires a string 'script' argument")
        return ScriptMutation(script=script)
    if name == REWRITE_XML:
        xml = payload.get("xml")
        if not isinstance(xml, str):
            raise ToolCallError("rewrite_xml requires a string 'xml' argument")
        return RewriteMutation(document=xml)
    raise ToolCallError(f"unknown tool: {name}")


def dispatch_tool_call(name: str, arguments: str | dict[str, Any], handler: MutationHandler) -> str:
    """Run one tool call and return the text the model sees as the tool output."""
    try:
        request = mutation_from_tool_call(name, arguments)
    except ToolCallError as exc:
        return f"Error: {exc}"
    return handler(request)
