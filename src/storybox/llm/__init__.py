"""Language-model collaborators: tool schemas, chat client, image generation."""

from .client import ChatClient, ImageGenerator, OpenAIChatClient, OpenAIImageGenerator
from .tools import WORLD_MODEL_TOOLS, ToolCallError, dispatch_tool_call, mutation_from_tool_call

__all__ = [
    "ChatClient",
    "ImageGenerator",
    "OpenAIChatClient",
    "OpenAIImageGenerator",
    "ToolCallError",
    "WORLD_MODEL_TOOLS",
    "dispatch_tool_call",
    "mutation_from_tool_call",
]
