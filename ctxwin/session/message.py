"""Message models for conversation history"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Union

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class TextPart:
    text: str
    type: ClassVar[str] = "text"


@dataclass
class ImagePart:
    url: str
    media_type: str | None = None
    type: ClassVar[str] = "image"


@dataclass
class FileContentPart:
    """Text extracted from an attached file"""
    name: str
    text: str
    type: ClassVar[str] = "file_content"

    def render(self) -> str:
        return f"[File: {self.name}]\n{self.text}"


@dataclass
class FileErrorPart:
    """An attached file that could not be read"""
    name: str
    error: str
    type: ClassVar[str] = "file_error"

    def render(self) -> str:
        return f"[Error reading file {self.name}: {self.error}]"


ContentPart = Union[TextPart, ImagePart, FileContentPart, FileErrorPart]


@dataclass
class ToolCall:
    """A tool invocation requested by the assistant"""
    id: str
    name: str
    arguments: str = "{}"

    def parsed_arguments(self) -> dict:
        try:
            args = json.loads(self.arguments) if self.arguments else {}
        except json.JSONDecodeError:
            logger.warning(f"Tool call {self.id} has unparsable arguments")
            return {}
        return args if isinstance(args, dict) else {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class SystemMessage:
    content: str
    role: ClassVar[Role] = "system"


@dataclass
class UserMessage:
    content: str | list[ContentPart]
    role: ClassVar[Role] = "user"

    def image_parts(self) -> list[ImagePart]:
        if isinstance(self.content, str):
            return []
        return [p for p in self.content if isinstance(p, ImagePart)]


@dataclass
class AssistantMessage:
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    role: ClassVar[Role] = "assistant"


@dataclass
class ToolMessage:
    content: str
    tool_call_id: str
    name: str | None = None
    role: ClassVar[Role] = "tool"


Message = Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage]


def part_text(part: ContentPart) -> str:
    """Text a content part contributes when sent as text"""
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, (FileContentPart, FileErrorPart)):
        return part.render()
    return ""


def _stringify(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def _part_from_dict(data: Any) -> ContentPart:
    if isinstance(data, str):
        return TextPart(text=data)
    if not isinstance(data, dict):
        logger.warning(f"Unexpected content part {data!r}, treating as empty text")
        return TextPart(text="")

    part_type = data.get("type") or "text"
    if part_type == "text":
        return TextPart(text=data.get("text") or "")
    if part_type in ("image_url", "image"):
        image = data.get("image_url") or {}
        if isinstance(image, str):
            return ImagePart(url=image)
        return ImagePart(
            url=image.get("url") or data.get("url", ""),
            media_type=image.get("media_type") or data.get("media_type"),
        )
    if part_type == "file_content":
        return FileContentPart(name=data.get("name", "file"), text=data.get("text", ""))
    if part_type == "file_error":
        return FileErrorPart(name=data.get("name", "file"), error=data.get("error", ""))

    logger.warning(f"Unknown content part type '{part_type}', keeping its text")
    return TextPart(text=data.get("text") or "")


def _tool_call_from_dict(data: dict) -> ToolCall:
    # Accept both {"function": {"name", "arguments"}} and flat {"name", "arguments"}
    function = data.get("function") or data
    arguments = function.get("arguments", "{}")
    if not isinstance(arguments, str):
        arguments = _stringify(arguments)
    return ToolCall(
        id=data.get("id") or "",
        name=function.get("name") or "",
        arguments=arguments,
    )


def message_from_dict(data: dict) -> Message:
    """Normalize a loose message dict into a well-formed message variant.

    Storage and UI dicts are messier than what a model accepts: user content may
    be a string or a part list, assistants sometimes carry structured content
    next to tool calls, and tool results are not always strings. Everything is
    coerced here so the rest of the engine only sees valid variants.

    Raises:
        ValueError: if the role is missing or unknown
    """
    role = data.get("role")
    content = data.get("content")

    if role == "system":
        if not isinstance(content, str):
            content = _stringify(content) if content is not None else ""
        return SystemMessage(content=content)

    if role == "user":
        if isinstance(content, str):
            return UserMessage(content=content)
        if isinstance(content, list):
            return UserMessage(content=[_part_from_dict(p) for p in content])
        logger.warning(f"Unexpected user message content {content!r}, defaulting to empty")
        return UserMessage(content="")

    if role == "assistant":
        if isinstance(content, list):
            content = "".join(
                p.get("text", "") for p in content
                if isinstance(p, dict) and p.get("type", "text") == "text"
            )
        elif content is not None and not isinstance(content, str):
            content = _stringify(content)
        tool_calls = [_tool_call_from_dict(tc) for tc in data.get("tool_calls") or []]
        return AssistantMessage(content=content, tool_calls=tool_calls)

    if role == "tool":
        if not isinstance(content, str):
            content = _stringify(content) if content is not None else ""
        tool_call_id = data.get("tool_call_id")
        if not tool_call_id:
            logger.warning("Tool message without tool_call_id, coercing to empty string")
            tool_call_id = ""
        return ToolMessage(content=content, tool_call_id=tool_call_id, name=data.get("name"))

    raise ValueError(f"Unknown message role: {role!r}")


def _part_to_dict(part: ContentPart) -> dict:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImagePart):
        image = {"url": part.url}
        if part.media_type:
            image["media_type"] = part.media_type
        return {"type": "image_url", "image_url": image}
    if isinstance(part, FileContentPart):
        return {"type": "file_content", "name": part.name, "text": part.text}
    return {"type": "file_error", "name": part.name, "error": part.error}


def message_to_dict(message: Message, wire: bool = False) -> dict:
    """Convert a message to a dict for storage or for the LLM API.

    With ``wire=True`` file parts are sent as text parts, since chat APIs
    only understand text and image parts.
    """
    result: dict[str, Any] = {"role": message.role}

    if isinstance(message, UserMessage):
        if isinstance(message.content, str):
            result["content"] = message.content
        elif wire:
            result["content"] = [
                _part_to_dict(p) if isinstance(p, (TextPart, ImagePart))
                else {"type": "text", "text": part_text(p)}
                for p in message.content
            ]
        else:
            result["content"] = [_part_to_dict(p) for p in message.content]
    elif isinstance(message, AssistantMessage):
        result["content"] = message.content
        if message.tool_calls:
            result["tool_calls"] = [tc.to_dict() for tc in message.tool_calls]
    elif isinstance(message, ToolMessage):
        result["content"] = message.content
        result["tool_call_id"] = message.tool_call_id
        if message.name:
            result["name"] = message.name
    else:
        result["content"] = message.content

    return result


def messages_from_dicts(data: list[dict]) -> list[Message]:
    return [message_from_dict(m) for m in data]


def messages_to_dicts(messages: list[Message], wire: bool = False) -> list[dict]:
    return [message_to_dict(m, wire=wire) for m in messages]
