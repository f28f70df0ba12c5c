"""Protocol-level chat messages and their content shapes."""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

logger = logging.getLogger("parley.message")


class MessageRole:
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class TextPart:
    text: str

    def to_dict(self) -> dict:
        return {"type": "text", "text": self.text}


@dataclass
class ImageUrlPart:
    url: str                # data URL or remote URL

    def to_dict(self) -> dict:
        return {"type": "image_url", "image_url": {"url": self.url}}


ContentPart = Union[TextPart, ImageUrlPart]


@dataclass
class ToolCall:
    name: str
    arguments: dict = field(default_factory=dict)
    id: Optional[str] = None

    @property
    def key(self) -> str:
        """Call identity. Falls back to name + arguments when the model gave no id."""
        if self.id:
            return self.id
        return f"{self.name}:{json.dumps(self.arguments, sort_keys=True)}"

    @property
    def wire_id(self) -> str:
        """The id sent to the API; id-less calls get one derived from `key`."""
        if self.id:
            return self.id
        return "call_" + hashlib.sha256(self.key.encode("utf-8")).hexdigest()[:16]

    def to_dict(self) -> dict:
        return {
            "id": self.wire_id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments),
            },
        }


@dataclass
class ToolResult:
    call: ToolCall
    output: Any

    def output_text(self) -> str:
        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output, ensure_ascii=False)


@dataclass
class ToolCallsContent:
    """Accumulated tool invocations for a turn plus the assistant text around them.

    Results are an ordered mapping keyed by call identity: merging a result
    whose call is already present replaces it in place, new calls are
    appended in the order given.
    """
    tool_results: list[ToolResult] = field(default_factory=list)
    text: str = ""
    sequence: bool = False      # True once more than one round has been merged

    def merge(self, tool_results: list[ToolResult], text: str) -> None:
        index = {r.call.key: i for i, r in enumerate(self.tool_results)}
        for result in tool_results:
            pos = index.get(result.call.key)
            if pos is None:
                index[result.call.key] = len(self.tool_results)
                self.tool_results.append(result)
            else:
                logger.debug(f"Replacing tool result for {result.call.key}")
                self.tool_results[pos] = result
        if text:
            self.text = f"{self.text}\n{text}" if self.text else text
        self.sequence = True

    def to_dicts(self) -> list[dict]:
        """Assistant tool-call message followed by one tool message per result."""
        calls = [r.call.to_dict() for r in self.tool_results]
        entries: list[dict] = [{
            "role": MessageRole.ASSISTANT,
            "content": self.text or None,
            "tool_calls": calls,
        }]
        for result, call in zip(self.tool_results, calls):
            entries.append({
                "role": MessageRole.TOOL,
                "content": result.output_text(),
                "tool_call_id": call["id"],
            })
        return entries


MessageContent = Union[str, list[ContentPart], ToolCallsContent]


@dataclass
class Message:
    role: str               # 'system', 'user', 'assistant'
    content: MessageContent

    def text(self) -> str:
        """Plain-text view of the content, ignoring images."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, ToolCallsContent):
            return self.content.text
        return "\n".join(p.text for p in self.content if isinstance(p, TextPart))

    def to_dicts(self) -> list[dict]:
        if isinstance(self.content, ToolCallsContent):
            return self.content.to_dicts()
        if isinstance(self.content, str):
            return [{"role": self.role, "content": self.content}]
        return [{"role": self.role, "content": [p.to_dict() for p in self.content]}]


def messages_to_dicts(messages: list[Message]) -> list[dict]:
    """Convert messages to the OpenAI chat completions wire format."""
    formatted: list[dict] = []
    for msg in messages:
        formatted.extend(msg.to_dicts())
    return formatted


def patch_system_message(messages: list[Message]) -> None:
    """Fold a leading system message into the first user message.

    For models that reject the system role. Mutates `messages` in place.
    """
    if not messages or messages[0].role != MessageRole.SYSTEM:
        return
    system = messages.pop(0).text()
    if not system:
        return
    for msg in messages:
        if msg.role != MessageRole.USER:
            continue
        if isinstance(msg.content, str):
            msg.content = f"{system}\n\n{msg.content}"
        elif isinstance(msg.content, list):
            msg.content = [TextPart(text=system)] + msg.content
        return
    messages.insert(0, Message(role=MessageRole.USER, content=system))
