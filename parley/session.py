"""Session — conversation history that composes the messages for a new turn.

Persistence is someone else's job: a Session here only holds the history
it was given and knows how to lay it out around a new input.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .message import Message, MessageRole
from .role import Role

if TYPE_CHECKING:
    from .input import Input

logger = logging.getLogger("parley.session")


@dataclass
class Session:
    name: str
    role: Role
    messages: list[Message] = field(default_factory=list)

    def to_role(self) -> Role:
        return self.role

    def is_empty(self) -> bool:
        return not self.messages

    def build_messages(self, input: "Input") -> list[Message]:
        """Full context: system prompt + history + current input."""
        if self.role.is_embedded_prompt():
            if self.is_empty():
                return self.role.build_messages(input)
            messages = list(self.messages)
            messages.append(Message(role=MessageRole.USER, content=input.message_content()))
        else:
            messages = []
            has_system = any(m.role == MessageRole.SYSTEM for m in self.messages)
            if self.role.prompt and not has_system:
                messages.append(Message(role=MessageRole.SYSTEM, content=self.role.prompt))
            messages.extend(self.messages)
            messages.append(Message(role=MessageRole.USER, content=input.message_content()))
        if input.continue_output:
            messages.append(Message(role=MessageRole.ASSISTANT, content=input.continue_output))
        logger.debug(f"Session {self.name}: built {len(messages)} messages")
        return messages

    def echo_messages(self, input: "Input") -> str:
        """Transcript of the history followed by the new turn, for display."""
        if self.is_empty():
            return self.role.echo_messages(input)
        lines = []
        for msg in self.messages:
            lines.append(f"{msg.role}: {msg.text()}")
        lines.append(f"{MessageRole.USER}: {input.render()}")
        return "\n\n".join(lines)

    def add_exchange(self, input: "Input", output: str) -> None:
        """Append a completed turn to the history."""
        if self.is_empty() and self.role.prompt and not self.role.is_embedded_prompt():
            self.messages.append(Message(role=MessageRole.SYSTEM, content=self.role.prompt))
        self.messages.append(Message(role=MessageRole.USER, content=input.message_content()))
        if input.tool_calls is not None:
            self.messages.append(Message(role=MessageRole.ASSISTANT, content=input.tool_calls))
        self.messages.append(Message(role=MessageRole.ASSISTANT, content=output))
