"""Roles and agents — generation parameters plus system framing for a turn."""

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Optional

from .message import Message, MessageContent, MessageRole, TextPart
from .model import Model

if TYPE_CHECKING:
    from .input import Input

# A prompt containing this placeholder is "embedded": the user text is
# substituted into it and no system message is sent.
INPUT_PLACEHOLDER = "__INPUT__"

DEFAULT_ROLE_NAME = "%default%"


@dataclass
class Role:
    name: str
    model: Model
    prompt: str = ""
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    use_tools: Optional[str] = None     # None = no tools, "all", or "a,b,c"

    @classmethod
    def default(
        cls,
        model: Model,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
    ) -> "Role":
        return cls(name=DEFAULT_ROLE_NAME, model=model, temperature=temperature, top_p=top_p)

    def is_embedded_prompt(self) -> bool:
        return INPUT_PLACEHOLDER in self.prompt

    def with_model(self, model: Model) -> "Role":
        return replace(self, model=model)

    def build_messages(self, input: "Input") -> list[Message]:
        """Role-only composition: system framing + this turn, no history."""
        if self.is_embedded_prompt():
            messages = [Message(role=MessageRole.USER, content=self.embed(input))]
        else:
            messages = []
            if self.prompt:
                messages.append(Message(role=MessageRole.SYSTEM, content=self.prompt))
            messages.append(Message(role=MessageRole.USER, content=input.message_content()))
        if input.continue_output:
            messages.append(Message(role=MessageRole.ASSISTANT, content=input.continue_output))
        return messages

    def embed(self, input: "Input") -> MessageContent:
        """User content with the input substituted into the prompt. Images are kept."""
        content = input.message_content()
        if isinstance(content, str):
            return self.prompt.replace(INPUT_PLACEHOLDER, content)
        parts = list(content)
        for i, part in enumerate(parts):
            if isinstance(part, TextPart):
                parts[i] = TextPart(text=self.prompt.replace(INPUT_PLACEHOLDER, part.text))
                return parts
        parts.insert(0, TextPart(text=self.prompt.replace(INPUT_PLACEHOLDER, "")))
        return parts

    def echo_messages(self, input: "Input") -> str:
        """Human-readable form of what build_messages would send."""
        rendered = input.render()
        if self.is_embedded_prompt():
            return self.prompt.replace(INPUT_PLACEHOLDER, rendered)
        if not self.prompt:
            return rendered
        return f"{self.prompt}\n\n{rendered}"


@dataclass
class Agent:
    """An active agent: a named instruction set that runs as a role."""
    name: str
    model: Model
    instructions: str = ""
    use_tools: Optional[str] = "all"
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    variables: dict[str, str] = field(default_factory=dict)

    def interpolated_instructions(self) -> str:
        text = self.instructions
        for key, value in self.variables.items():
            text = text.replace("{{" + key + "}}", value)
        return text

    def to_role(self) -> Role:
        return Role(
            name=self.name,
            model=self.model,
            prompt=self.interpolated_instructions(),
            temperature=self.temperature,
            top_p=self.top_p,
            use_tools=self.use_tools,
        )
