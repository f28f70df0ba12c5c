"""Parley configuration management.

Two layers:

- ParleySettings: static settings from environment variables or `.env`
- AppContext: ambient state that changes while the app runs (current role,
  active session/agent, retrieval source, last exchange). Code that must not
  depend on later changes takes a frozen ContextSnapshot instead.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from .functions import FunctionRegistry
from .loaders import PATH_PLACEHOLDER, Collaborators, default_collaborators
from .model import Model
from .role import Agent, Role
from .session import Session

if TYPE_CHECKING:
    from .input import Input
    from .rag import Rag

logger = logging.getLogger("parley.config")


class ParleySettings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    # Model
    model: str = Field(default="gpt-4o", description="Chat model name")
    supports_vision: bool = Field(default=True, description="Model accepts image input")
    no_stream: bool = Field(default=False, description="Model cannot stream responses")
    no_system_message: bool = Field(default=False, description="Model rejects the system role")
    max_input_tokens: Optional[int] = Field(default=None, description="Input token budget")

    # Generation defaults (used when no role sets them)
    temperature: Optional[float] = Field(default=None, description="Default temperature")
    top_p: Optional[float] = Field(default=None, description="Default top-p")
    stream: bool = Field(default=True, description="Stream responses when the model allows it")

    # Loading
    shell: Optional[str] = Field(default=None, description="Shell for `command` references")
    document_loaders: dict[str, str] = Field(
        default_factory=lambda: {
            "pdf": "pdftotext $1 -",
            "docx": "pandoc --to plain $1",
        },
        description="Extension → converter command ($1 is the file path)",
    )
    fetch_timeout: int = Field(default=30, description="Remote fetch timeout (seconds)")
    user_agent: Optional[str] = Field(default=None, description="User-Agent for remote fetches")

    model_config = {"env_prefix": "PARLEY_", "env_file": ".env", "extra": "ignore"}

    def build_model(self) -> Model:
        return Model(
            name=self.model,
            supports_vision=self.supports_vision,
            no_stream=self.no_stream,
            no_system_message=self.no_system_message,
            max_input_tokens=self.max_input_tokens,
        )


def load_settings() -> ParleySettings:
    """Load settings from environment."""
    settings = ParleySettings()

    # A template without $1 runs the converter without the file
    for ext, template in settings.document_loaders.items():
        if PATH_PLACEHOLDER not in template:
            logger.warning(
                f"Document loader for '{ext}' has no {PATH_PLACEHOLDER} placeholder; "
                f"the file path will not be passed to `{template}`"
            )

    return settings


@dataclass
class LastMessage:
    """The most recent completed exchange."""
    input: "Input"
    output: str


@dataclass(frozen=True)
class ContextSnapshot:
    """Immutable view of the ambient context at one point in time."""
    model: Model
    temperature: Optional[float]
    top_p: Optional[float]
    document_loaders: dict[str, str]
    role: Optional[Role] = None
    session: Optional[Session] = None
    agent: Optional[Agent] = None
    last_message: Optional[LastMessage] = None
    home: Optional[str] = None

    @property
    def has_session(self) -> bool:
        return self.session is not None

    @property
    def has_agent(self) -> bool:
        return self.agent is not None

    def extract_role(self) -> Role:
        """Role in effect: session's, else agent's, else current, else default."""
        if self.session is not None:
            return self.session.to_role()
        if self.agent is not None:
            return self.agent.to_role()
        if self.role is not None:
            return self.role
        return Role.default(self.model, temperature=self.temperature, top_p=self.top_p)

    def last_reply(self) -> Optional[str]:
        """Output of the last exchange, or the reply that exchange itself reused."""
        if self.last_message is None:
            return None
        if self.last_message.output:
            return self.last_message.output
        return self.last_message.input.last_reply


@dataclass
class AppContext:
    """Ambient application state shared by the turns of one run."""
    settings: ParleySettings = field(default_factory=ParleySettings)
    collaborators: Optional[Collaborators] = None
    functions: FunctionRegistry = field(default_factory=FunctionRegistry)
    role: Optional[Role] = None
    session: Optional[Session] = None
    agent: Optional[Agent] = None
    rag: Optional["Rag"] = None
    last_message: Optional[LastMessage] = None
    home: Optional[str] = None

    def __post_init__(self):
        if self.collaborators is None:
            self.collaborators = default_collaborators(
                shell=self.settings.shell,
                fetch_timeout=self.settings.fetch_timeout,
                user_agent=self.settings.user_agent,
            )

    @property
    def stream(self) -> bool:
        return self.settings.stream

    def model(self) -> Model:
        return self.settings.build_model()

    def snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            model=self.model(),
            temperature=self.settings.temperature,
            top_p=self.settings.top_p,
            document_loaders=dict(self.settings.document_loaders),
            role=self.role,
            session=self.session,
            agent=self.agent,
            last_message=self.last_message,
            home=self.home,
        )

    def extract_role(self) -> Role:
        return self.snapshot().extract_role()

    def select_functions(self, role: Role) -> Optional[list[dict]]:
        return self.functions.select(role)

    def record_exchange(self, input: "Input", output: str) -> None:
        """Remember a finished turn so `%%` can reuse its output."""
        self.last_message = LastMessage(input=input, output=output)
        session = input.session()
        if session is not None:
            session.add_exchange(input, output)
        logger.debug(f"Recorded exchange for role {input.role.name} ({len(output)} chars)")
