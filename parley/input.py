"""Input — one user turn, assembled from free text and file/URL/command references.

An Input is built once (`from_str` or `from_files`), optionally adjusted by
the turn that owns it (regenerate, retrieval patch, tool results, continued
output), then rendered into protocol messages. Its role and whether it
takes part in the active session are decided at construction and never
re-derived from later changes to the ambient context.

Several read-only projections exist side by side:

- text: the body sent to the model (the retrieval patch, if any)
- summary(): one line, at most SUMMARY_MAX_WIDTH terminal columns
- raw(): the invocation as typed, `.file a b -- text`
- render(): what the user sees, media shown by their original path
- message_content(): the content of the user message on the wire
"""

import enum
import logging
import unicodedata
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .abort import AbortSignal, abortable_run_with_spinner
from .config import AppContext, ContextSnapshot
from .content import load_documents
from .errors import CapabilityMismatchError, EmptySentinelError
from .media import resolve_data_url
from .message import (
    ContentPart,
    ImageUrlPart,
    Message,
    MessageContent,
    MessageRole,
    TextPart,
    ToolCallsContent,
    ToolResult,
    messages_to_dicts,
    patch_system_message,
)
from .model import Model
from .rag import search_rag
from .references import Sentinel, classify, raw_form
from .role import Role

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger("parley.input")

SUMMARY_MAX_WIDTH = 80

FILE_MARKER = ".file"
TEXT_SEPARATOR = "--"


class Composition(enum.Enum):
    """Who lays out the messages for this input."""
    SESSION = "session"     # the active session: history + this turn
    ROLE = "role"           # the role alone: framing + this turn


def resolve_role(snapshot: ContextSnapshot, role: Optional[Role]) -> tuple[Role, Composition, bool]:
    """Decide (role, composition, with_agent) for a new input.

    An explicit role opts out of the ambient session and agent.
    """
    if role is not None:
        return role, Composition.ROLE, False
    composition = Composition.SESSION if snapshot.has_session else Composition.ROLE
    return snapshot.extract_role(), composition, snapshot.has_agent


# ── Display width ───────────────────────────────────────────

def char_width(ch: str) -> int:
    """Terminal columns for one character, East Asian ambiguous counted wide."""
    if unicodedata.category(ch) in ("Mn", "Me", "Cf"):
        return 0
    if unicodedata.east_asian_width(ch) in ("W", "F", "A"):
        return 2
    return 1


def display_width(text: str) -> int:
    return sum(char_width(ch) for ch in text)


@dataclass
class CompletionRequest:
    """Everything the transport needs for one chat completion call."""
    model: str
    messages: list[Message]
    temperature: Optional[float]
    top_p: Optional[float]
    functions: Optional[list[dict]]
    stream: bool

    def to_dict(self) -> dict:
        body: dict = {
            "model": self.model,
            "messages": messages_to_dicts(self.messages),
            "stream": self.stream,
        }
        if self.temperature is not None:
            body["temperature"] = self.temperature
        if self.top_p is not None:
            body["top_p"] = self.top_p
        if self.functions:
            body["tools"] = self.functions
        return body


class Input:

    def __init__(
        self,
        ctx: AppContext,
        text: str = "",
        *,
        raw: Optional[tuple[str, list[str]]] = None,
        role: Optional[Role] = None,
        medias: Optional[list[str]] = None,
        data_urls: Optional[dict[str, str]] = None,
        last_reply: Optional[str] = None,
        snapshot: Optional[ContextSnapshot] = None,
    ):
        if snapshot is None:
            snapshot = ctx.snapshot()
        self._ctx = ctx
        self._text = text
        self._raw = raw if raw is not None else (text, [])
        self._patched_text: Optional[str] = None
        self._last_reply = last_reply
        self._continue_output: Optional[str] = None
        self._regenerate = False
        self._medias = list(medias or [])
        self._data_urls = dict(data_urls or {})
        self._tool_calls: Optional[ToolCallsContent] = None
        self._rag_name: Optional[str] = None
        self._role, self._composition, self._with_agent = resolve_role(snapshot, role)

    # ── Construction ────────────────────────────────────────

    @classmethod
    def from_str(cls, ctx: AppContext, text: str, role: Optional[Role] = None) -> "Input":
        return cls(ctx, text, role=role)

    @classmethod
    async def from_files(
        cls,
        ctx: AppContext,
        raw_text: str,
        paths: list[str],
        role: Optional[Role] = None,
    ) -> "Input":
        """Build an input from free text plus file, URL, command and `%%` references."""
        snapshot = ctx.snapshot()
        references = [classify(p, snapshot.home) for p in paths]
        with_last_reply = any(isinstance(r, Sentinel) for r in references)

        documents = await load_documents(references, ctx.collaborators, snapshot.document_loaders)

        texts = []
        if raw_text:
            texts.append(raw_text)
        last_reply = None
        if with_last_reply:
            last_reply = snapshot.last_reply()
            if last_reply is not None:
                texts.append(f"\n{last_reply}\n")
            elif not documents.files and not documents.medias:
                raise EmptySentinelError()
        for file in documents.files:
            texts.append(f"\n============ {file.kind}: {file.path} ============\n{file.contents}")

        logger.info(
            f"Assembled input: {len(documents.files)} text block(s), "
            f"{len(documents.medias)} media, {len(documents.data_urls)} distinct"
        )
        return cls(
            ctx,
            "\n".join(texts),
            raw=(raw_text, [raw_form(r) for r in references]),
            role=role,
            medias=documents.medias,
            data_urls=documents.data_urls,
            last_reply=last_reply,
            snapshot=snapshot,
        )

    @classmethod
    async def from_files_with_spinner(
        cls,
        ctx: AppContext,
        raw_text: str,
        paths: list[str],
        role: Optional[Role] = None,
        abort_signal: Optional[AbortSignal] = None,
    ) -> "Input":
        """from_files under a "Loading files" spinner; raises InputAborted on abort."""
        return await abortable_run_with_spinner(
            cls.from_files(ctx, raw_text, paths, role),
            "Loading files",
            abort_signal or AbortSignal(),
        )

    # ── State ───────────────────────────────────────────────

    @property
    def text(self) -> str:
        """The body for the model: the retrieval patch if installed, else the text."""
        if self._patched_text is not None:
            return self._patched_text
        return self._text

    def set_text(self, text: str) -> None:
        self._text = text

    def clear_patch(self) -> None:
        self._patched_text = None
        self._rag_name = None

    def is_empty(self) -> bool:
        return not self._text and not self._medias

    @property
    def medias(self) -> list[str]:
        return list(self._medias)

    @property
    def data_urls(self) -> dict[str, str]:
        return dict(self._data_urls)

    @property
    def last_reply(self) -> Optional[str]:
        return self._last_reply

    @property
    def tool_calls(self) -> Optional[ToolCallsContent]:
        return self._tool_calls

    @property
    def role(self) -> Role:
        return self._role

    @property
    def composition(self) -> Composition:
        return self._composition

    @property
    def with_session(self) -> bool:
        return self._composition is Composition.SESSION

    @property
    def with_agent(self) -> bool:
        return self._with_agent

    @property
    def rag_name(self) -> Optional[str]:
        return self._rag_name

    def session(self) -> Optional["Session"]:
        """The active session, if this input takes part in it."""
        if self._composition is Composition.SESSION:
            return self._ctx.session
        return None

    def stream(self) -> bool:
        return self._ctx.stream and not self._role.model.no_stream

    @property
    def continue_output(self) -> Optional[str]:
        return self._continue_output

    def set_continue_output(self, output: str) -> None:
        if self._continue_output is None:
            self._continue_output = output
        else:
            self._continue_output += output

    @property
    def regenerate(self) -> bool:
        return self._regenerate

    def set_regenerate(self) -> None:
        """Mark as a re-issued turn, picking up edits to the same-named role."""
        role = self._ctx.extract_role()
        if role.name == self._role.name:
            self._role = role
        self._regenerate = True

    async def use_embeddings(self, abort_signal: AbortSignal) -> None:
        """Swap the text for retrieved context when a retrieval source is active."""
        if not self._text:
            return
        rag = self._ctx.rag
        if rag is None:
            return
        result = await search_rag(rag, self._text, abort_signal)
        self._patched_text = result
        self._rag_name = rag.name

    def merge_tool_results(self, output: str, tool_results: list[ToolResult]) -> "Input":
        if self._tool_calls is None:
            self._tool_calls = ToolCallsContent(tool_results=list(tool_results), text=output)
        else:
            self._tool_calls.merge(tool_results, output)
        return self

    # ── Messages ────────────────────────────────────────────

    def prepare_completion_data(
        self,
        model: Optional[Model] = None,
        stream: Optional[bool] = None,
    ) -> CompletionRequest:
        """Assemble the request for the transport. Fails before any network call."""
        model = model or self._role.model
        if self._medias and not model.supports_vision:
            raise CapabilityMismatchError(
                "The current model does not support vision. "
                "Is the model configured with `supports_vision: true`?"
            )
        messages = self.build_messages()
        if model.no_system_message:
            patch_system_message(messages)
        model.guard_max_input_tokens(messages)
        return CompletionRequest(
            model=model.name,
            messages=messages,
            temperature=self._role.temperature,
            top_p=self._role.top_p,
            functions=self._ctx.select_functions(self._role),
            stream=self.stream() if stream is None else stream,
        )

    def build_messages(self) -> list[Message]:
        session = self.session()
        if session is not None:
            messages = session.build_messages(self)
        else:
            messages = self._role.build_messages(self)
        if self._tool_calls is not None:
            messages.append(Message(role=MessageRole.ASSISTANT, content=self._tool_calls))
        return messages

    def echo_messages(self) -> str:
        session = self.session()
        if session is not None:
            return session.echo_messages(self)
        return self._role.echo_messages(self)

    # ── Projections ─────────────────────────────────────────

    def summary(self) -> str:
        text = "".join(
            " " if unicodedata.category(ch) == "Cc" else ch
            for ch in self._text.strip()
        )
        if display_width(text) <= SUMMARY_MAX_WIDTH:
            return text
        chars = []
        width = 0
        for ch in text:
            width += char_width(ch)
            if width > SUMMARY_MAX_WIDTH - 3:
                chars.append("...")
                break
            chars.append(ch)
        return "".join(chars)

    def raw(self) -> str:
        text, files = self._raw
        segments = list(files)
        if segments:
            segments.insert(0, FILE_MARKER)
        if text:
            if segments:
                segments.append(TEXT_SEPARATOR)
            segments.append(text)
        return " ".join(segments)

    def render(self) -> str:
        text = self.text
        if not self._medias:
            return text
        tail = f" {TEXT_SEPARATOR} {text}" if text else ""
        files = [resolve_data_url(self._data_urls, url) for url in self._medias]
        return f"{FILE_MARKER} {' '.join(files)}{tail}"

    def message_content(self) -> MessageContent:
        if not self._medias:
            return self.text
        parts: list[ContentPart] = [ImageUrlPart(url=url) for url in self._medias]
        if self._text:
            parts.insert(0, TextPart(text=self.text))
        return parts

    def __repr__(self) -> str:
        return f"Input(role={self._role.name!r}, summary={self.summary()!r}, medias={len(self._medias)})"
