"""Collaborators that turn references into content.

Three narrow interfaces, one default implementation each:

- CommandRunner: run a shell command, capture its output
- DocumentLoader: read a local file as text, via a configured converter
  command for formats like PDF or DOCX
- RemoteFetcher: download a URL as text, or as a data URL for images

They are chosen once (see `default_collaborators`) and injected into the
content loader; nothing here reads ambient configuration.
"""

import asyncio
import logging
import os
import re
import shlex
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import httpx

from .errors import InvalidMediaTypeError, LoadError
from .media import SUPPORTED_MIME_TYPES, encode_data_url, get_extension

logger = logging.getLogger("parley.loaders")

# Content kind returned by a fetcher when the URL is an image
MEDIA_KIND = "_media"

# Placeholder for the file path in a document loader command template
PATH_PLACEHOLDER = "$1"

_CONTENT_TYPE_EXTS = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/json": "json",
    "application/xml": "xml",
    "application/xhtml+xml": "html",
    "text/html": "html",
    "text/markdown": "md",
    "text/plain": "txt",
    "text/csv": "csv",
}

_TEXTUAL_APPLICATION_TYPES = frozenset({
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-yaml",
    "application/yaml",
})


# ── Command runner ──────────────────────────────────────────

@dataclass(frozen=True)
class Shell:
    cmd: str
    arg: str = "-c"


def detect_shell(override: Optional[str] = None) -> Shell:
    """Shell used for backtick references and loader commands."""
    if os.name == "nt" and not override:
        return Shell(cmd="cmd.exe", arg="/C")
    cmd = override or os.environ.get("SHELL") or "/bin/sh"
    name = os.path.basename(cmd).lower()
    if name in ("cmd", "cmd.exe"):
        return Shell(cmd=cmd, arg="/C")
    if name in ("powershell", "powershell.exe", "pwsh", "pwsh.exe"):
        return Shell(cmd=cmd, arg="-Command")
    return Shell(cmd=cmd, arg="-c")


@dataclass
class CommandOutput:
    success: bool
    stdout: str
    stderr: str


class CommandRunner(ABC):

    @abstractmethod
    def run(self, shell: Shell, args: list[str], cwd: Optional[str] = None) -> CommandOutput:
        """Run `shell.cmd` with `args` to completion and capture its output."""
        ...


class SubprocessRunner(CommandRunner):
    """Blocking runner over subprocess.run."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(self, shell: Shell, args: list[str], cwd: Optional[str] = None) -> CommandOutput:
        logger.debug(f"Executing command: {' '.join(args)[:100]}")
        try:
            proc = subprocess.run(
                [shell.cmd, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            return CommandOutput(
                success=False,
                stdout=_decode(e.stdout),
                stderr=f"Command timed out after {self.timeout}s",
            )
        except FileNotFoundError as e:
            return CommandOutput(success=False, stdout="", stderr=f"Shell not found: {e.filename}")
        return CommandOutput(
            success=proc.returncode == 0,
            stdout=_decode(proc.stdout),
            stderr=_decode(proc.stderr),
        )


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace").replace("\x00", "")


# ── Document loader ─────────────────────────────────────────

class DocumentLoader(ABC):

    @abstractmethod
    async def load(self, loaders: dict[str, str], path: str) -> str:
        """Return the text contents of the local file at `path`."""
        ...


class CommandDocumentLoader(DocumentLoader):
    """Reads plain files directly; runs configured converters for the rest.

    `loaders` maps a lower-case extension to a command template, e.g.
    `{"pdf": "pdftotext $1 -"}`. The converter's stdout is the document text.
    """

    def __init__(self, runner: CommandRunner, shell: Shell):
        self.runner = runner
        self.shell = shell

    async def load(self, loaders: dict[str, str], path: str) -> str:
        ext = get_extension(path)
        template = loaders.get(ext) if ext else None
        if template:
            return await asyncio.to_thread(self._run_loader, ext, template, path)
        return await asyncio.to_thread(_read_text, path)

    def _run_loader(self, ext: str, template: str, path: str) -> str:
        command = template.replace(PATH_PLACEHOLDER, shlex.quote(path))
        output = self.runner.run(self.shell, [self.shell.arg, command])
        if not output.success:
            err = output.stderr or output.stdout
            raise LoadError(f"Document loader for '{ext}' failed: {err.strip()}", path)
        return output.stdout


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


# ── Remote fetcher ──────────────────────────────────────────

_INVISIBLE_BLOCKS = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>|<!--.*?-->", re.DOTALL | re.IGNORECASE)
_LINE_BREAKING_TAGS = re.compile(r"<(?:p|div|br|h[1-6]|li|tr)\b[^>]*>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]+>")

# &amp; goes last so "&amp;lt;" stays a literal "&lt;"
_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)


def strip_html_tags(html: str) -> str:
    """Reduce a fetched HTML page to the plain text a model should read.

    Script, style and comment blocks are dropped whole. Paragraph-like tags
    turn into line breaks.
    """
    text = _INVISIBLE_BLOCKS.sub("", html)
    text = _LINE_BREAKING_TAGS.sub("\n", text)
    text = _ANY_TAG.sub("", text)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    text = re.sub(r" +", " ", text)
    return text.strip()


class RemoteFetcher(ABC):

    @abstractmethod
    async def fetch(self, loaders: dict[str, str], url: str, want_raw: bool) -> tuple[str, str]:
        """Download `url`. Returns (contents, kind).

        kind is MEDIA_KIND when contents is an image data URL (only when
        `want_raw` is set), otherwise the extension describing the text.
        """
        ...


class HttpxFetcher(RemoteFetcher):

    def __init__(
        self,
        document_loader: CommandDocumentLoader,
        timeout: float = 30,
        user_agent: str = "Mozilla/5.0 (compatible; Parley/0.4)",
    ):
        self.document_loader = document_loader
        self.timeout = timeout
        self.user_agent = user_agent

    async def fetch(self, loaders: dict[str, str], url: str, want_raw: bool) -> tuple[str, str]:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
        ) as client:
            response = await client.get(url)
            response.raise_for_status()

        content_type = (response.headers.get("content-type") or "").split(";")[0].strip().lower()
        logger.debug(f"Fetched {url}: {content_type or 'unknown'} ({len(response.content):,} bytes)")

        if content_type.startswith("image/"):
            if not want_raw:
                raise LoadError(f"Unsupported content type: {content_type}", url)
            if content_type not in SUPPORTED_MIME_TYPES:
                raise InvalidMediaTypeError(url)
            return encode_data_url(response.content, content_type), MEDIA_KIND

        ext = _CONTENT_TYPE_EXTS.get(content_type) or get_extension(urlsplit(url).path) or "txt"

        if ext in loaders:
            return await self._convert(loaders, ext, response.content), ext

        if ext == "html":
            return strip_html_tags(response.text), ext

        if not content_type or content_type.startswith("text/") or content_type in _TEXTUAL_APPLICATION_TYPES:
            return response.text, ext

        raise LoadError(f"Unsupported content type: {content_type}", url)

    async def _convert(self, loaders: dict[str, str], ext: str, data: bytes) -> str:
        """Save a download to a temporary file and run its document loader."""
        fd, tmp_path = tempfile.mkstemp(suffix=f".{ext}", prefix="parley-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            return await self.document_loader.load(loaders, tmp_path)
        finally:
            os.unlink(tmp_path)


# ── Wiring ──────────────────────────────────────────────────

@dataclass
class Collaborators:
    """The loading strategies for one application run."""
    runner: CommandRunner
    document_loader: DocumentLoader
    fetcher: RemoteFetcher
    shell: Shell


def default_collaborators(
    shell: Optional[str] = None,
    fetch_timeout: float = 30,
    user_agent: Optional[str] = None,
) -> Collaborators:
    resolved_shell = detect_shell(shell)
    runner = SubprocessRunner()
    document_loader = CommandDocumentLoader(runner, resolved_shell)
    fetcher_kwargs = {"timeout": fetch_timeout}
    if user_agent:
        fetcher_kwargs["user_agent"] = user_agent
    return Collaborators(
        runner=runner,
        document_loader=document_loader,
        fetcher=HttpxFetcher(document_loader, **fetcher_kwargs),
        shell=resolved_shell,
    )
