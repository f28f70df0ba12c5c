"""Tests for Input construction, role/session resolution and turn mutations."""

import os
import time

import pytest

from parley.abort import AbortSignal
from parley.config import LastMessage
from parley.errors import EmptySentinelError, InputAborted
from parley.input import Composition, Input
from parley.message import ToolCall, ToolResult
from parley.model import Model
from parley.rag import Rag
from parley.role import DEFAULT_ROLE_NAME, Agent, Role
from parley.session import Session


class FakeRag(Rag):

    def __init__(self, name="docs"):
        self._name = name
        self.queries = []

    @property
    def name(self) -> str:
        return self._name

    async def search(self, text: str) -> str:
        self.queries.append(text)
        return f"[retrieved]\n{text}"


class TestFromStr:

    def test_basic(self, ctx):
        input = Input.from_str(ctx, "hello there")
        assert input.text == "hello there"
        assert input.raw() == "hello there"
        assert input.medias == []
        assert input.last_reply is None
        assert input.regenerate is False
        assert input.tool_calls is None

    def test_is_empty(self, ctx):
        assert Input.from_str(ctx, "").is_empty()
        assert not Input.from_str(ctx, "x").is_empty()


class TestFromFiles:

    @pytest.mark.asyncio
    async def test_banner_layout(self, ctx, tmp_path):
        f = tmp_path / "a.txt"
        f.write_text("hello")
        input = await Input.from_files(ctx, "summarize", [str(f)])
        assert input.text == f"summarize\n\n============ FILE: {f} ============\nhello"

    @pytest.mark.asyncio
    async def test_blocks_in_reference_order(self, ctx, fetcher, tmp_path):
        url = "https://example.com/page"
        fetcher.responses = {url: ("page text", "html")}
        fetcher.delays = {url: 0.02}
        f = tmp_path / "b.txt"
        f.write_text("file text")
        input = await Input.from_files(ctx, "", [url, str(f), "`date`"])
        url_at = input.text.index("URL: https://example.com/page")
        file_at = input.text.index(f"FILE: {f}")
        cmd_at = input.text.index("CMD: date")
        assert url_at < file_at < cmd_at
        assert input.text.startswith("\n============ URL:")

    @pytest.mark.asyncio
    async def test_raw_keeps_original_references(self, ctx, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "doc.txt").write_text("d")
        input = await Input.from_files(ctx, "summarize", ["doc.txt", "`date`", "%%"])
        assert input.raw() == f".file {os.path.join(str(tmp_path), 'doc.txt')} `date` %% -- summarize"

    @pytest.mark.asyncio
    async def test_home_paths(self, ctx, tmp_path):
        (tmp_path / "todo.md").write_text("buy milk")
        input = await Input.from_files(ctx, "", ["~/todo.md"])
        assert "buy milk" in input.text

    @pytest.mark.asyncio
    async def test_media_only(self, ctx, png_file):
        input = await Input.from_files(ctx, "", [str(png_file)])
        assert input.text == ""
        assert len(input.medias) == 1
        assert not input.is_empty()


class TestSentinel:

    @pytest.mark.asyncio
    async def test_no_last_reply(self, ctx):
        with pytest.raises(EmptySentinelError, match="(?i)no last reply"):
            await Input.from_files(ctx, "", ["%%"])

    @pytest.mark.asyncio
    async def test_reuses_last_output(self, ctx):
        ctx.last_message = LastMessage(input=Input.from_str(ctx, "q"), output="previous answer")
        input = await Input.from_files(ctx, "explain", ["%%"])
        assert input.text == "explain\n\nprevious answer\n"
        assert input.last_reply == "previous answer"

    @pytest.mark.asyncio
    async def test_falls_back_to_reused_reply(self, ctx):
        previous = Input(ctx, "x", last_reply="older answer")
        ctx.last_message = LastMessage(input=previous, output="")
        input = await Input.from_files(ctx, "", ["%%"])
        assert input.last_reply == "older answer"
        assert "older answer" in input.text

    @pytest.mark.asyncio
    async def test_files_excuse_missing_reply(self, ctx, tmp_path):
        f = tmp_path / "a.txt"
        f.write_text("content")
        input = await Input.from_files(ctx, "", ["%%", str(f)])
        assert input.last_reply is None
        assert "content" in input.text

    @pytest.mark.asyncio
    async def test_reply_precedes_files(self, ctx, tmp_path):
        ctx.last_message = LastMessage(input=Input.from_str(ctx, "q"), output="REPLY")
        f = tmp_path / "a.txt"
        f.write_text("FILE-BODY")
        input = await Input.from_files(ctx, "TEXT", [str(f), "%%"])
        assert input.text.index("TEXT") < input.text.index("REPLY") < input.text.index("FILE-BODY")


class TestRoleResolution:

    def test_default_role(self, ctx):
        input = Input.from_str(ctx, "hi")
        assert input.role.name == DEFAULT_ROLE_NAME
        assert input.composition is Composition.ROLE
        assert input.with_session is False
        assert input.with_agent is False

    def test_active_session(self, ctx):
        role = Role(name="analyst", model=ctx.model(), prompt="Be precise.")
        ctx.session = Session(name="s1", role=role)
        input = Input.from_str(ctx, "hi")
        assert input.with_session is True
        assert input.role.name == "analyst"
        assert input.session() is ctx.session

    def test_active_agent(self, ctx):
        ctx.agent = Agent(name="helper", model=ctx.model(), instructions="Help.")
        input = Input.from_str(ctx, "hi")
        assert input.with_agent is True
        assert input.role.name == "helper"

    def test_explicit_role_opts_out(self, ctx):
        ctx.session = Session(name="s1", role=Role(name="a", model=ctx.model()))
        ctx.agent = Agent(name="helper", model=ctx.model())
        explicit = Role(name="translator", model=ctx.model(), prompt="Translate.")
        input = Input.from_str(ctx, "hi", role=explicit)
        assert input.role is explicit
        assert input.with_session is False
        assert input.with_agent is False
        assert input.session() is None

    def test_decided_once(self, ctx):
        input = Input.from_str(ctx, "hi")
        ctx.session = Session(name="late", role=Role(name="late", model=ctx.model()))
        ctx.agent = Agent(name="late-agent", model=ctx.model())
        assert input.with_session is False
        assert input.with_agent is False
        assert input.session() is None
        assert input.role.name == DEFAULT_ROLE_NAME


class TestRegenerate:

    def test_adopts_same_named_role(self, ctx):
        ctx.role = Role(name="coder", model=ctx.model(), prompt="v1")
        input = Input.from_str(ctx, "fix it")
        ctx.role = Role(name="coder", model=ctx.model(), prompt="v2")
        input.set_regenerate()
        assert input.regenerate is True
        assert input.role.prompt == "v2"

    def test_keeps_role_when_name_differs(self, ctx):
        ctx.role = Role(name="coder", model=ctx.model(), prompt="v1")
        input = Input.from_str(ctx, "fix it")
        ctx.role = Role(name="writer", model=ctx.model(), prompt="prose")
        input.set_regenerate()
        assert input.regenerate is True
        assert input.role.name == "coder"
        assert input.role.prompt == "v1"


class TestMutations:

    def test_continue_output_appends(self, ctx):
        input = Input.from_str(ctx, "go on")
        assert input.continue_output is None
        input.set_continue_output("Once upon")
        input.set_continue_output(" a time")
        assert input.continue_output == "Once upon a time"

    def test_set_text(self, ctx):
        input = Input.from_str(ctx, "old")
        input.set_text("new")
        assert input.text == "new"
        assert input.raw() == "old"

    def test_merge_tool_results(self, ctx):
        input = Input.from_str(ctx, "weather?")
        call = ToolCall(name="get_weather", arguments={"city": "Oslo"}, id="c1")
        same = input.merge_tool_results("checking", [ToolResult(call=call, output="4°C")])
        assert same is input
        assert input.tool_calls.text == "checking"
        assert len(input.tool_calls.tool_results) == 1
        input.merge_tool_results("", [ToolResult(call=ToolCall(name="get_time", id="c2"), output="noon")])
        assert [r.call.id for r in input.tool_calls.tool_results] == ["c1", "c2"]

    def test_stream(self, ctx):
        assert Input.from_str(ctx, "x").stream() is True
        slow = Role(name="r", model=Model(name="m", no_stream=True))
        assert Input.from_str(ctx, "x", role=slow).stream() is False
        ctx.settings.stream = False
        assert Input.from_str(ctx, "x").stream() is False


class TestEmbeddings:

    @pytest.mark.asyncio
    async def test_patch_installed(self, ctx):
        ctx.rag = FakeRag("handbook")
        input = Input.from_str(ctx, "vacation policy?")
        await input.use_embeddings(AbortSignal())
        assert input.text == "[retrieved]\nvacation policy?"
        assert input.rag_name == "handbook"
        # summary and raw still describe what the user typed
        assert input.summary() == "vacation policy?"
        assert input.raw() == "vacation policy?"

    @pytest.mark.asyncio
    async def test_clear_patch(self, ctx):
        ctx.rag = FakeRag()
        input = Input.from_str(ctx, "q")
        await input.use_embeddings(AbortSignal())
        input.clear_patch()
        assert input.text == "q"
        assert input.rag_name is None

    @pytest.mark.asyncio
    async def test_no_rag(self, ctx):
        input = Input.from_str(ctx, "q")
        await input.use_embeddings(AbortSignal())
        assert input.text == "q"
        assert input.rag_name is None

    @pytest.mark.asyncio
    async def test_empty_text_skips_search(self, ctx):
        rag = FakeRag()
        ctx.rag = rag
        input = Input.from_str(ctx, "")
        await input.use_embeddings(AbortSignal())
        assert rag.queries == []
        assert input.rag_name is None


class TestAbort:

    @pytest.mark.asyncio
    async def test_spinner_path_returns_input(self, ctx, tmp_path):
        f = tmp_path / "a.txt"
        f.write_text("a")
        input = await Input.from_files_with_spinner(ctx, "hi", [str(f)], abort_signal=AbortSignal())
        assert "hi" in input.text

    @pytest.mark.asyncio
    async def test_abort_discards_partial_load(self, ctx, fetcher, png_file):
        url = "https://slow.example/x"
        fetcher.responses = {url: ("late", "txt")}
        fetcher.delays = {url: 2}
        signal = AbortSignal()
        signal.set_ctrlc()
        start = time.monotonic()
        with pytest.raises(InputAborted):
            await Input.from_files_with_spinner(ctx, "", [str(png_file), url], abort_signal=signal)
        assert time.monotonic() - start < 1.5
        assert fetcher.finished == []
        assert signal.aborted_ctrlc()
