"""Tests for settings loading and the ambient application context."""

import logging

from parley.config import AppContext, ContextSnapshot, LastMessage, ParleySettings, load_settings
from parley.input import Input
from parley.model import Model
from parley.role import DEFAULT_ROLE_NAME, Agent, Role
from parley.session import Session


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PARLEY_MODEL", raising=False)
        settings = ParleySettings(_env_file=None)
        assert settings.model == "gpt-4o"
        assert settings.stream is True
        assert settings.document_loaders["pdf"] == "pdftotext $1 -"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("PARLEY_MODEL", "local-llama")
        monkeypatch.setenv("PARLEY_SUPPORTS_VISION", "false")
        monkeypatch.setenv("PARLEY_MAX_INPUT_TOKENS", "8192")
        settings = ParleySettings(_env_file=None)
        model = settings.build_model()
        assert model == Model(name="local-llama", supports_vision=False, max_input_tokens=8192)

    def test_document_loaders_from_json(self, monkeypatch):
        monkeypatch.setenv("PARLEY_DOCUMENT_LOADERS", '{"epub": "pandoc --to plain $1"}')
        settings = ParleySettings(_env_file=None)
        assert settings.document_loaders == {"epub": "pandoc --to plain $1"}

    def test_loader_without_placeholder_warns(self, monkeypatch, tmp_path, caplog):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PARLEY_DOCUMENT_LOADERS", '{"odt": "odt2txt"}')
        with caplog.at_level(logging.WARNING, logger="parley.config"):
            load_settings()
        assert "odt" in caplog.text
        assert "$1" in caplog.text


class TestSnapshot:

    def _snapshot(self, **kwargs):
        return ContextSnapshot(
            model=Model(name="m"), temperature=0.7, top_p=None, document_loaders={}, **kwargs
        )

    def test_default_role_takes_settings(self):
        role = self._snapshot().extract_role()
        assert role.name == DEFAULT_ROLE_NAME
        assert role.temperature == 0.7

    def test_precedence(self):
        model = Model(name="m")
        role = Role(name="plain", model=model)
        agent = Agent(name="agent", model=model)
        session = Session(name="s", role=Role(name="session-role", model=model))
        assert self._snapshot(role=role).extract_role().name == "plain"
        assert self._snapshot(role=role, agent=agent).extract_role().name == "agent"
        assert self._snapshot(role=role, agent=agent, session=session).extract_role().name == "session-role"

    def test_agent_instructions_interpolated(self):
        agent = Agent(
            name="a", model=Model(name="m"),
            instructions="You help {{user}}.", variables={"user": "Dana"},
        )
        assert self._snapshot(agent=agent).extract_role().prompt == "You help Dana."

    def test_last_reply_none(self):
        assert self._snapshot().last_reply() is None


class TestAppContext:

    def test_default_collaborators(self, settings):
        ctx = AppContext(settings=settings)
        assert ctx.collaborators is not None
        assert ctx.collaborators.document_loader.runner is ctx.collaborators.runner

    def test_snapshot_is_frozen_copy(self, ctx):
        snapshot = ctx.snapshot()
        ctx.role = Role(name="later", model=ctx.model())
        assert snapshot.role is None
        assert snapshot.home == ctx.home

    def test_record_exchange(self, ctx):
        input = Input.from_str(ctx, "q")
        ctx.record_exchange(input, "answer")
        assert ctx.last_message == LastMessage(input=input, output="answer")
        assert ctx.snapshot().last_reply() == "answer"

    def test_record_exchange_without_session(self, ctx):
        ctx.record_exchange(Input.from_str(ctx, "q"), "a")
        assert ctx.session is None
