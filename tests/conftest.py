"""Pytest configuration and shared fixtures."""

import asyncio

import pytest

from parley.config import AppContext, ParleySettings
from parley.loaders import (
    Collaborators,
    CommandDocumentLoader,
    CommandOutput,
    CommandRunner,
    RemoteFetcher,
    Shell,
)

# Smallest valid-looking payloads; content only matters for hashing
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR fake png body"
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF fake jpeg body"


class FakeRunner(CommandRunner):
    """Records commands; answers from `results` or echoes a default stdout."""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []

    def run(self, shell, args, cwd=None):
        self.calls.append(list(args))
        command = args[-1]
        if command in self.results:
            return self.results[command]
        return CommandOutput(success=True, stdout=f"ran {command}\n", stderr="")


class FakeFetcher(RemoteFetcher):
    """Serves canned (contents, kind) pairs, optionally after a delay."""

    def __init__(self, responses=None, delays=None):
        self.responses = responses or {}
        self.delays = delays or {}
        self.started = []
        self.finished = []

    async def fetch(self, loaders, url, want_raw):
        self.started.append(url)
        await asyncio.sleep(self.delays.get(url, 0))
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        self.finished.append(url)
        return response


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def settings():
    return ParleySettings(
        _env_file=None,
        model="test-model",
        supports_vision=True,
        stream=True,
        document_loaders={},
    )


@pytest.fixture
def collaborators(runner, fetcher):
    shell = Shell(cmd="/bin/sh", arg="-c")
    return Collaborators(
        runner=runner,
        document_loader=CommandDocumentLoader(runner, shell),
        fetcher=fetcher,
        shell=shell,
    )


@pytest.fixture
def ctx(settings, collaborators, tmp_path):
    """Application context with fake collaborators and tmp_path as home."""
    return AppContext(settings=settings, collaborators=collaborators, home=str(tmp_path))


@pytest.fixture
def png_file(tmp_path):
    path = tmp_path / "shot.png"
    path.write_bytes(PNG_BYTES)
    return path
