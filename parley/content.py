"""Content loading — resolve classified references into text blocks and media.

Shell commands run first, synchronously, in reference order. Local files
and remote URLs are then loaded concurrently. Every reference owns one
result slot at its original position, so the assembled output follows
reference order whatever order the loads finish in. The first failure
cancels everything still in flight.
"""

import asyncio
import glob
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Awaitable, Sequence, TypeVar, Union

from .errors import CommandFailedError, InvalidMediaTypeError, LoadError
from .loaders import MEDIA_KIND, Collaborators
from .media import DedupTable, is_image, read_media_to_data_url
from .references import LocalPath, Reference, RemoteUrl, ShellCommand

logger = logging.getLogger("parley.content")

T = TypeVar("T")

_GLOB_MAGIC = re.compile(r"[*?[]")


@dataclass
class LoadedFile:
    kind: str               # "CMD" | "FILE" | "URL"
    path: str
    contents: str


@dataclass
class LoadedMedia:
    data_url: str
    source: str             # the reference it came from


LoadedItem = Union[LoadedFile, LoadedMedia]


@dataclass
class LoadedDocuments:
    files: list[LoadedFile] = field(default_factory=list)
    medias: list[str] = field(default_factory=list)
    data_urls: dict[str, str] = field(default_factory=dict)


def expand_glob_paths(path: str, bail_non_exist: bool = True) -> list[str]:
    """Expand one path or pattern into a sorted list of files.

    A directory stands for every file beneath it (`dir/**`). A plain path
    that does not exist is an error unless `bail_non_exist` is False.
    """
    # An existing path is taken literally, even if it contains [ or ?
    if os.path.isdir(path):
        return _walk_dir(path)
    if os.path.exists(path):
        return [path]
    if _GLOB_MAGIC.search(path):
        matches = glob.glob(path, recursive=True)
        if not matches:
            logger.warning(f"Pattern matched no files: {path}")
        files = []
        for match in matches:
            if os.path.isdir(match):
                files.extend(_walk_dir(match))
            elif os.path.isfile(match):
                files.append(match)
        return sorted(set(files))
    if bail_non_exist:
        raise LoadError(f"Not found '{path}'", path)
    return []


def _walk_dir(path: str) -> list[str]:
    pattern = os.path.join(glob.escape(path), "**")
    return sorted(p for p in glob.glob(pattern, recursive=True) if os.path.isfile(p))


async def gather_or_cancel(works: Sequence[Awaitable[T]]) -> list[T]:
    """Like asyncio.gather, but the first failure cancels the siblings."""
    tasks = [asyncio.ensure_future(w) for w in works]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def run_command(collaborators: Collaborators, command: str) -> LoadedFile:
    shell = collaborators.shell
    output = collaborators.runner.run(shell, [shell.arg, command])
    if not output.success:
        err = output.stderr if output.stderr else output.stdout
        logger.warning(f"Command reference failed: {command[:100]}")
        raise CommandFailedError(command, err)
    return LoadedFile(kind="CMD", path=command, contents=output.stdout)


async def _load_local_file(
    collaborators: Collaborators,
    loaders: dict[str, str],
    path: str,
) -> LoadedItem:
    if is_image(path):
        try:
            data_url = await asyncio.to_thread(read_media_to_data_url, path)
        except OSError as e:
            raise LoadError(f"Unable to read media file '{path}'", path) from e
        return LoadedMedia(data_url=data_url, source=path)
    try:
        contents = await collaborators.document_loader.load(loaders, path)
    except Exception as e:
        raise LoadError(f"Unable to read file '{path}'", path) from e
    return LoadedFile(kind="FILE", path=path, contents=contents)


async def _load_local(
    collaborators: Collaborators,
    loaders: dict[str, str],
    reference: LocalPath,
) -> list[LoadedItem]:
    paths = await asyncio.to_thread(expand_glob_paths, reference.path)
    logger.debug(f"{reference.path} expanded to {len(paths)} file(s)")
    return await gather_or_cancel([_load_local_file(collaborators, loaders, p) for p in paths])


async def _load_remote(
    collaborators: Collaborators,
    loaders: dict[str, str],
    reference: RemoteUrl,
) -> list[LoadedItem]:
    url = reference.url
    try:
        contents, kind = await collaborators.fetcher.fetch(loaders, url, True)
    except InvalidMediaTypeError:
        raise
    except Exception as e:
        raise LoadError(f"Failed to load url '{url}'", url) from e
    if kind == MEDIA_KIND:
        return [LoadedMedia(data_url=contents, source=url)]
    return [LoadedFile(kind="URL", path=url, contents=contents)]


async def load_documents(
    references: Sequence[Reference],
    collaborators: Collaborators,
    loaders: dict[str, str],
) -> LoadedDocuments:
    """Load every command, path and URL reference. Sentinels are skipped."""
    slots: list[list[LoadedItem]] = [[] for _ in references]

    for idx, reference in enumerate(references):
        if isinstance(reference, ShellCommand):
            slots[idx] = [run_command(collaborators, reference.command)]

    positions = []
    works = []
    for idx, reference in enumerate(references):
        if isinstance(reference, LocalPath):
            positions.append(idx)
            works.append(_load_local(collaborators, loaders, reference))
        elif isinstance(reference, RemoteUrl):
            positions.append(idx)
            works.append(_load_remote(collaborators, loaders, reference))

    if works:
        logger.info(f"Loading {len(works)} reference(s)")
    for idx, items in zip(positions, await gather_or_cancel(works)):
        slots[idx] = items

    # Dedup entries are added in reference order: first reference wins
    documents = LoadedDocuments()
    table = DedupTable()
    for items in slots:
        for item in items:
            if isinstance(item, LoadedMedia):
                documents.medias.append(item.data_url)
                table.add(item.data_url, item.source)
            else:
                documents.files.append(item)
    documents.data_urls = table.to_dict()
    return documents
