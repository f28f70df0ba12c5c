"""Reference classification — route each `-f` argument to the right loader.

A reference is one of four things:

- a remote URL (anything with a scheme and an authority, checked first)
- the sentinel `%%`, meaning "reuse the last reply"
- a shell command wrapped in backticks, e.g. `` `git diff` ``
- a local path or glob pattern (the fallback)

Classification is a pure string operation: it never touches the filesystem
beyond computing an absolute form of local paths for the raw invocation.
"""

import os
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlsplit

SENTINEL = "%%"


@dataclass(frozen=True)
class Sentinel:
    raw: str = SENTINEL


@dataclass(frozen=True)
class ShellCommand:
    command: str            # backticks stripped
    raw: str                # as typed, backticks included


@dataclass(frozen=True)
class LocalPath:
    path: str               # `~/` expanded; used for loading and globbing
    absolute: str           # absolutized form, only for the raw invocation


@dataclass(frozen=True)
class RemoteUrl:
    url: str

    @property
    def raw(self) -> str:
        return self.url


Reference = Union[Sentinel, ShellCommand, LocalPath, RemoteUrl]


def is_url(value: str) -> bool:
    """True if the string has both a URL scheme and an authority."""
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def expand_home(path: str, home: Optional[str] = None) -> str:
    """Expand a leading `~/` to the home directory. Other forms are untouched."""
    if not path.startswith("~/"):
        return path
    if home is None:
        home = os.path.expanduser("~")
        if home == "~":
            return path
    return os.path.join(home, path[2:])


def classify(reference: str, home: Optional[str] = None) -> Reference:
    """Classify a single reference string. Total: never fails."""
    if is_url(reference):
        return RemoteUrl(url=reference)
    if reference == SENTINEL:
        return Sentinel()
    if len(reference) > 2 and reference.startswith("`") and reference.endswith("`"):
        return ShellCommand(command=reference[1:-1], raw=reference)
    path = expand_home(reference, home)
    # abspath normalizes without resolving symlinks
    return LocalPath(path=path, absolute=os.path.abspath(path) if path else path)


def raw_form(reference: Reference) -> str:
    """The string recorded for this reference in the raw invocation."""
    if isinstance(reference, LocalPath):
        return reference.absolute
    return reference.raw
