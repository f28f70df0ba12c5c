"""Inline media encoding and the content-hash → reference table used for display."""

import base64
import hashlib
import logging
import os
from typing import Optional

from .errors import InvalidMediaTypeError

logger = logging.getLogger("parley.media")

IMAGE_EXTS = frozenset({"png", "jpeg", "jpg", "webp", "gif"})

_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
}

SUPPORTED_MIME_TYPES = frozenset(_MIME_TYPES.values())


def get_extension(path: str) -> Optional[str]:
    """Lower-cased extension without the dot, or None."""
    ext = os.path.splitext(path)[1]
    if not ext or ext == ".":
        return None
    return ext[1:].lower()


def is_image(path: str) -> bool:
    return get_extension(path) in IMAGE_EXTS


def mime_type_for(path: str) -> str:
    """MIME type for a media path. Unknown extensions raise InvalidMediaTypeError."""
    mime = _MIME_TYPES.get(get_extension(path) or "")
    if mime is None:
        raise InvalidMediaTypeError(path)
    return mime


def encode_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def read_media_to_data_url(path: str) -> str:
    """Read an image file and return it as a `data:` URL.

    The MIME type is checked before the file is opened, so an unsupported
    extension fails even when the file does not exist.
    """
    mime = mime_type_for(path)
    with open(path, "rb") as f:
        data = f.read()
    logger.debug(f"Encoded {path} ({len(data):,} bytes, {mime})")
    return encode_data_url(data, mime)


def sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class DedupTable:
    """Maps the hash of a data URL to the reference it was first loaded from.

    Only used to show a human-readable path in place of a data URL. Two
    references with identical content share one entry; the first one wins.
    """

    def __init__(self, entries: Optional[dict[str, str]] = None):
        self._entries: dict[str, str] = dict(entries or {})

    def add(self, data_url: str, reference: str) -> str:
        """Record `reference` for `data_url` unless already known. Returns the hash."""
        key = sha256(data_url)
        self._entries.setdefault(key, reference)
        return key

    def resolve(self, data_url: str) -> str:
        return resolve_data_url(self._entries, data_url)

    def to_dict(self) -> dict[str, str]:
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


def resolve_data_url(data_urls: dict[str, str], data_url: str) -> str:
    """Return the original reference for a data URL, or the URL itself if unknown."""
    if not data_url.startswith("data:"):
        return data_url
    return data_urls.get(sha256(data_url), data_url)
