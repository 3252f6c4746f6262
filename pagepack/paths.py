"""Mapping of resource URLs onto filesystem-safe archive paths."""

from __future__ import annotations

import posixpath
import re
import zlib
from urllib.parse import quote, unquote, urlsplit

from .config import MAX_PATH_LENGTH

INDEX_NAME = "index.html"
TRUNCATED_MARKER = "_truncated"

_HOSTILE_CHARS = re.compile(r'[<>:"|*]')
_HOSTILE_PATH_CHARS = re.compile(r'[<>:"|*?]')
_HREF_SAFE = "/-_.~!$&()*+,;=@"
_MAX_EXTENSION_LENGTH = 16


def sanitize_path_segment(value: str) -> str:
    return _HOSTILE_PATH_CHARS.sub("_", value)


def sanitize_query_segment(value: str) -> str:
    return _HOSTILE_CHARS.sub("_", value)


def neutralize_dot_segments(path: str) -> str:
    """``a/../b`` -> ``a/__/b``; decoded dot segments never climb out of the archive."""
    return "/".join(
        "_" * len(segment) if segment in (".", "..") else segment
        for segment in path.split("/")
    )


def hashed_name(value: str, path: str) -> str:
    """Bounded, stable replacement for an over-long key."""
    extension = posixpath.splitext(posixpath.basename(path))[1]
    if len(extension) > _MAX_EXTENSION_LENGTH or not extension[1:].isalnum():
        extension = ""
    return f"file_{zlib.crc32(value.encode('utf-8'))}{extension}"


def canonical_path(url: str, max_length: int = MAX_PATH_LENGTH) -> str:
    """Turn an absolute URL into the key it is stored under in the archive.

    The path is percent-decoded and sanitized, directory URLs are mapped to
    ``index.html`` and the query string is kept after a literal ``?``. Keys
    longer than ``max_length`` collapse into ``file_<crc32>.<ext>``.
    """
    parsed = urlsplit(url)
    path = unquote(parsed.path).lstrip("/")
    if not path:
        path = INDEX_NAME
    elif path.endswith("/"):
        path += INDEX_NAME
    path = sanitize_path_segment(neutralize_dot_segments(path))

    key = path
    if parsed.query:
        search = "?" + parsed.query
        if len(search) > max_length:
            search = search[:max_length] + TRUNCATED_MARKER
        key = f"{path}?{sanitize_query_segment(search[1:])}"

    if len(key) > max_length:
        key = hashed_name(key, path)
    return key


def strip_query(key: str) -> str:
    return key.split("?", 1)[0].split("#", 1)[0]


def href_for(key: str) -> str:
    """Encode a store key so a browser loads exactly that file from disk."""
    return quote(key, safe=_HREF_SAFE)


def relative_href(key: str, directory: str) -> str:
    """Reference to ``key`` as seen from a file living in ``directory``."""
    relative = posixpath.relpath(key, start=directory or ".")
    return href_for(relative.replace("\\", "/"))


def split_fragment(reference: str):
    """``sprite.svg#icon`` -> ``("sprite.svg", "#icon")``."""
    path, _, fragment = reference.partition("#")
    return path, ("#" + fragment if fragment else "")
