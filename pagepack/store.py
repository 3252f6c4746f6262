"""Ordered, conflict-aware mapping from archive path to captured bytes."""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Tuple

from .models import CapturedResource

logger = logging.getLogger("pagepack")

FILE_SUFFIX = "_file"


class ResourceStore:
    """Resources captured during one clone run, keyed by canonical path.

    Keys are unique. Inserting an existing key keeps the first capture. When a
    file and a directory would need the same name, the file is moved to
    ``<name>_file`` so both survive.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CapturedResource] = {}
        self._renamed: Dict[str, str] = {}
        self._settled = False

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def get(self, key: str) -> Optional[CapturedResource]:
        return self._entries.get(key)

    def keys(self) -> List[str]:
        return list(self._entries)

    def items(self) -> List[Tuple[str, CapturedResource]]:
        return list(self._entries.items())

    def current_key(self, key: str) -> str:
        """Follow file renames so a key recorded at capture time still finds its entry."""
        while key not in self._entries and key in self._renamed:
            key = self._renamed[key]
        return key

    @property
    def settled(self) -> bool:
        return self._settled

    def settle(self) -> None:
        """Close the capture phase; only harvested assets may be added after this."""
        self._settled = True
        logger.debug("Resource store settled with %d entries", len(self._entries))

    def insert(self, key: str, resource: CapturedResource) -> Optional[str]:
        """Store a browser capture, returning the key used or None for a duplicate."""
        if self._settled:
            raise RuntimeError(f"Capture of {key} arrived after the store was settled")
        return self._insert(key, resource)

    def add_harvested(self, key: str, resource: CapturedResource) -> Optional[str]:
        """Store an asset fetched outside the browser under its reserved key."""
        return self._insert(key, resource)

    def _insert(self, key: str, resource: CapturedResource) -> Optional[str]:
        if key in self._entries:
            logger.debug("Duplicate capture ignored: %s", key)
            return None

        for ancestor in _ancestors(key):
            if ancestor in self._entries:
                renamed = self._free_name(ancestor + FILE_SUFFIX)
                self._rename(ancestor, renamed)
                logger.debug("Moved %s to %s to make room for %s", ancestor, renamed, key)

        if self._is_directory(key):
            renamed = self._free_name(key + FILE_SUFFIX)
            logger.debug("%s is already a directory, storing file as %s", key, renamed)
            key = renamed

        self._entries[key] = resource
        return key

    def _is_directory(self, key: str) -> bool:
        prefix = key + "/"
        return any(existing.startswith(prefix) for existing in self._entries)

    def _free_name(self, candidate: str) -> str:
        name = candidate
        counter = 2
        while name in self._entries or self._is_directory(name):
            name = f"{candidate}_{counter}"
            counter += 1
        return name

    def _rename(self, old: str, new: str) -> None:
        self._renamed[old] = new
        self._entries = {
            (new if key == old else key): value for key, value in self._entries.items()
        }


def _ancestors(key: str) -> List[str]:
    """``a/b/c`` -> ``["a", "a/b"]``; the query part never counts as a directory."""
    path = key.split("?", 1)[0]
    parts = path.split("/")[:-1]
    return ["/".join(parts[: index + 1]) for index in range(len(parts))]
