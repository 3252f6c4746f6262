"""Packaging of the rewritten page and its resources into a zip archive."""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path
from typing import Mapping
from urllib.parse import urlparse

from .errors import PackagingFailure
from .utils import slugify

logger = logging.getLogger("pagepack")

COMPRESSION_LEVEL = 9


def archive_name(url: str) -> str:
    """``https://www.example.com/x`` -> ``www-example-com_clone.zip``."""
    host = urlparse(url).hostname or "site"
    return f"{slugify(host, fallback='site')}_clone.zip"


def build_archive(files: Mapping[str, bytes]) -> bytes:
    """Serialize ``files`` (archive path -> bytes) into an in-memory zip."""
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(
            buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESSION_LEVEL
        ) as archive:
            for path, content in files.items():
                archive.writestr(path, content)
    except (zipfile.BadZipFile, ValueError, OSError) as exc:
        raise PackagingFailure(f"Could not build archive: {exc}") from exc
    return buffer.getvalue()


def write_archive(files: Mapping[str, bytes], destination: Path) -> Path:
    """Write the archive to ``destination`` and return the resolved path."""
    payload = build_archive(files)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(payload)
    except OSError as exc:
        raise PackagingFailure(f"Could not write archive to {destination}: {exc}") from exc
    logger.info("Saved archive with %d file(s) to %s", len(files), destination)
    return destination
