"""Utility helpers for string normalization and URL handling."""

from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import urlparse

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
INERT_PREFIXES = ("data:", "blob:", "javascript:", "mailto:", "tel:", "about:", "#")
ABSOLUTE_HTTP_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
IMAGE_EXTENSION_PATTERN = re.compile(
    r"\.(jpg|jpeg|png|gif|svg|webp|avif|bmp|ico)(\?.*)?$", re.IGNORECASE
)


def slugify(value: str, fallback: str = "page") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def is_inert(reference: str) -> bool:
    """Return True for references that never point at a capturable resource."""
    return reference.strip().lower().startswith(INERT_PREFIXES)


def is_absolute_http(reference: str) -> bool:
    return bool(ABSOLUTE_HTTP_PATTERN.match(reference))


def looks_like_image(reference: str) -> bool:
    return bool(IMAGE_EXTENSION_PATTERN.search(reference))


def is_off_origin(url: str, page_url: str) -> bool:
    """Check whether an absolute URL lives on a different host than the page."""
    host = urlparse(url).netloc.lower()
    return bool(host) and host != urlparse(page_url).netloc.lower()


def contains_any(value: str, markers: Iterable[str]) -> bool:
    return any(marker in value for marker in markers)
