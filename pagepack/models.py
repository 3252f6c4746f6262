"""Data models shared by the capture and rewrite phases."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class CapturedResource:
    """Response body captured from the browser or fetched by the harvester."""

    content: bytes
    content_type: str
    source_url: Optional[str] = None

    @property
    def is_stylesheet(self) -> bool:
        return "css" in self.content_type.lower()


@dataclass(frozen=True)
class ExternalAssetRequest:
    """Remote asset that has to be fetched and stored under ``local_path``."""

    url: str
    local_path: str


@dataclass
class ReferenceRewriteTask:
    """A single reference found in markup or CSS, waiting to be resolved."""

    source: Any
    attribute: str
    reference: str
    base_url: str
    is_image: bool = False


@dataclass
class CloneWarning:
    """Non-fatal problem recorded during a clone run."""

    kind: str
    message: str
