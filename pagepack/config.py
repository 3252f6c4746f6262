"""Configuration objects and constants for the cloner."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

MAX_PATH_LENGTH = 200

CAPTURED_RESOURCE_TYPES = ("document", "stylesheet", "script", "image", "font", "media")

# Path fragments identifying image-optimization endpoints that carry the
# original image in their ``url`` query parameter.
IMAGE_PROXY_MARKERS = ("/_next/image",)

API_MARKERS = ("/api/", "gtag/js", "/gtm.js")

BLOCKED_REQUEST_MARKERS = IMAGE_PROXY_MARKERS + ("/api/", "/_next/webpack-hmr")


@dataclass
class CloneConfig:
    """Top-level settings that control capture, rewriting and packaging."""

    output_root: Path
    archive_path: Optional[Path] = None
    navigation_timeout: float = 60.0
    settle_delay: float = 5.0
    scroll_step: int = 100
    scroll_interval: int = 100
    post_scroll_wait: float = 2.0
    viewport_width: int = 1920
    viewport_height: int = 1080
    device_scale_factor: float = 2
    user_agent: str = DEFAULT_USER_AGENT
    headless: bool = True
    harvest_workers: int = 4
    harvest_timeout: float = 15.0
    max_path_length: int = MAX_PATH_LENGTH
    inject_scripts: bool = True
    image_proxy_markers: Tuple[str, ...] = field(default=IMAGE_PROXY_MARKERS)
    api_markers: Tuple[str, ...] = field(default=API_MARKERS)
