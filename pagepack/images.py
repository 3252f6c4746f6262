"""Downloading of external assets the browser never loaded itself."""

from __future__ import annotations

import logging
import posixpath
import zlib
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Set
from urllib.parse import unquote, urlsplit

import requests
from filetype import guess

from .config import DEFAULT_USER_AGENT
from .errors import EXTERNAL_FETCH_FAILURE, ExternalFetchFailure
from .models import CapturedResource, CloneWarning, ExternalAssetRequest
from .paths import sanitize_path_segment
from .store import ResourceStore

logger = logging.getLogger("pagepack")

EXTERNAL_IMAGE_DIR = "external_images"
DEFAULT_IMAGE_TYPE = "image/jpeg"
DEFAULT_IMAGE_EXTENSION = ".jpg"


def detect_content_type(data: bytes) -> Optional[str]:
    """Guess a MIME type from the file signature."""
    kind = guess(data)
    return kind.mime if kind else None


def external_image_path(url: str) -> str:
    """``https://cdn/x/photo`` -> ``external_images/photo.jpg``."""
    name = posixpath.basename(unquote(urlsplit(url).path)) or "image"
    name = sanitize_path_segment(name)
    extension = "" if "." in name else DEFAULT_IMAGE_EXTENSION
    return f"{EXTERNAL_IMAGE_DIR}/{name}{extension}"


class ExternalAssetHarvester:
    """Collects ExternalAssetRequests and fetches them into a ResourceStore.

    Requests are deduplicated by URL. Fetches run on a bounded thread pool but
    every store insertion happens on the thread calling :meth:`harvest`.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
        max_workers: int = 4,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": user_agent, "Accept": "*/*"})
        self.session = session
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        self.warnings: List[CloneWarning] = []
        self._requests: Dict[ExternalAssetRequest, None] = {}
        self._paths_by_url: Dict[str, str] = {}
        self._claimed_paths: Set[str] = set()
        self._attempted: Set[ExternalAssetRequest] = set()

    @property
    def requests(self) -> List[ExternalAssetRequest]:
        return list(self._requests)

    @property
    def pending(self) -> List[ExternalAssetRequest]:
        return [request for request in self._requests if request not in self._attempted]

    def local_path_for(self, url: str) -> Optional[str]:
        return self._paths_by_url.get(url)

    def reserve(self, url: str, local_path: Optional[str] = None) -> str:
        """Queue ``url`` for download and return the path it will be stored under."""
        existing = self._paths_by_url.get(url)
        if existing is not None:
            return existing

        path = local_path or external_image_path(url)
        if path in self._claimed_paths:
            stem, extension = posixpath.splitext(path)
            path = f"{stem}_{zlib.crc32(url.encode('utf-8')):08x}{extension}"

        self._paths_by_url[url] = path
        self._claimed_paths.add(path)
        self._requests[ExternalAssetRequest(url, path)] = None
        return path

    def fetch(self, request: ExternalAssetRequest) -> CapturedResource:
        try:
            resp = self.session.get(request.url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ExternalFetchFailure(request.url, str(exc)) from exc

        data = resp.content
        if not data:
            raise ExternalFetchFailure(request.url, "empty response")
        content_type = (
            resp.headers.get("Content-Type")
            or detect_content_type(data)
            or DEFAULT_IMAGE_TYPE
        )
        return CapturedResource(data, content_type, source_url=request.url)

    def harvest(
        self,
        store: ResourceStore,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> int:
        """Fetch every pending request and insert the results into ``store``."""
        pending = [request for request in self.pending if request.local_path not in store]
        self._attempted.update(self.pending)
        if not pending:
            return 0

        logger.info("Downloading %d external asset(s)", len(pending))
        stored = 0
        workers = min(self.max_workers, len(pending))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self.fetch, request): request for request in pending}
            for done, future in enumerate(as_completed(futures), start=1):
                request = futures[future]
                try:
                    resource = future.result()
                except ExternalFetchFailure as exc:
                    logger.warning("Failed to download external asset %s: %s", exc.url, exc.reason)
                    self.warnings.append(CloneWarning(EXTERNAL_FETCH_FAILURE, str(exc)))
                    del self._requests[request]
                else:
                    key = store.add_harvested(request.local_path, resource)
                    if key is not None:
                        self._paths_by_url[request.url] = key
                        stored += 1
                        logger.debug("Downloaded external asset %s -> %s", request.url, key)
                if on_progress:
                    on_progress(done, len(pending))
        return stored
