"""High-level orchestration for capturing a page and producing an offline archive."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import requests
from bs4 import BeautifulSoup
from playwright.async_api import Playwright, async_playwright

from .archive import archive_name, write_archive
from .capture import PageCapture
from .config import CloneConfig
from .errors import CloneError
from .hooks import DEFAULT_HOOKS, SiteHook, apply_hooks
from .images import ExternalAssetHarvester
from .markup import (
    cleanup_residual_references,
    document_base_url,
    queue_proxy_originals,
    rewrite_markup,
)
from .models import CloneWarning
from .paths import INDEX_NAME
from .progress import CLEANUP, DONE, PACKAGING, ProgressCallback, ProgressReporter
from .resolver import ReferenceResolver
from .store import ResourceStore
from .stylesheets import prescan_stylesheets, rewrite_stylesheets

logger = logging.getLogger("pagepack")


@dataclass
class CloneResult:
    """Outcome of one successful clone run."""

    url: str
    final_url: str
    archive_path: Path
    file_count: int
    total_seconds: float
    warnings: List[CloneWarning] = field(default_factory=list)


class CloneRun:
    """Everything one clone operation owns: store, harvester and resolver.

    The run has two phases. :meth:`capture` fills the store from the browser
    and settles it; :meth:`rewrite` then reads the settled store, letting
    only the harvester add entries. Nothing here is shared between runs.
    """

    def __init__(
        self,
        url: str,
        config: CloneConfig,
        progress: Optional[ProgressCallback] = None,
        session: Optional[requests.Session] = None,
        hooks: Sequence[SiteHook] = DEFAULT_HOOKS,
    ) -> None:
        self.url = url
        self.config = config
        self.hooks = hooks
        self.store = ResourceStore()
        self.progress = ProgressReporter(progress)
        self.harvester = ExternalAssetHarvester(
            session=session,
            timeout=config.harvest_timeout,
            max_workers=config.harvest_workers,
            user_agent=config.user_agent,
        )
        self.page_url = url
        self.document_key: Optional[str] = None
        self.resolver: Optional[ReferenceResolver] = None
        self._capture_warnings: List[CloneWarning] = []

    @property
    def warnings(self) -> List[CloneWarning]:
        warnings = list(self._capture_warnings)
        if self.resolver is not None:
            warnings.extend(self.resolver.warnings)
        warnings.extend(self.harvester.warnings)
        return warnings

    async def capture(self, playwright: Playwright) -> str:
        capture = PageCapture(self.url, self.config, self.store, self.progress)
        try:
            html = await capture.run(playwright)
        finally:
            self._capture_warnings = capture.warnings
        self.page_url = capture.final_url
        self.document_key = capture.document_key
        return html

    def _harvest(self) -> None:
        self.harvester.harvest(self.store, on_progress=self.progress.harvested)

    def rewrite(self, html: str) -> Dict[str, bytes]:
        """Rewrite the document and stylesheets; returns archive path -> bytes."""
        if not self.store.settled:
            raise RuntimeError("Rewriting requires a settled resource store")

        if self.document_key is not None:
            self.document_key = self.store.current_key(self.document_key)

        soup = BeautifulSoup(html, "html.parser")
        base_url = document_base_url(soup, self.page_url)
        resolver = ReferenceResolver(
            self.store,
            self.harvester,
            self.page_url,
            image_proxy_markers=self.config.image_proxy_markers,
            api_markers=self.config.api_markers,
            max_path_length=self.config.max_path_length,
        )
        self.resolver = resolver

        queue_proxy_originals(soup, resolver, base_url)
        prescan_stylesheets(resolver)
        self._harvest()

        rewrite_markup(soup, resolver, base_url)
        # External images discovered while rewriting were referenced optimistically.
        self._harvest()

        if self.config.inject_scripts:
            applied = apply_hooks(soup, self.page_url, self.hooks)
            logger.debug("Applied hooks: %s", ", ".join(applied) or "none")

        self.progress.report(CLEANUP, "Removing residual optimized-image and API references")
        cleanup_residual_references(soup, resolver, base_url)

        stylesheets = rewrite_stylesheets(resolver)
        files: Dict[str, bytes] = {INDEX_NAME: soup.decode().encode("utf-8")}
        for key, resource in self.store.items():
            if key in (INDEX_NAME, self.document_key):
                continue
            files[key] = stylesheets.get(key, resource.content)
        return files

    def package(self, files: Dict[str, bytes]) -> Path:
        destination = self.config.archive_path or (
            self.config.output_root / archive_name(self.page_url)
        )
        self.progress.report(PACKAGING, "Packaging archive")
        path = write_archive(files, destination)
        self.progress.report(DONE, "Clone complete")
        return path


async def clone_page(
    url: str,
    config: CloneConfig,
    progress: Optional[ProgressCallback] = None,
    session: Optional[requests.Session] = None,
) -> CloneResult:
    """Clone ``url`` into a zip archive.

    Raises NavigationFailure or PackagingFailure; every other problem is
    recorded on ``CloneResult.warnings``.
    """
    start = time.perf_counter()
    run = CloneRun(url, config, progress=progress, session=session)
    async with async_playwright() as playwright:
        html = await run.capture(playwright)

    files = run.rewrite(html)
    archive_path = run.package(files)
    warnings = run.warnings
    if warnings:
        logger.info("Finished %s with %d warning(s)", url, len(warnings))
    return CloneResult(
        url=url,
        final_url=run.page_url,
        archive_path=archive_path,
        file_count=len(files),
        total_seconds=time.perf_counter() - start,
        warnings=warnings,
    )


async def run_cloner(
    urls: List[str],
    config: CloneConfig,
    progress: Optional[ProgressCallback] = None,
) -> List[CloneResult]:
    """Clone each URL sequentially; failed URLs are logged and skipped."""
    results: List[CloneResult] = []
    for url in urls:
        try:
            result = await clone_page(url, config, progress=progress)
        except CloneError as exc:
            logger.error("Failed to clone %s: %s", url, exc)
            continue
        logger.info("Saved %s to %s", url, result.archive_path)
        results.append(result)
    return results
