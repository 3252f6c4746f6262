"""Browser capture: render a page with Playwright and record every response."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

from playwright.async_api import (
    Error as PlaywrightError,
    Playwright,
    Request,
    Response,
    Route,
    TimeoutError as PlaywrightTimeoutError,
)

from .config import BLOCKED_REQUEST_MARKERS, CAPTURED_RESOURCE_TYPES, CloneConfig
from .errors import CAPTURE_DECODE_FAILURE, CaptureDecodeFailure, NavigationFailure
from .models import CapturedResource, CloneWarning
from .paths import canonical_path
from .progress import CAPTURE_END, ProgressReporter
from .store import ResourceStore
from .utils import contains_any, is_inert

logger = logging.getLogger("pagepack")

# Scrolls to the bottom in fixed steps to trigger lazy loading, then back up.
SCROLL_SCRIPT = """
([distance, interval]) => new Promise((resolve) => {
  let total = 0;
  const timer = setInterval(() => {
    window.scrollBy(0, distance);
    total += distance;
    if (total >= document.body.scrollHeight) {
      clearInterval(timer);
      window.scrollTo(0, 0);
      setTimeout(resolve, 1000);
    }
  }, interval);
})
"""


def should_block(request: Request) -> bool:
    """Requests that would only produce files useless in a static copy."""
    if contains_any(request.url, BLOCKED_REQUEST_MARKERS):
        return True
    if request.resource_type == "websocket":
        return True
    return request.resource_type not in CAPTURED_RESOURCE_TYPES


class PageCapture:
    """Loads one page and streams its responses into a ResourceStore.

    Capture tasks run on the event loop that drives Playwright, so the store
    only ever has a single writer. :meth:`run` drains outstanding captures and
    settles the store before returning the rendered HTML.
    """

    def __init__(
        self,
        url: str,
        config: CloneConfig,
        store: ResourceStore,
        progress: Optional[ProgressReporter] = None,
    ) -> None:
        self.url = url
        self.config = config
        self.store = store
        self.progress = progress or ProgressReporter()
        self.final_url = url
        self.document_key: Optional[str] = None
        self.warnings: List[CloneWarning] = []
        self._pending: Set[asyncio.Task] = set()

    async def _route(self, route: Route) -> None:
        if should_block(route.request):
            logger.debug("Blocking %s request: %s", route.request.resource_type, route.request.url)
            await route.abort()
        else:
            await route.continue_()

    def _on_response(self, response: Response) -> None:
        if self.store.settled:
            return
        task = asyncio.get_running_loop().create_task(self._capture(response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _read(self, response: Response) -> CapturedResource:
        try:
            body = await response.body()
            headers = await response.all_headers()
        except PlaywrightError as exc:
            raise CaptureDecodeFailure(f"{response.url}: {exc}") from exc
        content_type = headers.get("content-type") or "application/octet-stream"
        return CapturedResource(body, content_type, source_url=response.url)

    async def _capture(self, response: Response) -> None:
        url = response.url
        if is_inert(url) or not response.ok:
            return
        if response.request.resource_type not in CAPTURED_RESOURCE_TYPES:
            return
        try:
            resource = await self._read(response)
        except CaptureDecodeFailure as exc:
            logger.warning("Failed to download %s", exc)
            self.warnings.append(CloneWarning(CAPTURE_DECODE_FAILURE, str(exc)))
            return
        if self.store.settled:
            return

        key = self.store.insert(canonical_path(url, self.config.max_path_length), resource)
        if key is None:
            return
        if response.request.resource_type == "document" and self.document_key is None:
            self.document_key = key
        logger.debug("Downloaded: %s", key)
        self.progress.captured(len(self.store))

    async def _settle(self, page) -> None:
        if self.config.settle_delay:
            logger.info("Waiting for dynamic content to load...")
            await page.wait_for_timeout(int(self.config.settle_delay * 1000))
        await page.evaluate(SCROLL_SCRIPT, [self.config.scroll_step, self.config.scroll_interval])
        if self.config.post_scroll_wait:
            await page.wait_for_timeout(int(self.config.post_scroll_wait * 1000))

    async def run(self, playwright: Playwright) -> str:
        """Render the page and return its final HTML once capture has settled."""
        config = self.config
        browser = await playwright.chromium.launch(headless=config.headless)
        try:
            context = await browser.new_context(
                viewport={"width": config.viewport_width, "height": config.viewport_height},
                device_scale_factor=config.device_scale_factor,
                user_agent=config.user_agent,
            )
            page = await context.new_page()
            page.set_default_navigation_timeout(config.navigation_timeout * 1000)
            await page.route("**/*", self._route)
            page.on("response", self._on_response)

            logger.info("Loading %s", self.url)
            try:
                await page.goto(self.url, wait_until="networkidle")
                await self._settle(page)
            except PlaywrightTimeoutError as exc:
                raise NavigationFailure(f"Timed out loading {self.url}: {exc}") from exc
            except PlaywrightError as exc:
                raise NavigationFailure(f"Failed to load {self.url}: {exc}") from exc

            html = await page.content()
            self.final_url = page.url
            page.remove_listener("response", self._on_response)
            if self._pending:
                await asyncio.gather(*list(self._pending))
        finally:
            await browser.close()

        self.store.settle()
        self.progress.report(CAPTURE_END, f"Captured {len(self.store)} resources")
        logger.info("Captured %d resources from %s", len(self.store), self.final_url)
        return html
