"""Progress reporting for a clone run."""

from __future__ import annotations

import logging
from typing import Callable, Optional

logger = logging.getLogger("pagepack")

ProgressCallback = Callable[[float, Optional[str]], None]

# Milestones as fractions of the whole run.
CAPTURE_START = 0.05
CAPTURE_END = 0.6
HARVEST_END = 0.75
CLEANUP = 0.8
PACKAGING = 0.9
DONE = 1.0

CAPTURE_ESTIMATE = 50


class ProgressReporter:
    """Forwards progress to a callback, never letting the fraction decrease."""

    def __init__(self, callback: Optional[ProgressCallback] = None) -> None:
        self.callback = callback
        self.value = 0.0

    def report(self, fraction: float, status: Optional[str] = None) -> None:
        fraction = min(max(fraction, 0.0), 1.0)
        if fraction < self.value:
            fraction = self.value
        self.value = fraction
        if status:
            logger.debug("Progress %.0f%%: %s", fraction * 100, status)
        if self.callback is not None:
            self.callback(fraction, status)

    def captured(self, count: int) -> None:
        """Rough estimate while the page is still loading resources."""
        share = min(count / CAPTURE_ESTIMATE, 1.0)
        self.report(CAPTURE_START + share * (CAPTURE_END - CAPTURE_START))

    def harvested(self, done: int, total: int) -> None:
        share = done / total if total else 1.0
        self.report(
            CAPTURE_END + share * (HARVEST_END - CAPTURE_END),
            f"Downloaded external asset {done}/{total}",
        )
