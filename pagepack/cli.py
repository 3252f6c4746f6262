"""Command-line entry point for pagepack."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from .config import DEFAULT_USER_AGENT, CloneConfig
from .cloner import run_cloner

logger = logging.getLogger("pagepack.cli")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Render web pages with Playwright and save them as offline zip archives.",
    )
    parser.add_argument("urls", nargs="+", help="One or more URLs to clone")
    parser.add_argument(
        "--output",
        default="output",
        type=Path,
        help="Directory where archives should be written",
    )
    parser.add_argument(
        "--archive",
        type=Path,
        default=None,
        help="Explicit archive path (only valid with a single URL)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Navigation timeout in seconds",
    )
    parser.add_argument(
        "--settle",
        type=float,
        default=5.0,
        help="Seconds to wait after network idle for dynamic content",
    )
    parser.add_argument(
        "--post-scroll-wait",
        type=float,
        default=2.0,
        help="Seconds to wait after the lazy-load scroll pass",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=4,
        help="Parallel downloads for external assets",
    )
    parser.add_argument(
        "--user-agent",
        default=DEFAULT_USER_AGENT,
        help="User agent for the browser and external downloads",
    )
    parser.add_argument(
        "--no-scripts",
        action="store_true",
        help="Do not inject the offline runtime shims into the page",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window while capturing",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args(argv)
    if args.archive is not None and len(args.urls) > 1:
        parser.error("--archive can only be used with a single URL")
    return args


def _print_progress(fraction: float, status: Optional[str]) -> None:
    if status:
        logger.info("[%3d%%] %s", round(fraction * 100), status)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    config = CloneConfig(
        output_root=Path(args.output).resolve(),
        archive_path=args.archive.resolve() if args.archive else None,
        navigation_timeout=args.timeout,
        settle_delay=args.settle,
        post_scroll_wait=args.post_scroll_wait,
        harvest_workers=args.workers,
        user_agent=args.user_agent,
        inject_scripts=not args.no_scripts,
        headless=not args.headed,
    )

    overall_start = time.perf_counter()
    results = asyncio.run(run_cloner(args.urls, config, progress=_print_progress))
    total_elapsed = time.perf_counter() - overall_start

    successes = len(results)
    total_urls = len(args.urls)
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed)",
        total_elapsed,
        successes,
        total_urls,
        total_urls - successes,
    )

    if args.verbose:
        for result in results:
            logger.debug(
                "%s -> %s (%d files, %.2fs, %d warnings)",
                result.url,
                result.archive_path,
                result.file_count,
                result.total_seconds,
                len(result.warnings),
            )
            for warning in result.warnings:
                logger.debug("  %s: %s", warning.kind, warning.message)

    if successes < total_urls:
        sys.exit(1)


if __name__ == "__main__":
    main()
