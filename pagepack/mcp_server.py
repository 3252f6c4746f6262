"""MCP server exposing the pagepack clone tool."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .cloner import clone_page
from .config import CloneConfig

logger = logging.getLogger("pagepack.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="pagepack")

DEFAULT_OUTPUT_DIR = Path("output")


@mcp.tool()
async def clone(
    url: str,
    output_dir: Optional[str] = None,
) -> str:
    """Render a web page with Playwright and save it as an offline zip archive."""

    output_root = Path(output_dir).expanduser() if output_dir else DEFAULT_OUTPUT_DIR
    config = CloneConfig(output_root=output_root.resolve())
    result = await clone_page(url, config)

    lines = [
        f"Archive: {result.archive_path}",
        f"Files: {result.file_count}",
        f"Elapsed: {result.total_seconds:.2f}s",
    ]
    if result.warnings:
        lines.append(f"Warnings ({len(result.warnings)}):")
        lines.extend(f"- {warning.kind}: {warning.message}" for warning in result.warnings)
    return "\n".join(lines)


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
