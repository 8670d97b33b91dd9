#!/usr/bin/env python3
"""
PDF Workbench MCP Server
Annotate, replace text in, sign, rotate, merge and split PDFs held in an
in-memory workspace with undo/redo, then bake the edits into new files.
"""

import asyncio
import logging

from pdf_workbench.core import paths
from pdf_workbench.tools.mcp_tools import mcp

# --- Basic Configuration ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("PDFWorkbench")


# --- Main Server Execution ---
async def main():
    """
    Configures directories and limits from the command line, then serves the tools over stdio.
    """
    args = paths.parse_arguments()

    logging.getLogger().setLevel(getattr(logging, args.log_level))

    paths.setup_search_directories(args)

    logger.info("Starting PDF Workbench MCP Server...")
    logger.info(f"Accessible directories: {paths.SEARCH_DIRECTORIES}")
    logger.info(f"Maximum file size: {paths.MAX_FILE_SIZE // (1024 * 1024)} MB")
    logger.info(f"History limit: {paths.HISTORY_LIMIT}")

    await mcp.run_stdio_async()


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
