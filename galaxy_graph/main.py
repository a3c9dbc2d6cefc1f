"""
Main entry point for the Galaxy Notes knowledge graph MCP server.

This module provides the main() function and server initialization.
"""

import asyncio

import structlog
from mcp.server.stdio import stdio_server

from .cache import store_cache
from .logging import configure_logging
from .similarity import similarity_index
from .tools import server

logger = structlog.get_logger(__name__)


def main():
    """Main entry point."""
    configure_logging()

    async def run():
        await similarity_index.initialize()
        await store_cache.refresh(force=True)
        logger.info("server_starting", store=str(store_cache.store_path))

        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

        # Let embedding writes started by tool calls finish
        await similarity_index.wait_for_pending()

    asyncio.run(run())


if __name__ == "__main__":
    main()
