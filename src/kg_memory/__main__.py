"""
MCP server for knowledge graph memory.
"""

import argparse
import asyncio
import sys
from .context import ctx
from .kg_logging import logger
from .server import start_server
from .version import KG_MEMORY_VERSION


def main():
    # Parse version flag early, before any initialization
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("-v", "--version", action="store_true")
    args, _ = parser.parse_known_args()

    if args.version:
        print(KG_MEMORY_VERSION)
        sys.exit(0)

    try:
        # Initialize context first to get settings and logger
        ctx.init()
        logger.info(f"🔍 Storage backend: {ctx.settings.backend}")
        if ctx.settings.backend == "jsonl":
            logger.info(f"🔍 Memory path: {ctx.settings.memory_path}")
        logger.debug("🚀 Starting kg-memory server...")
        asyncio.run(start_server())
    except KeyboardInterrupt:
        logger.info("👋 Received KeyboardInterrupt, shutting down gracefully...")
        sys.exit(0)
    except Exception as e:
        error = f"⛔ kg-memory encountered an uncaught exception: {e}"
        logger.error(error)
        raise RuntimeError(error) from e


if __name__ == "__main__":
    main()
