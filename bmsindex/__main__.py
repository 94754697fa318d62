"""
bmsindex - Entry Point

Run with: python -m bmsindex
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from bmsindex import __version__
from bmsindex.config import ConfigError, IndexerConfig, load_config
from bmsindex.core.index_db import IndexDb
from bmsindex.core.indexer import ChartIndexer, IndexResult

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="bmsindex",
        description="Index BMS chart folders into a SQLite database",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("bmsindex.toml"),
        help="Config file, .toml or .json (default: bmsindex.toml)",
    )

    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database path (overrides the config file)",
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of parse workers (overrides the config file)",
    )

    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Patterns per upsert transaction (overrides the config file)",
    )

    parser.add_argument(
        "--max-errors",
        type=int,
        default=None,
        help="Abort once more charts than this have failed",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> IndexerConfig:
    """Load the config file and apply command line overrides."""
    config = load_config(args.config)
    if args.db is not None:
        config.database = args.db
    if args.workers is not None:
        config.max_workers = args.workers
    if args.batch_size is not None:
        config.batch_size = args.batch_size
    if args.max_errors is not None:
        config.max_errors = args.max_errors
    config.validate()
    return config


async def run_index(config: IndexerConfig) -> IndexResult:
    """Open the index, run one full scan and close it again."""
    async with IndexDb(config.database) as db:
        indexer = ChartIndexer(
            db=db,
            scan_config=config.scan_config(),
            batch_size=config.batch_size,
            max_errors=config.max_errors,
        )
        await indexer.initialize()
        return await indexer.run()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    logger.info("Indexing into %s", config.database)

    try:
        result = asyncio.run(run_index(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    if result.failed:
        logger.warning("%d charts could not be indexed", result.failed)
    print("done")
    return 0


if __name__ == "__main__":
    sys.exit(main())
