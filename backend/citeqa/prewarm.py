"""
Build (or confirm) the external index for every document in the books directory.

    python -m citeqa.prewarm --books-dir books --cache .vector_cache.json
"""
from __future__ import annotations
import argparse
import asyncio
import logging
import sys

from citeqa.config import settings
from citeqa.container import build_container
from citeqa.core.errors import ConfigurationError, ServiceError

logger = logging.getLogger("citeqa.prewarm")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Prewarm document indexes")
    parser.add_argument("--books-dir", default=settings.books_dir)
    parser.add_argument("--cache", default=settings.index_cache_path)
    parser.add_argument("--timeout", type=float, default=settings.index_build_timeout,
                        help="seconds to wait for each index to finish")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> dict:
    cfg = settings.model_copy(update={
        "books_dir": args.books_dir,
        "index_cache_path": args.cache,
        "index_build_timeout": args.timeout,
    })
    container = build_container(cfg)
    try:
        return await container.indexing_service.prewarm()
    finally:
        await container.service.aclose()


def main(argv=None) -> int:
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        level=logging.INFO,
    )
    args = parse_args(argv)
    try:
        summary = asyncio.run(_run(args))
    except (ConfigurationError, ServiceError) as e:
        logger.error(f"Prewarm failed: {e}")
        return 1
    logger.info(f"All done. Cache saved at {args.cache} ({summary['indexed']} built, {summary['skipped']} reused)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
