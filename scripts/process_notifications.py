#!/usr/bin/env python3
"""CLI script to drive the notification queue outside the API process.

Usage:
    python scripts/process_notifications.py process
    python scripts/process_notifications.py retry --include-exhausted
    python scripts/process_notifications.py sweep
    python scripts/process_notifications.py status
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from restock_service.infrastructure.database.connection import dispose_engine
from restock_service.infrastructure.observability import configure_logging
from restock_service.services.pipeline import build_pipeline

logger = structlog.get_logger()


async def main(args: argparse.Namespace) -> int:
    pipeline = build_pipeline()
    identity = pipeline.worker_identity

    try:
        if args.command == "status":
            summary = await pipeline.queue_status()
            logger.info("Queue status", **summary.model_dump())
            return 0

        if args.command == "sweep":
            await pipeline.interest_cache.initialize()
            results = await pipeline.restock.sweep_restocked_products()
            logger.info(
                "Sweep completed",
                products=len(results),
                queued=sum(r.queued for r in results),
            )
            return 0

        if args.command == "retry":
            result = await pipeline.retry_failed(
                identity, include_exhausted=args.include_exhausted
            )
        else:
            result = await pipeline.process_now(identity)

        logger.info("Processing completed", **result.model_dump())
        return 0 if result.retryable else 1
    finally:
        await pipeline.stop()
        await dispose_engine()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("command", choices=["process", "retry", "sweep", "status"])
    parser.add_argument(
        "--include-exhausted",
        action="store_true",
        help="With retry: also re-arm items that used every attempt",
    )
    configure_logging()
    sys.exit(asyncio.run(main(parser.parse_args())))
