#!/usr/bin/env python3
"""
worker.py — Standalone host for the score and nudge loops.

Use it when the API runs with WORKFLOWS_ENABLED=false (for example when
several API replicas sit behind a load balancer). Exactly one process per
deployment may host the loops.

Usage:
    python -m autonomy.worker
    python -m autonomy.worker --concurrency 64
    python -m autonomy.worker --skip-bootstrap   # only serve loops started later

Unlike the API, the worker refuses to start without MongoDB.
"""

import argparse
import asyncio
import logging
import signal
import sys

from autonomy.core.config import settings
from autonomy.core.database import close_mongo_connection, connect_to_mongo, db_client
from autonomy.core.errors import FatalError
from autonomy.core.i18n import load_bundle
from autonomy.core.log_config import configure_logging
from autonomy.core.reporting import init_error_reporter
from autonomy.services.state_store import StateStore
from autonomy.workflows.registry import build_runtime
from autonomy.workflows.triggers import bootstrap_loops

logger = logging.getLogger("autonomy.worker")


async def run(concurrency: int | None = None, bootstrap: bool = True) -> None:
    settings.validate_required()
    init_error_reporter()

    await connect_to_mongo()
    if db_client.db is None:
        raise FatalError("MongoDB unavailable — worker cannot host loops")

    load_bundle(settings.i18n_dir)
    runtime = build_runtime(db_client.db, concurrency=concurrency)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        if bootstrap:
            await bootstrap_loops(runtime, StateStore(db_client.db))
        logger.info("Worker running (env: %s) — Ctrl-C to stop", settings.environment)
        await stop.wait()
    finally:
        logger.info("Worker shutting down")
        await runtime.shutdown()
        await close_mongo_connection()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Host the Autonomy score and nudge loops")
    parser.add_argument(
        "--concurrency", type=int, default=None,
        help="Max concurrently running activities (default: ACTIVITY_CONCURRENCY)",
    )
    parser.add_argument(
        "--skip-bootstrap", action="store_true",
        help="Do not (re)start the loops of stored profiles and POIs",
    )
    args = parser.parse_args(argv)

    configure_logging()
    try:
        asyncio.run(run(args.concurrency, bootstrap=not args.skip_bootstrap))
    except FatalError as exc:
        logger.error("Worker failed to start: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
