"""Expired reference ad upload purge worker entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import suppress

from adforge.core.database import close_db
from adforge.core.logging import setup_logging
from adforge.integrations.media_store import MediaStore
from adforge.services.pattern_library import PatternLibrary

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    """Parse worker runtime arguments."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Maximum expired uploads to delete in one iteration.",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=300.0,
        help="Seconds to wait when nothing has expired.",
    )
    return parser.parse_args()


async def run_worker(
    *,
    batch_size: int,
    poll_interval: float,
    library: PatternLibrary | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Run the purge loop until a shutdown signal."""
    setup_logging()
    logger.info(
        "Upload purge worker started",
        extra={"batch_size": batch_size, "poll_interval": poll_interval},
    )

    library = library or PatternLibrary(object_store=MediaStore())
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_stop() -> None:
        if not stop_event.is_set():
            logger.info("Upload purge worker received shutdown signal")
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_stop)

    try:
        while not stop_event.is_set():
            purged = await library.purge_expired_uploads(batch_size=max(1, int(batch_size)))
            if purged > 0:
                continue
            try:
                await asyncio.wait_for(
                    stop_event.wait(),
                    timeout=max(0.1, float(poll_interval)),
                )
            except asyncio.TimeoutError:
                continue
    finally:
        logger.info("Upload purge worker stopping")
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                loop.remove_signal_handler(sig)
        await close_db()


def main() -> int:
    """CLI entrypoint."""
    args = parse_args()
    try:
        asyncio.run(
            run_worker(
                batch_size=args.batch_size,
                poll_interval=args.poll_interval,
            )
        )
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
