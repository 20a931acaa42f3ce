"""
Standalone FCFS booking worker.

    python -m slotbook.worker

Drains the booking queue with exactly one consumer. Start one process per
queue; a second consumer would break the arrival-order guarantee.
"""

import asyncio
import signal

from slotbook.core.config import get_settings
from slotbook.core.logging import setup_logging, get_logger
from slotbook.db.session import dispose_engine
from slotbook.infrastructure.redis_client import close_redis
from slotbook.services.booking_queue import BookingWorker


async def main() -> None:
    setup_logging()
    logger = get_logger(__name__)
    settings = get_settings()

    worker = BookingWorker()
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("booking_worker_process_starting", queue=settings.BOOKING_QUEUE_NAME)
    task = worker.start()
    waiter = asyncio.create_task(stop.wait())
    await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)

    waiter.cancel()
    await worker.stop()
    await close_redis()
    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
