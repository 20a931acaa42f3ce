"""
FCFS booking queue: strict arrival order under burst load.

Without the queue, concurrent bookers of one slot are ordered by whoever wins
the row lock, which need not match the order requests arrived in. With it:

  caller ──RPUSH job──▶ [ queue:booking ] ──BLMOVE──▶ [ queue:booking:processing ] ──▶ one worker
     ▲                                                                                  │
     └──BLPOP queue:booking:result:{job_id} ◀──RPUSH result + LREM processing───────────┘

  - Every booking attempt becomes one job tagged with its submission time.
  - Exactly one worker drains the list in FIFO order and runs the admission
    transaction for job N to commit or failure before it takes job N+1, so no
    two admission transactions ever overlap in this mode.
  - A taken job stays on the processing list until its result is published.
    If the worker dies in between, the next worker start moves it back to the
    head of the queue and runs it again (at-least-once).
  - The caller blocks on its own result key, so it still sees a normal
    synchronous call. The wait is bounded (BOOKING_QUEUE_TIMEOUT_SECONDS);
    when it elapses the caller gets BookingTimeout, but the job is not
    cancelled: it still runs, and its result expires unread.

Blocking pops are issued in short slices (BOOKING_QUEUE_POLL_SECONDS) so they
never outlive the Redis socket timeout and the worker notices stop() quickly.
"""

import asyncio
import time
import uuid
from typing import Callable, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import async_sessionmaker

from slotbook.core.config import get_settings
from slotbook.core.errors import AdmissionError, BookingTimeout, Internal
from slotbook.core.logging import get_logger
from slotbook.core.metrics import (
    queue_timeouts,
    queue_wait_latency,
    record_queue_job,
    redis_connection_errors,
    worker_running,
)
from slotbook.db.session import get_session_factory
from slotbook.infrastructure.redis_client import get_redis
from slotbook.schemas.booking import BookingJob, BookingJobResult, BookingResponse, Rejection
from slotbook.services import booking_service

logger = get_logger(__name__)


class BookingQueue:
    """Producer/consumer access to one named booking queue."""

    def __init__(
        self,
        name: Optional[str] = None,
        client_getter: Callable[[], redis.Redis] = get_redis,
        result_ttl: Optional[int] = None,
        poll_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self.name = name or settings.BOOKING_QUEUE_NAME
        self.result_ttl = result_ttl or settings.BOOKING_RESULT_TTL_SECONDS
        self.poll_seconds = max(1, poll_seconds or settings.BOOKING_QUEUE_POLL_SECONDS)
        self._client_getter = client_getter

    @property
    def client(self) -> redis.Redis:
        return self._client_getter()

    @property
    def processing_key(self) -> str:
        return f"{self.name}:processing"

    def result_key(self, job_id: str) -> str:
        return f"{self.name}:result:{job_id}"

    async def enqueue(self, caller_id: int, slot_id: int) -> BookingJob:
        job = BookingJob(
            job_id=uuid.uuid4().hex,
            caller_id=caller_id,
            slot_id=slot_id,
            submitted_at_epoch_millis=int(time.time() * 1000),
        )
        await self.client.rpush(self.name, job.model_dump_json())
        logger.info("booking_job_enqueued", job_id=job.job_id, caller_id=caller_id, slot_id=slot_id)
        return job

    async def wait_for_result(self, job: BookingJob, timeout: Optional[float] = None) -> BookingJobResult:
        """Block until the job's result arrives or the timeout elapses."""
        if timeout is None:
            timeout = get_settings().BOOKING_QUEUE_TIMEOUT_SECONDS
        started = time.perf_counter()
        deadline = started + timeout
        key = self.result_key(job.job_id)

        while True:
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                queue_timeouts.inc()
                logger.warning("booking_job_wait_timeout", job_id=job.job_id, timeout=timeout)
                raise BookingTimeout(
                    f"Booking request was not processed within {timeout:g} seconds"
                )
            # Redis reads a zero timeout as "block forever"
            slice_seconds = max(0.01, min(self.poll_seconds, remaining))
            item = await self.client.blpop([key], timeout=slice_seconds)
            if item:
                _, raw = item
                queue_wait_latency.observe(time.perf_counter() - started)
                return BookingJobResult.model_validate_json(raw)

    async def submit(self, caller_id: int, slot_id: int, timeout: Optional[float] = None) -> BookingResponse:
        """Enqueue a booking attempt and wait for its outcome like a direct call."""
        job = await self.enqueue(caller_id, slot_id)
        result = await self.wait_for_result(job, timeout)
        if result.success:
            return result.booking
        raise AdmissionError.from_payload(result.rejection.model_dump())

    async def next_job(self) -> Optional[Tuple[BookingJob, str]]:
        """
        Take the oldest job onto the processing list, waiting up to one poll
        slice. Returns the job and its raw payload, which publish_result()
        needs to acknowledge it. Malformed jobs are dropped.
        """
        raw = await self.client.blmove(
            self.name, self.processing_key, self.poll_seconds, src="LEFT", dest="RIGHT"
        )
        if raw is None:
            return None
        try:
            return BookingJob.model_validate_json(raw), raw
        except ValidationError as exc:
            await self.client.lrem(self.processing_key, 1, raw)
            record_queue_job("malformed")
            logger.error("booking_job_malformed", payload=raw[:200], error=str(exc))
            return None

    async def publish_result(self, result: BookingJobResult, raw: str) -> None:
        """Deliver the result and drop the job from the processing list in one step."""
        key = self.result_key(result.job_id)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.rpush(key, result.model_dump_json())
            pipe.expire(key, self.result_ttl)
            pipe.lrem(self.processing_key, 1, raw)
            await pipe.execute()

    async def requeue_unfinished(self) -> int:
        """Move jobs left on the processing list back to the head of the queue, in order."""
        moved = 0
        while await self.client.lmove(self.processing_key, self.name, src="RIGHT", dest="LEFT") is not None:
            moved += 1
        return moved

    async def depth(self) -> int:
        return int(await self.client.llen(self.name))


class BookingWorker:
    """
    The single consumer of a booking queue.

    Run exactly one per queue, either inside the API process
    (RUN_BOOKING_WORKER=true) or standalone with `python -m slotbook.worker`.
    """

    def __init__(
        self,
        queue: Optional[BookingQueue] = None,
        session_factory_getter: Callable[[], async_sessionmaker] = get_session_factory,
    ):
        self.queue = queue or BookingQueue()
        self._session_factory_getter = session_factory_getter
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def process(self, job: BookingJob) -> BookingJobResult:
        """Run the admission transaction for one job and capture its outcome."""
        try:
            booking = await booking_service.book(
                self._session_factory_getter(), job.caller_id, job.slot_id
            )
        except AdmissionError as exc:
            record_queue_job("rejected")
            return BookingJobResult(
                job_id=job.job_id,
                success=False,
                rejection=Rejection(**exc.to_payload()),
            )
        except Exception:
            # One bad job must not stop the queue; the caller gets INTERNAL_ERROR
            logger.exception("booking_job_failed", job_id=job.job_id, slot_id=job.slot_id)
            record_queue_job("rejected")
            return BookingJobResult(
                job_id=job.job_id,
                success=False,
                rejection=Rejection(**Internal("An unexpected error occurred").to_payload()),
            )

        record_queue_job("success")
        return BookingJobResult(
            job_id=job.job_id,
            success=True,
            booking=BookingResponse.model_validate(booking),
        )

    async def run_once(self) -> Optional[BookingJobResult]:
        claimed = await self.queue.next_job()
        if claimed is None:
            return None
        job, raw = claimed
        result = await self.process(job)
        await self.queue.publish_result(result, raw)
        logger.info(
            "booking_job_processed",
            job_id=job.job_id,
            slot_id=job.slot_id,
            caller_id=job.caller_id,
            success=result.success,
            queued_ms=int(time.time() * 1000) - job.submitted_at_epoch_millis,
        )
        return result

    async def run(self) -> None:
        self._stopping.clear()
        worker_running.set(1)
        logger.info("booking_worker_started", queue=self.queue.name)
        recovering = True
        try:
            while not self._stopping.is_set():
                try:
                    if recovering:
                        recovered = await self.queue.requeue_unfinished()
                        recovering = False
                        if recovered:
                            logger.warning("booking_jobs_requeued", queue=self.queue.name, count=recovered)
                    await self.run_once()
                except (RedisError, OSError) as exc:
                    redis_connection_errors.inc()
                    logger.error("booking_worker_redis_error", error=str(exc))
                    await asyncio.sleep(self.queue.poll_seconds)
        finally:
            worker_running.set(0)
            logger.info("booking_worker_stopped", queue=self.queue.name)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="booking-worker")
        return self._task

    async def stop(self, grace_seconds: Optional[float] = None) -> None:
        """Let the in-flight job finish, then stop polling."""
        self._stopping.set()
        if self._task is None:
            return
        grace = grace_seconds if grace_seconds is not None else self.queue.poll_seconds + 5
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=grace)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
