"""Retry queues on arq that drive channel dispatch with exponential backoff.

Each logical queue (``email``, ``push``, ``sms``) is an arq queue in Redis with
its own worker. A job only carries a notification id plus the claim token
written on that row, so the notification table stays the source of truth: a
job lost with Redis is picked up again by the periodic sweep once its claim
goes stale.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any
from uuid import uuid4

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.constants import in_progress_key_prefix, job_key_prefix, retry_key_prefix
from arq.jobs import Job, JobDef, JobResult
from arq.utils import timestamp_ms
from arq.worker import Worker, func

from notification_engine.application.use_cases.notifications.validators import (
    ensure_transition,
)
from notification_engine.config import Settings
from notification_engine.domain.entities import (
    Notification,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    QueueJob,
    QueueJobState,
)
from notification_engine.domain.exceptions import (
    ExhaustedRetriesError,
    NotFoundError,
    TransportError,
    UnsupportedChannelError,
)
from notification_engine.infrastructure.database import SessionFactory
from notification_engine.infrastructure.repositories import NotificationRepository
from notification_engine.utils import ensure_app_timezone, now_in_app_timezone

from .dispatcher import ChannelDispatcher

logger = logging.getLogger(__name__)

DELIVER_JOB = "deliver_notification"

QUEUE_FOR_CHANNEL = {
    NotificationChannel.EMAIL: "email",
    NotificationChannel.PUSH: "push",
    NotificationChannel.SMS: "sms",
}
CHANNEL_FOR_QUEUE = {name: channel for channel, name in QUEUE_FOR_CHANNEL.items()}

# Immediate jobs are scored this much earlier per priority rank above LOW.
PRIORITY_HEADSTART = timedelta(minutes=1)


@dataclass
class QueueCounts:
    waiting: int
    delayed: int
    active: int
    completed: int
    failed: int
    paused: bool


def backoff_delay(base_seconds: float, multiplier: float, attempt: int) -> float:
    """Return the delay before retry number ``attempt`` (1-based)."""

    return base_seconds * multiplier ** max(0, attempt - 1)


def job_id_for(priority: NotificationPriority) -> str:
    """Build an arq job id that sorts urgent jobs first among equal scores."""

    return f"{priority.rank}-{uuid4().hex}"


class RetryQueue:
    """One logical queue: its Redis key, backoff policy and worker task."""

    def __init__(
        self,
        name: str,
        *,
        prefix: str,
        base_delay: float,
        multiplier: float,
    ) -> None:
        self.name = name
        self.redis_queue = f"{prefix}:{name}"
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.paused = False
        self._worker: Worker | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def delay_for(self, attempt: int) -> float:
        return backoff_delay(self.base_delay, self.multiplier, attempt)

    def start_worker(self, worker: Worker) -> None:
        self._worker = worker
        self._task = asyncio.get_running_loop().create_task(
            worker.main(), name=f"notification-queue-{self.name}"
        )

    async def stop_worker(self) -> None:
        """Stop polling for new jobs and wait for the ones already running."""

        task, worker = self._task, self._worker
        self._task = self._worker = None
        if task is None or worker is None:
            return
        task.cancel()
        [outcome] = await asyncio.gather(task, return_exceptions=True)
        if isinstance(outcome, Exception):
            logger.error("Worker of queue %s had stopped: %r", self.name, outcome)
        if worker.tasks:
            await asyncio.gather(*worker.tasks.values(), return_exceptions=True)


class RetryQueueEngine:
    """Claim notifications, queue them per channel and run delivery attempts."""

    def __init__(
        self,
        session_factory: SessionFactory,
        dispatcher: ChannelDispatcher,
        *,
        redis: ArqRedis | None = None,
        redis_url: str = "redis://localhost:6379/0",
        queue_prefix: str = "notifications",
        workers: int = 2,
        email_backoff_seconds: float = 1.0,
        push_backoff_seconds: float = 2.0,
        backoff_multiplier: float = 2.0,
        recent_jobs_limit: int = 10,
        lock_timeout_seconds: int = 300,
        poll_delay_seconds: float = 0.5,
        result_ttl_seconds: int = 3600,
    ) -> None:
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._redis = redis
        self._owns_redis = redis is None
        self._redis_url = redis_url
        self._worker_count = workers
        self._recent_limit = recent_jobs_limit
        self._started = False
        self.lock_timeout = timedelta(seconds=lock_timeout_seconds)
        self.poll_delay = poll_delay_seconds
        self.result_ttl = result_ttl_seconds
        self.queues: dict[str, RetryQueue] = {
            name: RetryQueue(
                name,
                prefix=queue_prefix,
                base_delay=push_backoff_seconds if name == "push" else email_backoff_seconds,
                multiplier=backoff_multiplier,
            )
            for name in ("email", "push", "sms")
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: SessionFactory,
        dispatcher: ChannelDispatcher,
        *,
        redis: ArqRedis | None = None,
    ) -> "RetryQueueEngine":
        return cls(
            session_factory,
            dispatcher,
            redis=redis,
            redis_url=settings.redis_url,
            queue_prefix=settings.queue_name_prefix,
            workers=settings.queue_workers,
            email_backoff_seconds=settings.queue_email_backoff_seconds,
            push_backoff_seconds=settings.queue_push_backoff_seconds,
            backoff_multiplier=settings.queue_backoff_multiplier,
            recent_jobs_limit=settings.queue_recent_jobs_limit,
            lock_timeout_seconds=settings.queue_lock_timeout_seconds,
            poll_delay_seconds=settings.queue_poll_delay_seconds,
            result_ttl_seconds=settings.queue_result_ttl_seconds,
        )

    @property
    def running(self) -> bool:
        return self._started

    async def get_redis(self) -> ArqRedis:
        if self._redis is None:
            self._redis = await create_pool(RedisSettings.from_dsn(self._redis_url))
        return self._redis

    async def start(self) -> None:
        if self._started:
            logger.warning("Retry queue workers already running")
            return
        self._started = True
        for queue in self.queues.values():
            if not queue.paused:
                await self._start_worker(queue)
        logger.info(
            "Started retry queue workers with %s concurrent jobs each (%s)",
            self._worker_count,
            ", ".join(self.queues),
        )

    async def stop(self) -> None:
        self._started = False
        await asyncio.gather(*(queue.stop_worker() for queue in self.queues.values()))
        if self._owns_redis and self._redis is not None:
            await self._redis.close(close_connection_pool=True)
            self._redis = None
        logger.info("Retry queue workers stopped")

    async def _start_worker(self, queue: RetryQueue) -> None:
        worker = Worker(
            functions=[func(self._run_job, name=DELIVER_JOB)],
            queue_name=queue.redis_queue,
            redis_pool=await self.get_redis(),
            handle_signals=False,
            max_jobs=self._worker_count,
            poll_delay=self.poll_delay,
            keep_result=self.result_ttl,
        )
        queue.start_worker(worker)

    def get_queue(self, name: str) -> RetryQueue:
        try:
            return self.queues[name]
        except KeyError as exc:
            raise NotFoundError(f"Queue '{name}' does not exist") from exc

    @staticmethod
    def queue_name_for(channel: NotificationChannel) -> str:
        try:
            return QUEUE_FOR_CHANNEL[NotificationChannel(channel)]
        except KeyError as exc:
            raise ValueError(f"Channel {channel} is not delivered through a queue") from exc

    async def enqueue(self, notification: Notification) -> QueueJob | None:
        jobs = await self.enqueue_bulk([notification])
        return jobs[0] if jobs else None

    async def enqueue_bulk(self, notifications: Iterable[Notification]) -> list[QueueJob]:
        """Claim and submit every notification as a single batch.

        Rows already claimed by another live job are skipped. If any job of the
        batch cannot be submitted, the submitted ones are withdrawn, the claim
        is released and the error propagates.
        """

        pending = [n for n in notifications if n.id is not None]
        if not pending:
            return []
        token = str(uuid4())
        now = now_in_app_timezone()
        async with self._session_factory() as session:
            claimed = set(
                await NotificationRepository(session).claim(
                    [n.id for n in pending],
                    token=token,
                    now=now,
                    stale_before=now - self.lock_timeout,
                )
            )

        submitted: list[QueueJob] = []
        try:
            jobs = [
                QueueJob(
                    id=job_id_for(NotificationPriority(notification.priority)),
                    notification_id=notification.id,
                    channel=NotificationChannel(notification.channel),
                    queue_name=self.queue_name_for(notification.channel),
                    lock_token=token,
                    priority=NotificationPriority(notification.priority),
                    attempt=notification.retry_count,
                    max_attempts=notification.max_retries,
                    created_at=now,
                )
                for notification in pending
                if notification.id in claimed
            ]
            for job in sorted(jobs, key=lambda job: job.priority.rank):
                await self._submit(job)
                submitted.append(job)
        except Exception:
            async with self._session_factory() as session:
                await NotificationRepository(session).release(list(claimed), token=token)
            await self._discard(submitted)
            raise

        if submitted:
            logger.debug("Enqueued %s notification jobs", len(submitted))
        return submitted

    async def _submit(self, job: QueueJob, *, defer_seconds: float | None = None) -> None:
        redis = await self.get_redis()
        schedule: dict[str, Any]
        if defer_seconds:
            schedule = {"_defer_by": timedelta(seconds=defer_seconds)}
        else:
            headstart = NotificationPriority.LOW.rank - job.priority.rank
            schedule = {"_defer_until": now_in_app_timezone() - PRIORITY_HEADSTART * headstart}
        await redis.enqueue_job(
            DELIVER_JOB,
            job.queue_name,
            job.notification_id,
            job.lock_token,
            job.priority.value,
            job.attempt,
            _job_id=job.id,
            _queue_name=self.queues[job.queue_name].redis_queue,
            **schedule,
        )

    async def _discard(self, jobs: Sequence[QueueJob]) -> None:
        if not jobs:
            return
        redis = await self.get_redis()
        async with redis.pipeline(transaction=True) as pipe:
            for job in jobs:
                pipe.delete(job_key_prefix + job.id, retry_key_prefix + job.id)
                pipe.zrem(self.queues[job.queue_name].redis_queue, job.id)
            await pipe.execute()

    async def pause(self, name: str) -> None:
        """Stop taking jobs from ``name``; running attempts finish, queued ones wait."""

        queue = self.get_queue(name)
        queue.paused = True
        await queue.stop_worker()
        logger.info("Queue %s paused", name)

    async def resume(self, name: str) -> None:
        queue = self.get_queue(name)
        queue.paused = False
        if self._started and not queue.running:
            await self._start_worker(queue)
        logger.info("Queue %s resumed", name)

    async def clear(self, name: str) -> int:
        """Drop waiting and delayed jobs, releasing their claims for the next sweep."""

        queue = self.get_queue(name)
        removed = await self.pending_jobs(name)
        await self._discard(removed)
        by_token: dict[str, list[str]] = {}
        for job in removed:
            by_token.setdefault(job.lock_token, []).append(job.notification_id)
        async with self._session_factory() as session:
            repository = NotificationRepository(session)
            for token, notification_ids in by_token.items():
                await repository.release(notification_ids, token=token)
        logger.info("Cleared %s jobs from queue %s", len(removed), queue.name)
        return len(removed)

    async def pending_jobs(self, name: str) -> list[QueueJob]:
        """Return the jobs of ``name`` that are queued but not running, in pick-up order."""

        queue = self.get_queue(name)
        redis = await self.get_redis()
        now_ms = timestamp_ms()
        jobs: list[QueueJob] = []
        for member, score in await redis.zrange(queue.redis_queue, 0, -1, withscores=True):
            job_id = member.decode() if isinstance(member, bytes) else member
            if await redis.exists(in_progress_key_prefix + job_id):
                continue
            info = await Job(job_id, redis, _queue_name=queue.redis_queue).info()
            if info is None:
                continue
            state = QueueJobState.DELAYED if score > now_ms else QueueJobState.WAITING
            jobs.append(self._job_from_arq(job_id, queue, info, state))
        return jobs

    async def counts(self) -> dict[str, QueueCounts]:
        return {name: await self.queue_counts(name) for name in self.queues}

    async def queue_counts(self, name: str) -> QueueCounts:
        queue = self.get_queue(name)
        redis = await self.get_redis()
        now_ms = timestamp_ms()
        waiting = delayed = active = 0
        for member, score in await redis.zrange(queue.redis_queue, 0, -1, withscores=True):
            job_id = member.decode() if isinstance(member, bytes) else member
            if await redis.exists(in_progress_key_prefix + job_id):
                active += 1
            elif score > now_ms:
                delayed += 1
            else:
                waiting += 1
        states = [_result_state(result) for result in await self._results(queue)]
        return QueueCounts(
            waiting=waiting,
            delayed=delayed,
            active=active,
            completed=states.count(QueueJobState.COMPLETED),
            failed=states.count(QueueJobState.FAILED),
            paused=queue.paused,
        )

    async def recent_jobs(self, name: str) -> list[QueueJob]:
        """Return the most recently finished attempts of ``name``, newest first."""

        queue = self.get_queue(name)
        results = sorted(
            await self._results(queue), key=lambda result: result.finish_time, reverse=True
        )
        jobs = []
        for result in results[: self._recent_limit]:
            job = self._job_from_arq(result.job_id, queue, result, _result_state(result))
            if isinstance(result.result, dict):
                job.attempt = result.result.get("attempt", job.attempt)
                job.error = result.result.get("error")
                job.next_delay_seconds = result.result.get("next_delay_seconds")
                job.max_attempts = result.result.get("max_attempts", job.max_attempts)
            elif not result.success:
                job.error = repr(result.result)
            job.finished_at = ensure_app_timezone(result.finish_time)
            jobs.append(job)
        return jobs

    async def _results(self, queue: RetryQueue) -> list[JobResult]:
        redis = await self.get_redis()
        return [
            result
            for result in await redis.all_job_results()
            if result.queue_name == queue.redis_queue and result.function == DELIVER_JOB
        ]

    @staticmethod
    def _job_from_arq(
        job_id: str, queue: RetryQueue, info: JobDef, state: QueueJobState
    ) -> QueueJob:
        _, notification_id, lock_token, priority, attempt = info.args
        return QueueJob(
            id=job_id,
            notification_id=notification_id,
            channel=CHANNEL_FOR_QUEUE[queue.name],
            queue_name=queue.name,
            lock_token=lock_token,
            priority=NotificationPriority(priority),
            attempt=attempt,
            state=state,
            created_at=ensure_app_timezone(info.enqueue_time),
        )

    async def wait_idle(self) -> None:
        """Wait until no queue holds waiting, delayed or running jobs."""

        redis = await self.get_redis()
        while True:
            sizes = [await redis.zcard(queue.redis_queue) for queue in self.queues.values()]
            if not any(sizes):
                return
            await asyncio.sleep(self.poll_delay)

    async def _run_job(
        self,
        ctx: dict[str, Any],
        queue_name: str,
        notification_id: str,
        lock_token: str,
        priority: str,
        attempt: int,
    ) -> dict[str, Any]:
        job = QueueJob(
            id=ctx["job_id"],
            notification_id=notification_id,
            channel=CHANNEL_FOR_QUEUE[queue_name],
            queue_name=queue_name,
            lock_token=lock_token,
            priority=NotificationPriority(priority),
            attempt=attempt,
            state=QueueJobState.ACTIVE,
        )
        state = await self.process(job, self.queues[queue_name])
        return {
            "state": state.value,
            "attempt": job.attempt,
            "error": job.error,
            "next_delay_seconds": job.next_delay_seconds,
            "max_attempts": job.max_attempts,
        }

    async def process(self, job: QueueJob, queue: RetryQueue) -> QueueJobState:
        """Run one delivery attempt for ``job`` and return its resulting state."""

        async with self._session_factory() as session:
            notification = await NotificationRepository(session).get(job.notification_id)
        if notification is None:
            logger.info("Notification %s was deleted; dropping job %s", job.notification_id, job.id)
            return QueueJobState.DROPPED
        if (
            notification.lock_token != job.lock_token
            or notification.status is not NotificationStatus.PENDING
        ):
            logger.info("Job %s no longer owns notification %s", job.id, notification.id)
            return QueueJobState.DROPPED

        job.attempt += 1
        job.max_attempts = notification.max_retries
        try:
            await self._dispatcher.dispatch(notification)
        except UnsupportedChannelError as exc:
            await self._record_failure(notification, job, str(exc), exhaust=True)
            return QueueJobState.FAILED
        except TransportError as exc:
            delay = queue.delay_for(notification.retry_count + 1)
            if await self._record_failure(notification, job, str(exc), delay=delay):
                return QueueJobState.FAILED
            logger.warning(
                "Delivery of %s failed (attempt %s/%s): %s; retrying in %.2fs",
                notification.id,
                notification.retry_count,
                notification.max_retries,
                exc,
                delay,
            )
            job.next_delay_seconds = delay
            await self._submit(
                replace(job, id=job_id_for(job.priority), error=None), defer_seconds=delay
            )
            return QueueJobState.DELAYED
        except NotFoundError:
            logger.info("Notification %s vanished during dispatch", job.notification_id)
            return QueueJobState.DROPPED
        return QueueJobState.COMPLETED

    async def _record_failure(
        self,
        notification: Notification,
        job: QueueJob,
        error: str,
        *,
        delay: float = 0.0,
        exhaust: bool = False,
    ) -> bool:
        """Persist a failed attempt and return ``True`` when the notification is now FAILED.

        A retried row keeps its claim; ``locked_at`` moves to the time the retry
        is due so the stale-claim timeout counts from there.
        """

        now = now_in_app_timezone()
        notification.retry_count = (
            notification.max_retries
            if exhaust
            else min(notification.retry_count + 1, notification.max_retries)
        )
        notification.error_message = error
        job.error = error
        exhausted = notification.retries_exhausted()
        if exhausted:
            ensure_transition(notification.status, NotificationStatus.FAILED)
            notification.status = NotificationStatus.FAILED
            notification.lock_token = None
            notification.locked_at = None
        else:
            notification.locked_at = now + timedelta(seconds=delay)
        async with self._session_factory() as session:
            saved = await NotificationRepository(session).update(notification)
        if exhausted:
            logger.error(
                "%s", ExhaustedRetriesError(saved.id or "", saved.retry_count, error)
            )
            await self._dispatcher.notify_terminal_failure(saved)
        return exhausted


def _result_state(result: JobResult) -> QueueJobState:
    if not result.success or not isinstance(result.result, dict):
        return QueueJobState.FAILED
    return QueueJobState(result.result["state"])


__all__ = [
    "CHANNEL_FOR_QUEUE",
    "DELIVER_JOB",
    "QUEUE_FOR_CHANNEL",
    "QueueCounts",
    "RetryQueue",
    "RetryQueueEngine",
    "backoff_delay",
    "job_id_for",
]
