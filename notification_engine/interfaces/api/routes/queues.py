"""Administrative endpoints to inspect and control the retry queues."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from notification_engine.domain.entities import User
from notification_engine.domain.exceptions import NotFoundError
from notification_engine.interfaces.api.dependencies import get_runtime, require_admin
from notification_engine.interfaces.api.routes_helpers import job_to_schema, to_http_error
from notification_engine.interfaces.api.schemas import (
    QueueClearResponse,
    QueueCountsRead,
    QueueJobRead,
)
from notification_engine.runtime import NotificationRuntime

router = APIRouter(prefix="/queues", tags=["queues"])


async def _counts(runtime: NotificationRuntime, name: str) -> QueueCountsRead:
    try:
        counts = await runtime.queue.queue_counts(name)
    except NotFoundError as exc:
        raise to_http_error(exc) from exc
    return QueueCountsRead(name=name, **asdict(counts))


@router.get("/", response_model=list[QueueCountsRead])
async def list_queues(
    runtime: NotificationRuntime = Depends(get_runtime),
    _: User = Depends(require_admin),
) -> list[QueueCountsRead]:
    return [await _counts(runtime, name) for name in runtime.queue.queues]


@router.get("/{name}/jobs", response_model=list[QueueJobRead])
async def list_recent_jobs(
    name: str,
    runtime: NotificationRuntime = Depends(get_runtime),
    _: User = Depends(require_admin),
) -> list[QueueJobRead]:
    """Return the most recently finished jobs of the queue, newest first."""

    try:
        jobs = await runtime.queue.recent_jobs(name)
    except NotFoundError as exc:
        raise to_http_error(exc) from exc
    return [job_to_schema(job) for job in jobs]


@router.post("/{name}/pause", response_model=QueueCountsRead)
async def pause_queue(
    name: str,
    runtime: NotificationRuntime = Depends(get_runtime),
    _: User = Depends(require_admin),
) -> QueueCountsRead:
    try:
        await runtime.queue.pause(name)
    except NotFoundError as exc:
        raise to_http_error(exc) from exc
    return await _counts(runtime, name)


@router.post("/{name}/resume", response_model=QueueCountsRead)
async def resume_queue(
    name: str,
    runtime: NotificationRuntime = Depends(get_runtime),
    _: User = Depends(require_admin),
) -> QueueCountsRead:
    try:
        await runtime.queue.resume(name)
    except NotFoundError as exc:
        raise to_http_error(exc) from exc
    return await _counts(runtime, name)


@router.post("/{name}/clear", response_model=QueueClearResponse)
async def clear_queue(
    name: str,
    runtime: NotificationRuntime = Depends(get_runtime),
    _: User = Depends(require_admin),
) -> QueueClearResponse:
    """Drop waiting and delayed jobs; their notifications are picked up by the next sweep."""

    try:
        removed = await runtime.queue.clear(name)
    except NotFoundError as exc:
        raise to_http_error(exc) from exc
    return QueueClearResponse(name=name, removed=removed)


__all__ = ["router"]
