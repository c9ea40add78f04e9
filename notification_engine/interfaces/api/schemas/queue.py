"""Schemas for retry queue inspection and control."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class QueueCountsRead(BaseModel):
    name: str
    waiting: int
    delayed: int
    active: int
    completed: int
    failed: int
    paused: bool


class QueueJobRead(BaseModel):
    id: str
    notification_id: str
    channel: str
    priority: str
    state: str
    attempt: int
    max_attempts: int
    next_delay_seconds: float | None = None
    error: str | None = None
    created_at: datetime | None = None
    finished_at: datetime | None = None


class QueueClearResponse(BaseModel):
    name: str
    removed: int


__all__ = ["QueueClearResponse", "QueueCountsRead", "QueueJobRead"]
