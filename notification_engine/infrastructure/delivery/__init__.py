"""Queued delivery: channel dispatcher and retry queues."""

from .dispatcher import ChannelDispatcher, DispatchOutcome
from .queue import (
    QUEUE_FOR_CHANNEL,
    QueueCounts,
    RetryQueue,
    RetryQueueEngine,
    backoff_delay,
    job_id_for,
)

__all__ = [
    "ChannelDispatcher",
    "DispatchOutcome",
    "QUEUE_FOR_CHANNEL",
    "QueueCounts",
    "RetryQueue",
    "RetryQueueEngine",
    "backoff_delay",
    "job_id_for",
]
