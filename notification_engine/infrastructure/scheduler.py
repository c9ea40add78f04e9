"""Minute-resolution cron orchestrator driving the periodic job families.

Families fire independently of each other. A family whose previous run is
still in progress is skipped for the tick when overlap protection is on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from notification_engine.domain.exceptions import NotFoundError, SchedulerRuleError
from notification_engine.utils import now_in_app_timezone

logger = logging.getLogger(__name__)

CronMatcher = Callable[[datetime], bool]
CronJob = Callable[[datetime], Awaitable[Any]]


def every_minute() -> CronMatcher:
    return lambda now: True


def every_n_minutes(interval: int) -> CronMatcher:
    if interval <= 0:
        raise ValueError("interval must be positive")
    return lambda now: now.minute % interval == 0


def hourly(minute: int = 0) -> CronMatcher:
    return lambda now: now.minute == minute


def daily_at(hour: int, minute: int = 0) -> CronMatcher:
    return lambda now: now.hour == hour and now.minute == minute


def weekly_at(weekday: int, hour: int = 0, minute: int = 0) -> CronMatcher:
    """Match ``weekday`` (0=Monday) at ``hour:minute``."""

    return lambda now: now.weekday() == weekday and now.hour == hour and now.minute == minute


def monthly_at(day: int = 1, hour: int = 0, minute: int = 0) -> CronMatcher:
    return lambda now: now.day == day and now.hour == hour and now.minute == minute


@dataclass
class CronFamily:
    name: str
    matcher: CronMatcher
    job: CronJob
    running: bool = False
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_error: str | None = None


class CronOrchestrator:
    """Fire registered job families once per matching minute."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        skip_overlapping: bool = True,
        clock: Callable[[], datetime] = now_in_app_timezone,
    ) -> None:
        self.enabled = enabled
        self.skip_overlapping = skip_overlapping
        self._clock = clock
        self._families: dict[str, CronFamily] = {}
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[bool]] = set()
        self._last_tick: datetime | None = None

    @property
    def families(self) -> dict[str, CronFamily]:
        return dict(self._families)

    @property
    def running(self) -> bool:
        return self._running

    def register(self, name: str, matcher: CronMatcher, job: CronJob) -> CronFamily:
        if name in self._families:
            raise ValueError(f"Cron family '{name}' is already registered")
        family = CronFamily(name=name, matcher=matcher, job=job)
        self._families[name] = family
        return family

    def get_family(self, name: str) -> CronFamily:
        try:
            return self._families[name]
        except KeyError as exc:
            raise NotFoundError(f"Unknown cron family '{name}'") from exc

    def due_families(self, now: datetime) -> list[str]:
        return [name for name, family in self._families.items() if family.matcher(now)]

    async def start(self) -> None:
        if not self.enabled:
            logger.info("Cron orchestrator disabled")
            return
        if self._running:
            logger.warning("Cron orchestrator already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Cron orchestrator started with %s families", len(self._families))

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("Cron orchestrator stopped")

    def tick(self, now: datetime) -> list[asyncio.Task[bool]]:
        """Launch every family due at ``now`` without waiting for them."""

        minute = now.replace(second=0, microsecond=0)
        tasks = []
        for name in self.due_families(minute):
            task = asyncio.create_task(self.run_family(name, minute))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            tasks.append(task)
        self._last_tick = minute
        return tasks

    async def run_family(self, name: str, now: datetime | None = None) -> bool:
        """Run one family now. Returns ``False`` when the run was skipped."""

        family = self.get_family(name)
        now = now or self._clock()
        if family.running and self.skip_overlapping:
            family.skipped += 1
            logger.warning("Skipping %s tick at %s: previous run still busy", name, now)
            return False

        family.running = True
        family.last_started_at = now
        try:
            await family.job(now)
        except Exception as exc:
            error = SchedulerRuleError(name, exc)
            family.failures += 1
            family.last_error = str(error)
            logger.exception("%s", error)
        else:
            family.last_error = None
        finally:
            family.running = False
            family.runs += 1
            family.last_finished_at = self._clock()
        return True

    async def _run_loop(self) -> None:
        while self._running:
            now = self._clock()
            minute = now.replace(second=0, microsecond=0)
            if minute != self._last_tick:
                self.tick(minute)
            next_minute = minute + timedelta(minutes=1)
            await asyncio.sleep(max((next_minute - self._clock()).total_seconds(), 0.5))


__all__ = [
    "CronFamily",
    "CronJob",
    "CronMatcher",
    "CronOrchestrator",
    "daily_at",
    "every_minute",
    "every_n_minutes",
    "hourly",
    "monthly_at",
    "weekly_at",
]
