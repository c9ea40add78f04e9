"""Tests for the cron orchestrator and its schedule matchers."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from notification_engine.domain.exceptions import NotFoundError
from notification_engine.infrastructure.scheduler import (
    CronOrchestrator,
    daily_at,
    every_minute,
    every_n_minutes,
    hourly,
    monthly_at,
    weekly_at,
)
from notification_engine.runtime import (
    FAMILY_CLEANUP,
    FAMILY_DAILY_REPORT,
    FAMILY_LOG_RETENTION,
    FAMILY_MONTHLY_REPORT,
    FAMILY_REMINDERS,
    FAMILY_SWEEP,
    FAMILY_WEEKLY_REPORT,
)

# Sunday the 1st, midnight
MIDNIGHT = datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)


def test_matchers() -> None:
    assert every_minute()(MIDNIGHT.replace(minute=17))
    assert every_n_minutes(5)(MIDNIGHT.replace(minute=35))
    assert not every_n_minutes(5)(MIDNIGHT.replace(minute=36))
    assert hourly()(MIDNIGHT.replace(hour=13))
    assert not hourly()(MIDNIGHT.replace(minute=1))
    assert daily_at(2)(MIDNIGHT.replace(hour=2))
    assert not daily_at(2)(MIDNIGHT.replace(hour=3))
    assert weekly_at(6)(MIDNIGHT)
    assert not weekly_at(0)(MIDNIGHT)
    assert monthly_at(1)(MIDNIGHT)
    assert not monthly_at(1)(MIDNIGHT.replace(day=2))

    with pytest.raises(ValueError):
        every_n_minutes(0)


def test_register_rejects_duplicates_and_unknown_names() -> None:
    scheduler = CronOrchestrator()

    async def job(now):
        return None

    scheduler.register("sweep", every_minute(), job)
    with pytest.raises(ValueError):
        scheduler.register("sweep", every_minute(), job)
    with pytest.raises(NotFoundError):
        scheduler.get_family("missing")


def test_runtime_families_fire_on_their_schedule(runtime) -> None:
    due_at_midnight = set(runtime.scheduler.due_families(MIDNIGHT))
    due_at_two = set(runtime.scheduler.due_families(MIDNIGHT.replace(hour=2)))
    due_at_odd_minute = set(runtime.scheduler.due_families(MIDNIGHT.replace(minute=7)))

    assert due_at_midnight == {
        FAMILY_SWEEP,
        FAMILY_CLEANUP,
        FAMILY_LOG_RETENTION,
        FAMILY_DAILY_REPORT,
        FAMILY_WEEKLY_REPORT,
        FAMILY_MONTHLY_REPORT,
    }
    assert due_at_two == {FAMILY_SWEEP, FAMILY_CLEANUP, FAMILY_LOG_RETENTION, FAMILY_REMINDERS}
    assert due_at_odd_minute == {FAMILY_SWEEP}


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped() -> None:
    scheduler = CronOrchestrator()
    release = asyncio.Event()
    started = asyncio.Event()

    async def slow_job(now):
        started.set()
        await release.wait()

    scheduler.register("reports", every_minute(), slow_job)
    first = asyncio.create_task(scheduler.run_family("reports", MIDNIGHT))
    await started.wait()

    assert await scheduler.run_family("reports", MIDNIGHT) is False
    release.set()
    assert await first is True

    family = scheduler.get_family("reports")
    assert family.skipped == 1
    assert family.runs == 1
    assert family.running is False


@pytest.mark.asyncio
async def test_overlap_allowed_when_protection_is_off() -> None:
    scheduler = CronOrchestrator(skip_overlapping=False)
    release = asyncio.Event()
    calls = []

    async def slow_job(now):
        calls.append(now)
        await release.wait()

    scheduler.register("reports", every_minute(), slow_job)
    first = asyncio.create_task(scheduler.run_family("reports", MIDNIGHT))
    second = asyncio.create_task(scheduler.run_family("reports", MIDNIGHT))
    await asyncio.sleep(0)
    release.set()

    assert await asyncio.gather(first, second) == [True, True]
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_failing_family_does_not_affect_others() -> None:
    scheduler = CronOrchestrator()
    calls = []

    async def broken(now):
        raise RuntimeError("database unavailable")

    async def healthy(now):
        calls.append(now)

    scheduler.register("broken", every_minute(), broken)
    scheduler.register("healthy", every_minute(), healthy)

    results = await asyncio.gather(*scheduler.tick(MIDNIGHT.replace(second=42)))

    assert results == [True, True]
    assert calls == [MIDNIGHT]
    broken_family = scheduler.get_family("broken")
    assert broken_family.failures == 1
    assert "database unavailable" in broken_family.last_error
    assert scheduler.get_family("healthy").last_error is None


@pytest.mark.asyncio
async def test_disabled_orchestrator_does_not_start() -> None:
    scheduler = CronOrchestrator(enabled=False)

    await scheduler.start()

    assert scheduler.running is False
    await scheduler.stop()


@pytest.mark.asyncio
async def test_start_and_stop_loop() -> None:
    calls = []

    async def job(now):
        calls.append(now)

    scheduler = CronOrchestrator(clock=lambda: MIDNIGHT)
    scheduler.register("sweep", every_minute(), job)

    await scheduler.start()
    assert scheduler.running is True
    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert scheduler.running is False
    assert calls == [MIDNIGHT]
