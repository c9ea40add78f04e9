"""Process-wide wiring of stores, transports, queues and the cron orchestrator."""

from __future__ import annotations

import logging
from datetime import datetime

from arq.connections import ArqRedis
from sqlalchemy.ext.asyncio import AsyncEngine

from notification_engine.application.use_cases.campaigns import (
    ActivityReport,
    CampaignOptions,
    CampaignResult,
    CleanupResult,
    compute_activity_report,
    publish_activity_report,
    purge_expired_activity,
    run_reminder_campaign,
)
from notification_engine.application.use_cases.notifications import (
    SweepResult,
    sweep_due_notifications,
)
from notification_engine.config import Settings, get_settings
from notification_engine.infrastructure.database import (
    SessionFactory,
    build_session_factory,
    create_database_engine,
    initialize_database,
)
from notification_engine.infrastructure.delivery import ChannelDispatcher, RetryQueueEngine
from notification_engine.infrastructure.delivery.dispatcher import EmailTransport, PushTransport
from notification_engine.infrastructure.email import SendGridEmailTransport
from notification_engine.infrastructure.notifications import (
    LivePushGateway,
    NotificationConnectionManager,
)
from notification_engine.infrastructure.push import DeviceTokenRegistry, HttpPushTransport
from notification_engine.infrastructure.scheduler import (
    CronOrchestrator,
    daily_at,
    every_minute,
    every_n_minutes,
    hourly,
    monthly_at,
    weekly_at,
)

logger = logging.getLogger(__name__)

FAMILY_SWEEP = "sweep"
FAMILY_CLEANUP = "cleanup"
FAMILY_LOG_RETENTION = "log_retention"
FAMILY_DAILY_REPORT = "daily_report"
FAMILY_WEEKLY_REPORT = "weekly_report"
FAMILY_MONTHLY_REPORT = "monthly_report"
FAMILY_REMINDERS = "reminders"

SUNDAY = 6


class NotificationRuntime:
    """Own every long-lived collaborator of the engine.

    One instance exists per process. ``start`` prepares the schema and launches
    the queue workers and the cron loop; ``stop`` tears them down in reverse.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        engine: AsyncEngine | None = None,
        email_transport: EmailTransport | None = None,
        push_transport: PushTransport | None = None,
        redis: ArqRedis | None = None,
    ) -> None:
        self.settings = settings
        self.engine = engine or create_database_engine(settings)
        self.session_factory: SessionFactory = build_session_factory(self.engine)
        self.device_registry = DeviceTokenRegistry()
        self.connections = NotificationConnectionManager()
        self.gateway = LivePushGateway(self.connections, self.session_factory)
        self.dispatcher = ChannelDispatcher(
            self.session_factory,
            email_transport=email_transport or SendGridEmailTransport(),
            push_transport=push_transport or HttpPushTransport.from_settings(settings),
            device_registry=self.device_registry,
            gateway=self.gateway,
        )
        self.queue = RetryQueueEngine.from_settings(
            settings, self.session_factory, self.dispatcher, redis=redis
        )
        self.scheduler = CronOrchestrator(
            enabled=settings.scheduler_enabled,
            skip_overlapping=settings.scheduler_skip_overlapping,
        )
        self._register_cron_families()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "NotificationRuntime":
        return cls(settings or get_settings())

    def _register_cron_families(self) -> None:
        register = self.scheduler.register
        register(FAMILY_SWEEP, every_minute(), self.sweep_due)
        register(FAMILY_CLEANUP, every_n_minutes(5), self.run_cleanup)
        register(FAMILY_LOG_RETENTION, hourly(), self.run_log_retention)
        register(FAMILY_DAILY_REPORT, daily_at(0), self._report_job("daily"))
        register(FAMILY_WEEKLY_REPORT, weekly_at(SUNDAY), self._report_job("weekly"))
        register(FAMILY_MONTHLY_REPORT, monthly_at(1), self._report_job("monthly"))
        register(FAMILY_REMINDERS, daily_at(2), self.run_reminders)

    def _report_job(self, period: str):
        async def job(now: datetime) -> ActivityReport:
            return await self.run_report(period, now)

        return job

    @property
    def campaign_options(self) -> CampaignOptions:
        return CampaignOptions(
            inactive_after_days=self.settings.inactive_after_days,
            enrollment_reminder_after_days=self.settings.enrollment_reminder_after_days,
            stalled_progress_after_days=self.settings.stalled_progress_after_days,
            suppression_hours=self.settings.reminder_suppression_hours,
            weekly_summary_weekday=self.settings.weekly_summary_weekday,
        )

    async def start(self) -> None:
        await initialize_database(self.engine)
        await self.queue.start()
        await self.scheduler.start()
        logger.info("Notification runtime started")

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.queue.stop()
        await self.engine.dispose()
        logger.info("Notification runtime stopped")

    async def sweep_due(self, now: datetime | None = None) -> SweepResult:
        async with self.session_factory() as session:
            result = await sweep_due_notifications(
                session,
                queue=self.queue,
                dispatcher=self.dispatcher,
                batch_size=self.settings.sweep_batch_size,
                now=now,
            )
        return result

    async def run_cleanup(self, now: datetime | None = None) -> CleanupResult:
        async with self.session_factory() as session:
            return await purge_expired_activity(
                session,
                analytics_retention_days=self.settings.analytics_retention_days,
                activity_retention_days=self.settings.activity_retention_days,
                now=now,
            )

    async def run_log_retention(self, now: datetime | None = None) -> None:
        # Log files are rotated by the process supervisor.
        logger.debug("Log retention housekeeping has nothing to do")

    async def run_report(self, period: str, now: datetime | None = None) -> ActivityReport:
        async with self.session_factory() as session:
            report = await compute_activity_report(session, period, now=now)
            await publish_activity_report(
                session, report, queue=self.queue, gateway=self.gateway, now=now
            )
        return report

    async def run_reminders(self, now: datetime | None = None) -> CampaignResult:
        return await run_reminder_campaign(
            self.session_factory,
            queue=self.queue,
            gateway=self.gateway,
            options=self.campaign_options,
            now=now,
        )


__all__ = [
    "FAMILY_CLEANUP",
    "FAMILY_DAILY_REPORT",
    "FAMILY_LOG_RETENTION",
    "FAMILY_MONTHLY_REPORT",
    "FAMILY_REMINDERS",
    "FAMILY_SWEEP",
    "FAMILY_WEEKLY_REPORT",
    "NotificationRuntime",
]
