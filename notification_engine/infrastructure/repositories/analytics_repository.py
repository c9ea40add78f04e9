"""Retention queries over analytics and user activity rows."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.infrastructure.models import AnalyticsEventModel, UserActivityModel
from notification_engine.utils import ensure_app_naive_datetime


class AnalyticsRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def delete_events_before(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(AnalyticsEventModel).where(
                AnalyticsEventModel.created_at < ensure_app_naive_datetime(cutoff)
            )
        )
        await self.session.commit()
        return int(result.rowcount or 0)

    async def delete_activities_before(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(UserActivityModel).where(
                UserActivityModel.created_at < ensure_app_naive_datetime(cutoff)
            )
        )
        await self.session.commit()
        return int(result.rowcount or 0)

    async def count_activities_between(self, start: datetime, end: datetime) -> int:
        return int(
            await self.session.scalar(
                select(func.count(UserActivityModel.id)).where(
                    UserActivityModel.created_at >= ensure_app_naive_datetime(start),
                    UserActivityModel.created_at < ensure_app_naive_datetime(end),
                )
            )
            or 0
        )


__all__ = ["AnalyticsRepository"]
