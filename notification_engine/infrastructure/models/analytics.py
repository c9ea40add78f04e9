"""SQLAlchemy models for analytics and activity rows purged by cleanup."""

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, String

from notification_engine.infrastructure.database import Base
from notification_engine.utils import now_in_app_naive_datetime


class AnalyticsEventModel(Base):
    __tablename__ = "analytics_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), nullable=True, index=True)
    event_type = Column(String(50), nullable=False)
    properties = Column(JSON, nullable=False, default=dict)
    created_at = Column(
        DateTime, nullable=False, default=now_in_app_naive_datetime, index=True
    )


class UserActivityModel(Base):
    __tablename__ = "user_activities"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    activity_type = Column(String(50), nullable=False)
    created_at = Column(
        DateTime, nullable=False, default=now_in_app_naive_datetime, index=True
    )


__all__ = ["AnalyticsEventModel", "UserActivityModel"]
