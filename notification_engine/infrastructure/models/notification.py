"""SQLAlchemy model for persisted notifications."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from notification_engine.infrastructure.database import Base
from notification_engine.utils import now_in_app_naive_datetime


class NotificationModel(Base):
    """Database representation of a notification delivery record.

    ``payload`` holds the serialized JSON blob; ``lock_token``/``locked_at`` are
    the claim written by whichever worker currently owns the row.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_status", "recipient_id", "status"),
        Index("ix_notifications_channel_status", "channel", "status"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    recipient_id = Column(String(36), nullable=False, index=True)
    channel = Column(String(20), nullable=False)
    event_type = Column(String(50), nullable=False, default="general")
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(Text, nullable=True)
    priority = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    scheduled_at = Column(DateTime(), nullable=True)
    sent_at = Column(DateTime(), nullable=True)
    read_at = Column(DateTime(), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    lock_token = Column(String(36), nullable=True)
    locked_at = Column(DateTime(), nullable=True)
    created_at = Column(
        DateTime(), nullable=False, default=now_in_app_naive_datetime, index=True
    )
    updated_at = Column(
        DateTime(),
        nullable=False,
        default=now_in_app_naive_datetime,
        onupdate=now_in_app_naive_datetime,
    )


__all__ = ["NotificationModel"]
