"""SQLAlchemy model for notification templates."""

from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text

from notification_engine.infrastructure.database import Base
from notification_engine.utils import now_in_app_naive_datetime


class NotificationTemplateModel(Base):
    """Database representation of a reusable notification template."""

    __tablename__ = "notification_templates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(100), nullable=False, unique=True)
    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    channel = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    variables = Column(JSON, nullable=False, default=list)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(), nullable=False, default=now_in_app_naive_datetime)
    updated_at = Column(
        DateTime(),
        nullable=False,
        default=now_in_app_naive_datetime,
        onupdate=now_in_app_naive_datetime,
    )


__all__ = ["NotificationTemplateModel"]
