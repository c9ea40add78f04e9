"""SQLAlchemy model for the users table."""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String

from notification_engine.infrastructure.database import Base
from notification_engine.utils import now_in_app_naive_datetime


class UserModel(Base):
    """Database representation of a notification recipient."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    email = Column(String(120), nullable=True, index=True)
    name = Column(String(120), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=now_in_app_naive_datetime)


__all__ = ["UserModel"]
