"""SQLAlchemy models for courses, enrollments and progress rows."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, String

from notification_engine.infrastructure.database import Base
from notification_engine.utils import now_in_app_naive_datetime


class CourseModel(Base):
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    title = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=now_in_app_naive_datetime)


class CourseEnrollmentModel(Base):
    __tablename__ = "course_enrollments"
    __table_args__ = (Index("ix_course_enrollments_user_course", "user_id", "course_id"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False, index=True)
    enrolled_at = Column(DateTime, nullable=False, default=now_in_app_naive_datetime)
    status = Column(String(20), nullable=False, default="active")


class CourseProgressModel(Base):
    __tablename__ = "course_progress"
    __table_args__ = (Index("ix_course_progress_user_course", "user_id", "course_id"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False)
    completion_percentage = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default="in_progress")
    updated_at = Column(
        DateTime, nullable=False, default=now_in_app_naive_datetime, index=True
    )


__all__ = ["CourseEnrollmentModel", "CourseModel", "CourseProgressModel"]
