"""Read models for enrollments and progress used by campaigns and reports."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, exists, func, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.domain.entities import (
    PROGRESS_STATUS_COMPLETED,
    Course,
    CourseEnrollment,
    CourseProgress,
)
from notification_engine.infrastructure.models import (
    CourseEnrollmentModel,
    CourseModel,
    CourseProgressModel,
    UserModel,
)
from notification_engine.utils import ensure_app_naive_datetime, ensure_app_timezone


def _progress_completed():
    """SQL form of ``CourseProgress.is_completed``."""

    return or_(
        CourseProgressModel.status == PROGRESS_STATUS_COMPLETED,
        CourseProgressModel.completion_percentage >= 100,
    )


@dataclass
class EnrollmentWithCourse:
    enrollment: CourseEnrollment
    course_title: str


@dataclass
class ProgressWithCourse:
    progress: CourseProgress
    course_title: str


@dataclass
class CourseRanking:
    course_id: str
    title: str
    enrollments: int


class CourseRepository:
    """Provide the time-window queries campaign rules and reports need."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_incomplete_enrollments(
        self, *, enrolled_before: datetime
    ) -> Sequence[EnrollmentWithCourse]:
        """Return enrollments older than ``enrolled_before`` without a completed progress row."""

        completed = exists().where(
            CourseProgressModel.user_id == CourseEnrollmentModel.user_id,
            CourseProgressModel.course_id == CourseEnrollmentModel.course_id,
            _progress_completed(),
        )
        query = (
            select(CourseEnrollmentModel, CourseModel.title)
            .join(CourseModel, CourseModel.id == CourseEnrollmentModel.course_id)
            .join(UserModel, UserModel.id == CourseEnrollmentModel.user_id)
            .where(
                CourseEnrollmentModel.enrolled_at <= ensure_app_naive_datetime(enrolled_before),
                CourseEnrollmentModel.status == "active",
                UserModel.is_active == true(),
                ~completed,
            )
            .order_by(CourseEnrollmentModel.enrolled_at)
        )
        result = await self.session.execute(query)
        return [
            EnrollmentWithCourse(self._enrollment_to_entity(model), title)
            for model, title in result.all()
        ]

    async def list_stalled_progress(
        self, *, updated_before: datetime
    ) -> Sequence[ProgressWithCourse]:
        """Return partially completed progress rows untouched since ``updated_before``."""

        query = (
            select(CourseProgressModel, CourseModel.title)
            .join(CourseModel, CourseModel.id == CourseProgressModel.course_id)
            .where(
                CourseProgressModel.completion_percentage > 0,
                ~_progress_completed(),
                CourseProgressModel.updated_at <= ensure_app_naive_datetime(updated_before),
            )
            .order_by(CourseProgressModel.updated_at)
        )
        result = await self.session.execute(query)
        return [
            ProgressWithCourse(self._progress_to_entity(model), title)
            for model, title in result.all()
        ]

    async def list_progress_updated_since(self, since: datetime) -> Sequence[CourseProgress]:
        result = await self.session.scalars(
            select(CourseProgressModel)
            .where(CourseProgressModel.updated_at >= ensure_app_naive_datetime(since))
            .order_by(CourseProgressModel.user_id, CourseProgressModel.updated_at)
        )
        return [self._progress_to_entity(model) for model in result.all()]

    async def count_enrollments_between(self, start: datetime, end: datetime) -> int:
        return int(
            await self.session.scalar(
                select(func.count(CourseEnrollmentModel.id)).where(
                    CourseEnrollmentModel.enrolled_at >= ensure_app_naive_datetime(start),
                    CourseEnrollmentModel.enrolled_at < ensure_app_naive_datetime(end),
                )
            )
            or 0
        )

    async def count_completions_between(self, start: datetime, end: datetime) -> int:
        return int(
            await self.session.scalar(
                select(func.count(CourseProgressModel.id)).where(
                    _progress_completed(),
                    CourseProgressModel.updated_at >= ensure_app_naive_datetime(start),
                    CourseProgressModel.updated_at < ensure_app_naive_datetime(end),
                )
            )
            or 0
        )

    async def top_courses_between(
        self, start: datetime, end: datetime, *, limit: int = 5
    ) -> Sequence[CourseRanking]:
        enrollments = func.count(CourseEnrollmentModel.id).label("enrollments")
        query = (
            select(CourseModel.id, CourseModel.title, enrollments)
            .join(CourseEnrollmentModel, CourseEnrollmentModel.course_id == CourseModel.id)
            .where(
                and_(
                    CourseEnrollmentModel.enrolled_at >= ensure_app_naive_datetime(start),
                    CourseEnrollmentModel.enrolled_at < ensure_app_naive_datetime(end),
                )
            )
            .group_by(CourseModel.id, CourseModel.title)
            .order_by(enrollments.desc(), CourseModel.title)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [
            CourseRanking(course_id=course_id, title=title, enrollments=int(count))
            for course_id, title, count in result.all()
        ]

    async def add_course(self, course: Course) -> Course:
        model = CourseModel(title=course.title)
        if course.id is not None:
            model.id = course.id
        self.session.add(model)
        await self.session.commit()
        return Course(id=model.id, title=model.title, created_at=ensure_app_timezone(model.created_at))

    async def add_enrollment(self, enrollment: CourseEnrollment) -> CourseEnrollment:
        model = CourseEnrollmentModel(
            user_id=enrollment.user_id,
            course_id=enrollment.course_id,
            status=enrollment.status,
        )
        if enrollment.enrolled_at is not None:
            model.enrolled_at = ensure_app_naive_datetime(enrollment.enrolled_at)
        self.session.add(model)
        await self.session.commit()
        return self._enrollment_to_entity(model)

    async def add_progress(self, progress: CourseProgress) -> CourseProgress:
        model = CourseProgressModel(
            user_id=progress.user_id,
            course_id=progress.course_id,
            completion_percentage=progress.completion_percentage,
            status=progress.status,
        )
        if progress.updated_at is not None:
            model.updated_at = ensure_app_naive_datetime(progress.updated_at)
        self.session.add(model)
        await self.session.commit()
        return self._progress_to_entity(model)

    @staticmethod
    def _enrollment_to_entity(model: CourseEnrollmentModel) -> CourseEnrollment:
        return CourseEnrollment(
            id=model.id,
            user_id=model.user_id,
            course_id=model.course_id,
            enrolled_at=ensure_app_timezone(model.enrolled_at),
            status=model.status,
        )

    @staticmethod
    def _progress_to_entity(model: CourseProgressModel) -> CourseProgress:
        return CourseProgress(
            id=model.id,
            user_id=model.user_id,
            course_id=model.course_id,
            completion_percentage=float(model.completion_percentage or 0.0),
            status=model.status,
            updated_at=ensure_app_timezone(model.updated_at),
        )


__all__ = [
    "CourseRanking",
    "CourseRepository",
    "EnrollmentWithCourse",
    "ProgressWithCourse",
]
