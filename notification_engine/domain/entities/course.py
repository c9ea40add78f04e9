"""Learning records read by campaign rules and reports."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ENROLLMENT_STATUS_ACTIVE = "active"
PROGRESS_STATUS_IN_PROGRESS = "in_progress"
PROGRESS_STATUS_COMPLETED = "completed"


@dataclass
class Course:
    id: str | None
    title: str
    created_at: datetime | None = None


@dataclass
class CourseEnrollment:
    """A user's enrollment in a course."""

    id: str | None
    user_id: str
    course_id: str
    enrolled_at: datetime | None = None
    status: str = ENROLLMENT_STATUS_ACTIVE


@dataclass
class CourseProgress:
    """Completion state of a user within a course."""

    id: str | None
    user_id: str
    course_id: str
    completion_percentage: float = 0.0
    status: str = PROGRESS_STATUS_IN_PROGRESS
    updated_at: datetime | None = None

    def is_completed(self) -> bool:
        return self.status == PROGRESS_STATUS_COMPLETED or self.completion_percentage >= 100


__all__ = [
    "Course",
    "CourseEnrollment",
    "CourseProgress",
    "ENROLLMENT_STATUS_ACTIVE",
    "PROGRESS_STATUS_COMPLETED",
    "PROGRESS_STATUS_IN_PROGRESS",
]
