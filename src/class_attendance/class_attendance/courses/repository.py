from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Course


class CourseRepository(Protocol):
    """Course and enrollment directory (owned by an external system)."""

    def get_by_id(self, course_id: int) -> Optional[Course]:
        raise NotImplementedError

    def list_enrolled_student_ids(self, course_id: int) -> Sequence[int]:
        raise NotImplementedError

    def is_enrolled(self, course_id: int, student_id: int) -> bool:
        raise NotImplementedError

    def list_courses_for_instructor(self, instructor_id: int) -> Sequence[Course]:
        raise NotImplementedError
