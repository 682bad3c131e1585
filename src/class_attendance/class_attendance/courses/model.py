from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Course:
    """Read-only view of a course from the course directory."""

    course_id: int
    title: str
    instructor_id: int
