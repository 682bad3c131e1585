from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceStatus
from .model import AttendanceRecord


class AttendanceRepository(Protocol):
    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_for_session_and_student(self, session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def list_for_session(self, session_id: int) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def list_for_course(self, course_id: int, *, student_id: Optional[int] = None) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def create(
        self,
        *,
        session_id: int,
        student_id: int,
        status: AttendanceStatus,
        checked_at: Optional[datetime] = None,
    ) -> AttendanceRecord:
        """Insert-or-fail on (session_id, student_id).

        Raises DuplicateRecordError when a record already exists.
        """

        raise NotImplementedError

    def update_status(
        self,
        *,
        attendance_id: int,
        status: AttendanceStatus,
        expected: Optional[AttendanceStatus] = None,
        checked_at: Optional[datetime] = None,
    ) -> bool:
        """Set the status in place.

        With `expected`, only rows still in that status are touched.
        `checked_at` is written only when given.
        """

        raise NotImplementedError
