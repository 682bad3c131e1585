from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import AttendanceMethod, SessionState


@dataclass(frozen=True)
class ClassSession:
    """One scheduled meeting of a course.

    The lifecycle is a single tagged state, so `is_open` and `is_closed`
    can never both be true.
    """

    session_id: int
    course_id: int
    start_at: datetime
    end_at: datetime
    room: Optional[str]
    attendance_method: AttendanceMethod
    attendance_code: Optional[str]
    state: SessionState
    week: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.CLOSED

    @property
    def uses_code(self) -> bool:
        return self.attendance_method == AttendanceMethod.CODE

    def as_dict(self, *, include_code: bool = True) -> dict:
        return {
            "session_id": self.session_id,
            "course_id": self.course_id,
            "week": self.week,
            "start_at": self.start_at.strftime("%Y-%m-%d %H:%M"),
            "end_at": self.end_at.strftime("%Y-%m-%d %H:%M"),
            "room": self.room,
            "attendance_method": self.attendance_method.value,
            "attendance_code": self.attendance_code if include_code else None,
            "state": self.state.value,
            "is_open": self.is_open,
            "is_closed": self.is_closed,
        }
