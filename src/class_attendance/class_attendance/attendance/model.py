from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import AttendanceStatus
from ..sessions.model import ClassSession

# Statuses a record may hold once its session is closed.
SETTLED_STATUSES = (
    AttendanceStatus.PRESENT,
    AttendanceStatus.LATE,
    AttendanceStatus.ABSENT,
    AttendanceStatus.EXCUSED,
)


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one status per (session, student)."""

    attendance_id: int
    session_id: int
    student_id: int
    status: AttendanceStatus
    checked_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return {
            "attendance_id": self.attendance_id,
            "session_id": self.session_id,
            "student_id": self.student_id,
            "status": self.status.value,
            "checked_at": self.checked_at.strftime("%Y-%m-%d %H:%M:%S") if self.checked_at else None,
        }


@dataclass(frozen=True)
class RosterRow:
    student_id: int
    record: Optional[AttendanceRecord]

    @property
    def status(self) -> Optional[AttendanceStatus]:
        return self.record.status if self.record else None


@dataclass(frozen=True)
class SessionRoster:
    """Read-model: every enrolled student paired with their record."""

    session: ClassSession
    rows: Sequence[RosterRow]
    stats: dict = field(default_factory=dict)

    def as_dict(self, *, include_code: bool = True) -> dict:
        return {
            "session": self.session.as_dict(include_code=include_code),
            "rows": [
                {"student_id": r.student_id, "attendance": r.record.as_dict() if r.record else None}
                for r in self.rows
            ],
            "stats": dict(self.stats),
        }
