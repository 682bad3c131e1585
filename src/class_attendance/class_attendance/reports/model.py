from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..core.enums import RiskLevel
from ..courses.model import Course
from ..policies.model import AttendancePolicy


@dataclass(frozen=True)
class StudentStanding:
    """Read-time view of one student's attendance in a course.

    Late-to-absent conversion lives only here; the ledger keeps raw statuses.
    """

    student_id: int
    total_sessions: int
    present: int
    late: int
    absent: int
    excused: int
    pending: int
    late_conversions: int
    effective_absences: int
    attendance_rate: float
    exceeds_limit: bool
    max_consecutive_late: int
    risk_level: RiskLevel
    reasons: Sequence[str] = field(default_factory=tuple)

    def as_dict(self) -> dict:
        return {
            "student_id": self.student_id,
            "total_sessions": self.total_sessions,
            "present": self.present,
            "late": self.late,
            "absent": self.absent,
            "excused": self.excused,
            "pending": self.pending,
            "late_conversions": self.late_conversions,
            "effective_absences": self.effective_absences,
            "attendance_rate": self.attendance_rate,
            "exceeds_limit": self.exceeds_limit,
            "max_consecutive_late": self.max_consecutive_late,
            "risk_level": self.risk_level.value,
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class CourseReport:
    course: Course
    policy: AttendancePolicy
    total_sessions: int
    students: Sequence[StudentStanding]

    def as_dict(self) -> dict:
        return {
            "course": {"course_id": self.course.course_id, "title": self.course.title},
            "policy": self.policy.as_dict(),
            "total_sessions": self.total_sessions,
            "students": [s.as_dict() for s in self.students],
        }


@dataclass(frozen=True)
class RiskReport:
    course: Course
    policy: AttendancePolicy
    danger: Sequence[StudentStanding]
    warning: Sequence[StudentStanding]
    normal: Sequence[StudentStanding]
    top_absences: Sequence[StudentStanding]
    top_consecutive_late: Sequence[StudentStanding]

    def as_dict(self) -> dict:
        def rows(items):
            return [s.as_dict() for s in items]

        return {
            "course": {"course_id": self.course.course_id, "title": self.course.title},
            "policy": self.policy.as_dict(),
            "summary": {
                "danger": len(self.danger),
                "warning": len(self.warning),
                "normal": len(self.normal),
            },
            "danger": rows(self.danger),
            "warning": rows(self.warning),
            "normal": rows(self.normal),
            "top_absences": rows(self.top_absences),
            "top_consecutive_late": rows(self.top_consecutive_late),
        }


@dataclass(frozen=True)
class ExcuseTally:
    total: int = 0
    approved: int = 0
    rejected: int = 0
    pending: int = 0

    @property
    def approval_rate(self) -> float:
        return round(self.approved / self.total * 100, 2) if self.total else 0.0

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "approved": self.approved,
            "rejected": self.rejected,
            "pending": self.pending,
            "approval_rate": self.approval_rate,
        }


@dataclass(frozen=True)
class CourseExcuseTally:
    course: Course
    tally: ExcuseTally

    def as_dict(self) -> dict:
        return {"course": {"course_id": self.course.course_id, "title": self.course.title}, **self.tally.as_dict()}


@dataclass(frozen=True)
class ExcuseApprovalReport:
    """Excuse outcomes overall and per course, within the caller's scope."""

    overall: ExcuseTally
    by_course: Sequence[CourseExcuseTally]
    course_id: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "course_id": self.course_id,
            "overall": self.overall.as_dict(),
            "by_course": [c.as_dict() for c in self.by_course],
        }
