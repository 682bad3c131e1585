"""Close-time sweep over a session's enrollments.

Planning is a pure function of (enrolled ids, existing records); applying
the plan is idempotent because a second pass finds nothing missing and
nothing PENDING.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence, Tuple

from ..core.enums import AttendanceStatus
from ..core.exceptions import DuplicateRecordError
from ..courses.repository import CourseRepository
from ..sessions.model import ClassSession
from .model import AttendanceRecord
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationPlan:
    create_absent: Tuple[int, ...]
    pending_to_absent: Tuple[AttendanceRecord, ...]
    untouched: Tuple[int, ...]

    @property
    def is_empty(self) -> bool:
        return not self.create_absent and not self.pending_to_absent


@dataclass
class ReconciliationResult:
    session_id: int
    created: list = field(default_factory=list)
    converted: list = field(default_factory=list)
    untouched: int = 0

    @property
    def affected_student_ids(self) -> list[int]:
        return sorted(set(self.created) | set(self.converted))

    def as_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "created_absent": len(self.created),
            "pending_to_absent": len(self.converted),
            "untouched": self.untouched,
        }


def plan_reconciliation(enrolled_ids: Iterable[int], records: Sequence[AttendanceRecord]) -> ReconciliationPlan:
    by_student = {r.student_id: r for r in records}
    create_absent: list[int] = []
    pending: list[AttendanceRecord] = []
    untouched: list[int] = []

    for student_id in sorted({int(s) for s in enrolled_ids}):
        rec = by_student.get(student_id)
        if rec is None:
            create_absent.append(student_id)
        elif rec.status == AttendanceStatus.PENDING:
            pending.append(rec)
        else:
            untouched.append(student_id)

    return ReconciliationPlan(
        create_absent=tuple(create_absent),
        pending_to_absent=tuple(pending),
        untouched=tuple(untouched),
    )


class ReconciliationEngine:
    def __init__(self, attendance: AttendanceRepository, courses: CourseRepository):
        self._attendance = attendance
        self._courses = courses

    def reconcile(self, session: ClassSession) -> ReconciliationResult:
        """Apply the close-time plan. Call inside the close transaction."""

        enrolled = self._courses.list_enrolled_student_ids(session.course_id)
        records = self._attendance.list_for_session(session.session_id)
        plan = plan_reconciliation(enrolled, records)

        result = ReconciliationResult(session_id=session.session_id, untouched=len(plan.untouched))

        for student_id in plan.create_absent:
            try:
                self._attendance.create(
                    session_id=session.session_id,
                    student_id=student_id,
                    status=AttendanceStatus.ABSENT,
                )
                result.created.append(student_id)
            except DuplicateRecordError:
                # A self-check landed between planning and insert.
                rec = self._attendance.get_for_session_and_student(session.session_id, student_id)
                if rec is not None and rec.status == AttendanceStatus.PENDING:
                    self._convert(rec, result)
                else:
                    result.untouched += 1

        for rec in plan.pending_to_absent:
            self._convert(rec, result)

        logger.info(
            "Reconciled session %s: created=%s converted=%s untouched=%s",
            session.session_id,
            len(result.created),
            len(result.converted),
            result.untouched,
        )
        return result

    def _convert(self, rec: AttendanceRecord, result: ReconciliationResult) -> None:
        if self._attendance.update_status(
            attendance_id=rec.attendance_id,
            status=AttendanceStatus.ABSENT,
            expected=AttendanceStatus.PENDING,
        ):
            result.converted.append(rec.student_id)
        else:
            result.untouched += 1
