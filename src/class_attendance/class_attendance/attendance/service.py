from __future__ import annotations

from typing import Callable, Optional, Sequence

from ..access.guards import is_course_staff, require_course_staff, require_principal, require_student
from ..access.model import Principal
from ..common.datetime_utils import format_ts, now_local
from ..common.validators import require_enum
from ..core.enums import AttendanceStatus, SessionState
from ..core.exceptions import (
    AuthorizationError,
    DuplicateRecordError,
    InvalidCodeError,
    NotEnrolledError,
    NotFoundError,
    SessionNotOpenError,
    ValidationError,
)
from ..courses.model import Course
from ..courses.repository import CourseRepository
from ..database.connection import TransactionScope
from ..effects.model import EffectLog
from ..effects.runner import EffectRunner
from ..sessions.model import ClassSession
from ..sessions.repository import SessionRepository
from .model import SETTLED_STATUSES, AttendanceRecord, RosterRow, SessionRoster
from .repository import AttendanceRepository


class AttendanceService:
    """Attendance ledger: one record per (session, student).

    Student self-checks are bounded by the session being OPEN. Staff edits
    after close are governed by `allow_post_close_corrections`.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        sessions: SessionRepository,
        courses: CourseRepository,
        tx: TransactionScope,
        effects: EffectRunner,
        *,
        allow_post_close_corrections: bool = True,
        clock: Callable = now_local,
    ):
        self._attendance = attendance
        self._sessions = sessions
        self._courses = courses
        self._tx = tx
        self._effects = effects
        self._allow_post_close = bool(allow_post_close_corrections)
        self._clock = clock

    def _load_session(self, session_id: int) -> tuple[ClassSession, Course]:
        sess = self._sessions.get_by_id(int(session_id))
        if not sess:
            raise NotFoundError("Session not found")
        course = self._courses.get_by_id(sess.course_id)
        if not course:
            raise NotFoundError("Course not found")
        return sess, course

    def _require_enrolled(self, course: Course, student_id: int) -> None:
        if not self._courses.is_enrolled(course.course_id, int(student_id)):
            raise NotEnrolledError("Student is not enrolled in this course")

    def check_in(self, principal: Optional[Principal], *, session_id: int, code: Optional[str] = None) -> AttendanceRecord:
        student = require_student(principal)
        sess, course = self._load_session(session_id)
        self._require_enrolled(course, student.user_id)

        if not sess.is_open:
            raise SessionNotOpenError("Attendance is not open for this session")
        if sess.uses_code:
            submitted = (code or "").strip()
            if not submitted or submitted != sess.attendance_code:
                raise InvalidCodeError("Attendance code is incorrect")

        now = self._clock()
        log = EffectLog()
        try:
            rec = self._attendance.create(
                session_id=sess.session_id,
                student_id=student.user_id,
                status=AttendanceStatus.PRESENT,
                checked_at=now,
            )
            log.audit(
                actor_id=student.user_id,
                action="ATTENDANCE_CHECK",
                target_type="Attendance",
                target_id=rec.attendance_id,
                new_value={"status": rec.status.value, "checked_at": format_ts(now)},
            )
        except DuplicateRecordError:
            existing = self._attendance.get_for_session_and_student(sess.session_id, student.user_id)
            if existing is None or existing.status != AttendanceStatus.PENDING:
                raise
            promoted = self._attendance.update_status(
                attendance_id=existing.attendance_id,
                status=AttendanceStatus.PRESENT,
                expected=AttendanceStatus.PENDING,
                checked_at=now,
            )
            if not promoted:
                raise
            rec = AttendanceRecord(
                attendance_id=existing.attendance_id,
                session_id=existing.session_id,
                student_id=existing.student_id,
                status=AttendanceStatus.PRESENT,
                checked_at=now,
            )
            log.audit(
                actor_id=student.user_id,
                action="ATTENDANCE_UPDATE",
                target_type="Attendance",
                target_id=rec.attendance_id,
                old_value={"status": existing.status.value},
                new_value={"status": rec.status.value, "checked_at": format_ts(now)},
            )

        self._effects.dispatch(log.items)
        return rec

    def mark(
        self,
        principal: Optional[Principal],
        *,
        session_id: int,
        student_id: int,
        status,
    ) -> AttendanceRecord:
        sess, course = self._load_session(session_id)
        actor = require_course_staff(principal, course)
        status = require_enum(status, AttendanceStatus, "status")
        self._require_enrolled(course, student_id)

        if sess.state == SessionState.SCHEDULED:
            raise SessionNotOpenError("Attendance has not been opened for this session")
        if sess.is_closed and not self._allow_post_close:
            raise SessionNotOpenError("Session is closed; corrections are disabled")
        if sess.is_closed and status not in SETTLED_STATUSES:
            raise ValidationError(f"status {status.value} is not allowed on a closed session")

        existing = self._attendance.get_for_session_and_student(sess.session_id, int(student_id))
        if existing:
            raise DuplicateRecordError("An attendance record already exists; update it instead")

        rec = self._attendance.create(session_id=sess.session_id, student_id=int(student_id), status=status)

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="ATTENDANCE_CREATE",
            target_type="Attendance",
            target_id=rec.attendance_id,
            new_value={"status": rec.status.value},
        )
        self._effects.dispatch(log.items)
        return rec

    def update(self, principal: Optional[Principal], *, attendance_id: int, status) -> AttendanceRecord:
        rec = self._attendance.get_by_id(int(attendance_id))
        if not rec:
            raise NotFoundError("Attendance record not found")
        sess, course = self._load_session(rec.session_id)
        actor = require_course_staff(principal, course)
        status = require_enum(status, AttendanceStatus, "status")

        if sess.is_closed and not self._allow_post_close:
            raise SessionNotOpenError("Session is closed; corrections are disabled")
        if sess.is_closed and status not in SETTLED_STATUSES:
            raise ValidationError(f"status {status.value} is not allowed on a closed session")

        with self._tx.transaction():
            self._attendance.update_status(attendance_id=rec.attendance_id, status=status)

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="ATTENDANCE_STATUS_CHANGE",
            target_type="Attendance",
            target_id=rec.attendance_id,
            old_value={"status": rec.status.value},
            new_value={"status": status.value},
        )
        self._effects.dispatch(log.items)

        return AttendanceRecord(
            attendance_id=rec.attendance_id,
            session_id=rec.session_id,
            student_id=rec.student_id,
            status=status,
            checked_at=rec.checked_at,
        )

    def session_roster(self, principal: Optional[Principal], session_id: int) -> SessionRoster:
        principal = require_principal(principal)
        sess, course = self._load_session(session_id)

        staff = is_course_staff(principal, course)
        if not staff:
            if not principal.is_student:
                raise AuthorizationError("Only the course instructor or an administrator can do this")
            self._require_enrolled(course, principal.user_id)

        enrolled = self._courses.list_enrolled_student_ids(course.course_id)
        by_student = {r.student_id: r for r in self._attendance.list_for_session(sess.session_id)}
        rows = [RosterRow(student_id=int(s), record=by_student.get(int(s))) for s in sorted(enrolled)]

        stats = _roster_stats(rows)
        if not staff:
            rows = [r for r in rows if r.student_id == principal.user_id]
        return SessionRoster(session=sess, rows=rows, stats=stats)

    def records_for_student(
        self,
        principal: Optional[Principal],
        *,
        course_id: int,
        student_id: Optional[int] = None,
    ) -> Sequence[AttendanceRecord]:
        principal = require_principal(principal)
        course = self._courses.get_by_id(int(course_id))
        if not course:
            raise NotFoundError("Course not found")

        if principal.is_student:
            if student_id is not None and int(student_id) != principal.user_id:
                raise AuthorizationError("Students can only view their own attendance")
            student_id = principal.user_id
            self._require_enrolled(course, student_id)
        else:
            require_course_staff(principal, course)

        return self._attendance.list_for_course(
            course.course_id,
            student_id=int(student_id) if student_id is not None else None,
        )


def _roster_stats(rows: Sequence[RosterRow]) -> dict:
    counts = {s: 0 for s in AttendanceStatus}
    for row in rows:
        counts[row.status or AttendanceStatus.PENDING] += 1
    return {
        "total": len(rows),
        "present": counts[AttendanceStatus.PRESENT],
        "late": counts[AttendanceStatus.LATE],
        "absent": counts[AttendanceStatus.ABSENT],
        "excused": counts[AttendanceStatus.EXCUSED],
        "pending": counts[AttendanceStatus.PENDING],
    }
