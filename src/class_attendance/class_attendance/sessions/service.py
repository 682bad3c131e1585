from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Sequence

from ..access.guards import is_course_staff, require_course_staff, require_principal
from ..access.model import Principal
from ..attendance.reconciliation import ReconciliationEngine, ReconciliationResult
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import parse_iso_datetime
from ..common.validators import require_enum, require_min_int
from ..core.enums import AttendanceMethod, SessionEvent, SessionState
from ..core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotEnrolledError,
    NotFoundError,
    SessionInUseError,
    ValidationError,
    WrongMethodError,
)
from ..courses.model import Course
from ..courses.repository import CourseRepository
from ..database.connection import TransactionScope
from ..effects import messages
from ..effects.model import EffectLog
from ..effects.runner import EffectRunner
from ..reports.service import AttendanceReportService
from ..requests.repository import RequestRepository
from .codes import generate_code, render_code_qr
from .model import ClassSession
from .repository import SessionRepository
from .state_machine import transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCloseResult:
    session: ClassSession
    reconciliation: ReconciliationResult

    def as_dict(self) -> dict:
        return {"session": self.session.as_dict(), "reconciliation": self.reconciliation.as_dict()}


class SessionService:
    """Session lifecycle: SCHEDULED -> OPEN -> CLOSED.

    Every transition is a compare-and-set on the stored state, so of two
    concurrent opens (or closes) exactly one wins.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        courses: CourseRepository,
        reconciler: ReconciliationEngine,
        tx: TransactionScope,
        effects: EffectRunner,
        *,
        reports: Optional[AttendanceReportService] = None,
        attendance: Optional[AttendanceRepository] = None,
        requests: Optional[RequestRepository] = None,
        rng: Optional[random.Random] = None,
    ):
        self._sessions = sessions
        self._courses = courses
        self._reconciler = reconciler
        self._tx = tx
        self._effects = effects
        self._reports = reports
        self._attendance = attendance
        self._requests = requests
        self._rng = rng

    def _load(self, session_id: int) -> tuple[ClassSession, Course]:
        sess = self._sessions.get_by_id(int(session_id))
        if not sess:
            raise NotFoundError("Session not found")
        course = self._courses.get_by_id(sess.course_id)
        if not course:
            raise NotFoundError("Course not found")
        return sess, course

    def _reload(self, session_id: int) -> ClassSession:
        sess = self._sessions.get_by_id(int(session_id))
        if not sess:
            raise NotFoundError("Session not found")
        return sess

    def get_session(self, principal: Optional[Principal], session_id: int) -> ClassSession:
        principal = require_principal(principal)
        sess, course = self._load(session_id)
        if not is_course_staff(principal, course):
            if not principal.is_student:
                raise AuthorizationError("Only the course instructor or an administrator can do this")
            if not self._courses.is_enrolled(course.course_id, principal.user_id):
                raise NotEnrolledError("Student is not enrolled in this course")
        return sess

    def list_sessions(self, principal: Optional[Principal], course_id: int) -> Sequence[ClassSession]:
        principal = require_principal(principal)
        course = self._courses.get_by_id(int(course_id))
        if not course:
            raise NotFoundError("Course not found")
        if not is_course_staff(principal, course):
            if not principal.is_student:
                raise AuthorizationError("Only the course instructor or an administrator can do this")
            if not self._courses.is_enrolled(course.course_id, principal.user_id):
                raise NotEnrolledError("Student is not enrolled in this course")
        return self._sessions.list_for_course(course.course_id)

    def schedule(
        self,
        principal: Optional[Principal],
        *,
        course_id: int,
        start_at,
        end_at,
        room: Optional[str] = None,
        attendance_method=AttendanceMethod.DIRECT,
        week=None,
    ) -> ClassSession:
        course = self._courses.get_by_id(int(course_id))
        if not course:
            raise NotFoundError("Course not found")
        actor = require_course_staff(principal, course)

        start_at = _as_datetime(start_at, "start_at")
        end_at = _as_datetime(end_at, "end_at")
        if end_at <= start_at:
            raise ValidationError("end_at must be after start_at")
        method = require_enum(attendance_method, AttendanceMethod, "attendance_method")
        week = require_min_int(week, "week", 1) if week not in (None, "") else None
        room = (room or "").strip() or None

        session_id = self._sessions.create(
            course_id=course.course_id,
            start_at=start_at,
            end_at=end_at,
            room=room,
            attendance_method=method,
            week=week,
        )
        sess = self._reload(session_id)

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="SESSION_CREATE",
            target_type="ClassSession",
            target_id=sess.session_id,
            new_value=sess.as_dict(include_code=False),
        )
        self._effects.dispatch(log.items)
        return sess

    def update(
        self,
        principal: Optional[Principal],
        session_id: int,
        *,
        start_at=None,
        end_at=None,
        room: Optional[str] = None,
        attendance_method=None,
        week=None,
    ) -> ClassSession:
        """Edit schedule fields. `None` leaves a field as is; an empty room clears it.

        Switching to CODE issues a code; switching to DIRECT drops it. The
        method of a closed session is fixed.
        """

        sess, course = self._load(session_id)
        actor = require_course_staff(principal, course)

        new_start = _as_datetime(start_at, "start_at") if start_at not in (None, "") else sess.start_at
        new_end = _as_datetime(end_at, "end_at") if end_at not in (None, "") else sess.end_at
        if new_end <= new_start:
            raise ValidationError("end_at must be after start_at")
        new_room = sess.room if room is None else (str(room).strip() or None)
        new_week = require_min_int(week, "week", 1) if week not in (None, "") else sess.week

        method = sess.attendance_method
        if attendance_method not in (None, ""):
            method = require_enum(attendance_method, AttendanceMethod, "attendance_method")
        method_changed = method != sess.attendance_method
        if method_changed and sess.is_closed:
            raise InvalidTransitionError("The attendance method of a closed session cannot change")

        code = sess.attendance_code
        if method_changed:
            code = generate_code(self._rng) if method == AttendanceMethod.CODE else None

        with self._tx.transaction():
            if not self._sessions.update_details(
                session_id=sess.session_id,
                start_at=new_start,
                end_at=new_end,
                room=new_room,
                week=new_week,
            ):
                raise NotFoundError("Session not found")
            if method_changed:
                self._sessions.set_method(session_id=sess.session_id, attendance_method=method, attendance_code=code)
        updated = self._reload(sess.session_id)

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="SESSION_UPDATE",
            target_type="ClassSession",
            target_id=sess.session_id,
            old_value=sess.as_dict(include_code=False),
            new_value=updated.as_dict(include_code=False),
        )
        self._effects.dispatch(log.items)
        return updated

    def delete(self, principal: Optional[Principal], session_id: int) -> None:
        sess, course = self._load(session_id)
        actor = require_course_staff(principal, course)

        if self._attendance is not None and self._attendance.list_for_session(sess.session_id):
            raise SessionInUseError("Session has attendance records and cannot be deleted")
        if self._requests is not None and self._requests.list_excuses(session_id=sess.session_id, limit=1):
            raise SessionInUseError("Session has excuse requests and cannot be deleted")

        if not self._sessions.delete(sess.session_id):
            raise NotFoundError("Session not found")

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="SESSION_DELETE",
            target_type="ClassSession",
            target_id=sess.session_id,
            old_value=sess.as_dict(include_code=False),
        )
        self._effects.dispatch(log.items)

    def open(self, principal: Optional[Principal], session_id: int) -> ClassSession:
        sess, course = self._load(session_id)
        actor = require_course_staff(principal, course)

        new_state = transition(sess.state, SessionEvent.OPEN)
        code = sess.attendance_code
        if sess.uses_code and not code:
            code = generate_code(self._rng)

        if not self._sessions.update_state(
            session_id=sess.session_id,
            expected=sess.state,
            state=new_state,
            attendance_code=code,
        ):
            # Lost the race; report against whatever state won.
            transition(self._reload(sess.session_id).state, SessionEvent.OPEN)
            raise InvalidTransitionError("Session state changed concurrently")

        opened = replace(sess, state=new_state, attendance_code=code)

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="SESSION_OPEN",
            target_type="ClassSession",
            target_id=sess.session_id,
            old_value={"is_open": sess.is_open, "attendance_code": sess.attendance_code},
            new_value={"is_open": opened.is_open, "attendance_code": opened.attendance_code},
        )
        messages.attendance_open(
            log,
            session_id=sess.session_id,
            student_ids=self._courses.list_enrolled_student_ids(course.course_id),
        )
        self._effects.dispatch(log.items)
        return opened

    def regenerate_code(self, principal: Optional[Principal], session_id: int) -> ClassSession:
        sess, course = self._load(session_id)
        actor = require_course_staff(principal, course)
        if not sess.uses_code:
            raise WrongMethodError("Session does not use code attendance")

        code = generate_code(self._rng)
        while code == sess.attendance_code:
            code = generate_code(self._rng)

        if not self._sessions.set_code(session_id=sess.session_id, attendance_code=code):
            raise NotFoundError("Session not found")
        updated = replace(sess, attendance_code=code)

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="SESSION_CODE_REGENERATE",
            target_type="ClassSession",
            target_id=sess.session_id,
            old_value={"attendance_code": sess.attendance_code},
            new_value={"attendance_code": code},
        )
        self._effects.dispatch(log.items)
        return updated

    def close(self, principal: Optional[Principal], session_id: int) -> SessionCloseResult:
        sess, course = self._load(session_id)
        actor = require_course_staff(principal, course)

        new_state = transition(sess.state, SessionEvent.CLOSE)
        closed = replace(sess, state=new_state)

        with self._tx.transaction():
            if not self._sessions.set_state(session_id=sess.session_id, expected=sess.state, state=new_state):
                transition(self._reload(sess.session_id).state, SessionEvent.CLOSE)
                raise InvalidTransitionError("Session state changed concurrently")
            result = self._reconciler.reconcile(closed)
        closed = self._reload(sess.session_id)

        enrolled = self._courses.list_enrolled_student_ids(course.course_id)
        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="SESSION_CLOSE",
            target_type="ClassSession",
            target_id=sess.session_id,
            old_value={"is_open": sess.is_open, "is_closed": sess.is_closed},
            new_value={"is_open": closed.is_open, "is_closed": closed.is_closed, **result.as_dict()},
        )
        messages.attendance_close(log, student_ids=enrolled)
        self._queue_absence_warnings(log, course, enrolled)
        self._effects.dispatch(log.items)

        return SessionCloseResult(session=closed, reconciliation=result)

    def _queue_absence_warnings(self, log: EffectLog, course: Course, student_ids: Sequence[int]) -> None:
        if self._reports is None or not student_ids:
            return
        try:
            standings = self._reports.standings(course.course_id, student_ids)
            policy = self._reports.policy_for(course.course_id)
        except Exception:
            logger.exception("Could not compute absence warnings for course %s", course.course_id)
            return

        for s in standings:
            if s.effective_absences > 0 and s.effective_absences >= policy.max_absent - 1:
                messages.absence_warning(
                    log,
                    student_id=s.student_id,
                    course_title=course.title,
                    absences=s.effective_absences,
                    max_absent=policy.max_absent,
                )

    def code_qr_png(self, principal: Optional[Principal], session_id: int) -> bytes:
        sess, course = self._load(session_id)
        require_course_staff(principal, course)
        if not sess.uses_code:
            raise WrongMethodError("Session does not use code attendance")
        if not sess.attendance_code:
            raise InvalidTransitionError("No attendance code has been issued yet")
        return render_code_qr(sess.attendance_code)


def _as_datetime(value, field_name: str) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(str(value or ""))
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO datetime")
