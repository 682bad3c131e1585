from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Iterable, Optional, Sequence

from ..access.guards import is_course_staff, require_course_staff, require_principal, require_student
from ..access.model import Principal
from ..attendance.model import SETTLED_STATUSES, AttendanceRecord
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import now_local
from ..common.validators import require_enum, require_non_empty
from ..core.constants import ALLOWED_UPLOAD_TYPES, DEFAULT_LIST_LIMIT, MAX_UPLOAD_BYTES
from ..core.enums import AttendanceStatus, RequestStatus, Role
from ..core.exceptions import (
    AlreadyDecidedError,
    AuthorizationError,
    DuplicateActiveRequestError,
    DuplicateRecordError,
    FileTooLargeError,
    NotEnrolledError,
    NotFoundError,
    UnsupportedFileTypeError,
    ValidationError,
)
from ..courses.model import Course
from ..courses.repository import CourseRepository
from ..database.connection import TransactionScope
from ..effects import messages
from ..effects.model import EffectLog
from ..effects.runner import EffectRunner
from ..sessions.model import ClassSession
from ..sessions.repository import SessionRepository
from ..storage.repository import FileStorage
from .model import AppealRecord, ExcuseRequest, UploadedFile
from .repository import RequestRepository

logger = logging.getLogger(__name__)

DECISIONS = (RequestStatus.APPROVED, RequestStatus.REJECTED)
CORRECTABLE_STATUSES = SETTLED_STATUSES


def _clean_comment(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


class RequestService:
    """Excuse requests (before the fact) and appeals (after the fact).

    Approval writes the ledger and the request's terminal status in one
    transaction; notifications and audit entries follow the commit.
    """

    def __init__(
        self,
        requests: RequestRepository,
        attendance: AttendanceRepository,
        sessions: SessionRepository,
        courses: CourseRepository,
        storage: FileStorage,
        tx: TransactionScope,
        effects: EffectRunner,
        *,
        allowed_upload_types: Iterable[str] = ALLOWED_UPLOAD_TYPES,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        clock: Callable = now_local,
    ):
        self._requests = requests
        self._attendance = attendance
        self._sessions = sessions
        self._courses = courses
        self._storage = storage
        self._tx = tx
        self._effects = effects
        self._allowed_types = frozenset(allowed_upload_types)
        self._max_bytes = int(max_upload_bytes)
        self._clock = clock

    def _load_session(self, session_id: int) -> tuple[ClassSession, Course]:
        sess = self._sessions.get_by_id(int(session_id))
        if not sess:
            raise NotFoundError("Session not found")
        course = self._courses.get_by_id(sess.course_id)
        if not course:
            raise NotFoundError("Course not found")
        return sess, course

    def _load_record(self, attendance_id: int) -> tuple[AttendanceRecord, ClassSession, Course]:
        rec = self._attendance.get_by_id(int(attendance_id))
        if not rec:
            raise NotFoundError("Attendance record not found")
        sess, course = self._load_session(rec.session_id)
        return rec, sess, course

    def _check_files(self, files: Sequence[UploadedFile]) -> None:
        for f in files:
            if f.content_type not in self._allowed_types:
                raise UnsupportedFileTypeError(f"File type not allowed: {f.content_type or 'unknown'}")
            if f.size > self._max_bytes:
                raise FileTooLargeError(f"File exceeds the {self._max_bytes // (1024 * 1024)} MB limit")

    # -------- Excuse requests --------
    def submit_excuse(
        self,
        principal: Optional[Principal],
        *,
        session_id: int,
        reason: str,
        reason_code: Optional[str] = None,
        files: Sequence[UploadedFile] = (),
    ) -> ExcuseRequest:
        student = require_student(principal)
        sess, course = self._load_session(session_id)
        if not self._courses.is_enrolled(course.course_id, student.user_id):
            raise NotEnrolledError("Student is not enrolled in this course")

        reason = require_non_empty(reason, "reason")
        files = list(files or ())
        self._check_files(files)

        if self._requests.find_active_excuse(session_id=sess.session_id, student_id=student.user_id):
            raise DuplicateActiveRequestError("An excuse request for this session is already pending or approved")

        urls = [self._storage.store(f.data, f.filename, f.content_type) for f in files]
        excuse = self._requests.create_excuse(
            session_id=sess.session_id,
            student_id=student.user_id,
            reason=reason,
            reason_code=_clean_comment(reason_code),
            files=urls,
        )

        log = EffectLog()
        log.audit(
            actor_id=student.user_id,
            action="EXCUSE_CREATE",
            target_type="ExcuseRequest",
            target_id=excuse.request_id,
            new_value={"session_id": sess.session_id, "reason_code": excuse.reason_code, "files": len(urls)},
        )
        self._effects.dispatch(log.items)
        return excuse

    def decide_excuse(
        self,
        principal: Optional[Principal],
        *,
        request_id: int,
        decision,
        comment: Optional[str] = None,
    ) -> ExcuseRequest:
        excuse = self._requests.get_excuse(request_id=int(request_id))
        if not excuse:
            raise NotFoundError("Excuse request not found")
        sess, course = self._load_session(excuse.session_id)
        actor = require_course_staff(principal, course)
        decision = require_enum(decision, RequestStatus, "decision", allowed=DECISIONS)
        if excuse.status != RequestStatus.PENDING:
            raise AlreadyDecidedError("Excuse request has already been decided")

        now = self._clock()
        comment = _clean_comment(comment)
        ledger_change = None

        with self._tx.transaction():
            if not self._requests.decide_excuse(
                request_id=excuse.request_id,
                status=decision,
                decided_by=actor.user_id,
                decided_at=now,
                instructor_comment=comment,
            ):
                raise AlreadyDecidedError("Excuse request has already been decided")
            if decision == RequestStatus.APPROVED:
                ledger_change = self._set_status(sess.session_id, excuse.student_id, AttendanceStatus.EXCUSED)

        decided = replace(excuse, status=decision, decided_by=actor.user_id, decided_at=now, instructor_comment=comment)

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="EXCUSE_APPROVE" if decision == RequestStatus.APPROVED else "EXCUSE_REJECT",
            target_type="ExcuseRequest",
            target_id=excuse.request_id,
            old_value={"status": excuse.status.value},
            new_value={"status": decision.value, "instructor_comment": comment},
        )
        self._audit_ledger_change(log, actor, ledger_change)
        messages.excuse_result(log, student_id=excuse.student_id, status=decision, course_title=course.title)
        self._effects.dispatch(log.items)
        return decided

    def _set_status(self, session_id: int, student_id: int, status: AttendanceStatus):
        """Write `status` to the (session, student) record, creating it when missing.

        Returns (attendance_id, old_status or None), or None when unchanged.
        """

        rec = self._attendance.get_for_session_and_student(session_id, student_id)
        if rec is None:
            try:
                created = self._attendance.create(session_id=session_id, student_id=student_id, status=status)
                return created.attendance_id, None
            except DuplicateRecordError:
                rec = self._attendance.get_for_session_and_student(session_id, student_id)
                if rec is None:
                    raise
        if rec.status == status:
            return None
        self._attendance.update_status(attendance_id=rec.attendance_id, status=status)
        return rec.attendance_id, rec.status

    @staticmethod
    def _audit_ledger_change(log: EffectLog, actor: Principal, change, new_status: AttendanceStatus = AttendanceStatus.EXCUSED) -> None:
        if change is None:
            return
        attendance_id, old_status = change
        log.audit(
            actor_id=actor.user_id,
            action="ATTENDANCE_STATUS_CHANGE",
            target_type="Attendance",
            target_id=attendance_id,
            old_value={"status": old_status.value} if old_status else None,
            new_value={"status": new_status.value},
        )

    # -------- Appeals --------
    def submit_appeal(
        self,
        principal: Optional[Principal],
        *,
        attendance_id: int,
        message: str,
        requested_status=None,
    ) -> AppealRecord:
        student = require_student(principal)
        rec, _, course = self._load_record(attendance_id)
        if rec.student_id != student.user_id:
            raise AuthorizationError("Students can only appeal their own attendance")
        if not self._courses.is_enrolled(course.course_id, student.user_id):
            raise NotEnrolledError("Student is not enrolled in this course")

        message = require_non_empty(message, "message")
        if requested_status not in (None, ""):
            requested_status = require_enum(
                requested_status, AttendanceStatus, "requested_status", allowed=CORRECTABLE_STATUSES
            )
        else:
            requested_status = None

        if self._requests.find_active_appeal(attendance_id=rec.attendance_id):
            raise DuplicateActiveRequestError("An appeal for this record is already pending or approved")

        appeal = self._requests.create_appeal(
            attendance_id=rec.attendance_id,
            student_id=student.user_id,
            message=message,
            requested_status=requested_status,
        )

        log = EffectLog()
        log.audit(
            actor_id=student.user_id,
            action="APPEAL_CREATE",
            target_type="Appeal",
            target_id=appeal.appeal_id,
            new_value={
                "attendance_id": rec.attendance_id,
                "current_status": rec.status.value,
                "requested_status": requested_status.value if requested_status else None,
            },
        )
        self._effects.dispatch(log.items)
        return appeal

    def decide_appeal(
        self,
        principal: Optional[Principal],
        *,
        appeal_id: int,
        decision,
        corrected_status=None,
        comment: Optional[str] = None,
    ) -> AppealRecord:
        appeal = self._requests.get_appeal(appeal_id=int(appeal_id))
        if not appeal:
            raise NotFoundError("Appeal not found")
        rec, _, course = self._load_record(appeal.attendance_id)
        actor = require_course_staff(principal, course)
        decision = require_enum(decision, RequestStatus, "decision", allowed=DECISIONS)
        if appeal.status != RequestStatus.PENDING:
            raise AlreadyDecidedError("Appeal has already been decided")

        corrected = None
        if decision == RequestStatus.APPROVED:
            if corrected_status in (None, ""):
                corrected_status = appeal.requested_status
            if corrected_status is None:
                raise ValidationError("corrected_status is required to approve an appeal")
            corrected = require_enum(corrected_status, AttendanceStatus, "corrected_status", allowed=CORRECTABLE_STATUSES)

        now = self._clock()
        comment = _clean_comment(comment)

        with self._tx.transaction():
            if not self._requests.decide_appeal(
                appeal_id=appeal.appeal_id,
                status=decision,
                decided_by=actor.user_id,
                decided_at=now,
                corrected_status=corrected,
                instructor_comment=comment,
            ):
                raise AlreadyDecidedError("Appeal has already been decided")
            if corrected is not None and corrected != rec.status:
                self._attendance.update_status(attendance_id=rec.attendance_id, status=corrected)

        decided = replace(
            appeal,
            status=decision,
            corrected_status=corrected,
            decided_by=actor.user_id,
            decided_at=now,
            instructor_comment=comment,
        )

        log = EffectLog()
        log.audit(
            actor_id=actor.user_id,
            action="APPEAL_APPROVE" if decision == RequestStatus.APPROVED else "APPEAL_REJECT",
            target_type="Appeal",
            target_id=appeal.appeal_id,
            old_value={"status": appeal.status.value},
            new_value={
                "status": decision.value,
                "corrected_status": corrected.value if corrected else None,
                "instructor_comment": comment,
            },
        )
        if corrected is not None and corrected != rec.status:
            self._audit_ledger_change(log, actor, (rec.attendance_id, rec.status), corrected)
        messages.appeal_result(log, student_id=appeal.student_id, status=decision, course_title=course.title)
        self._effects.dispatch(log.items)
        return decided

    # -------- Listing --------
    def _scope(self, principal: Principal, course_id: Optional[int]) -> dict:
        """Repository filters that restrict a listing to what `principal` may see."""

        if principal.role == Role.STUDENT:
            scope: dict = {"student_id": principal.user_id}
            if course_id is not None:
                scope["course_ids"] = [int(course_id)]
            return scope

        if principal.role == Role.INSTRUCTOR:
            own = [c.course_id for c in self._courses.list_courses_for_instructor(principal.user_id)]
            if course_id is not None:
                if int(course_id) not in own:
                    raise AuthorizationError("Only the course instructor or an administrator can do this")
                own = [int(course_id)]
            return {"course_ids": own}

        return {"course_ids": [int(course_id)]} if course_id is not None else {}

    def list_excuses(
        self,
        principal: Optional[Principal],
        *,
        status=None,
        course_id: Optional[int] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[ExcuseRequest]:
        principal = require_principal(principal)
        status = require_enum(status, RequestStatus, "status") if status not in (None, "") else None
        return self._requests.list_excuses(status=status, limit=int(limit), **self._scope(principal, course_id))

    def list_appeals(
        self,
        principal: Optional[Principal],
        *,
        status=None,
        course_id: Optional[int] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[AppealRecord]:
        principal = require_principal(principal)
        status = require_enum(status, RequestStatus, "status") if status not in (None, "") else None
        return self._requests.list_appeals(status=status, limit=int(limit), **self._scope(principal, course_id))

    def get_excuse(self, principal: Optional[Principal], request_id: int) -> ExcuseRequest:
        principal = require_principal(principal)
        excuse = self._requests.get_excuse(request_id=int(request_id))
        if not excuse:
            raise NotFoundError("Excuse request not found")
        _, course = self._load_session(excuse.session_id)
        self._require_visible(principal, course, excuse.student_id)
        return excuse

    def get_appeal(self, principal: Optional[Principal], appeal_id: int) -> AppealRecord:
        principal = require_principal(principal)
        appeal = self._requests.get_appeal(appeal_id=int(appeal_id))
        if not appeal:
            raise NotFoundError("Appeal not found")
        _, _, course = self._load_record(appeal.attendance_id)
        self._require_visible(principal, course, appeal.student_id)
        return appeal

    @staticmethod
    def _require_visible(principal: Principal, course: Course, owner_id: int) -> None:
        if is_course_staff(principal, course):
            return
        if principal.is_student and principal.user_id == owner_id:
            return
        raise AuthorizationError("You cannot view this request")
