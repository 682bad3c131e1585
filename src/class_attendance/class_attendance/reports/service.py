from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence

from ..access.guards import is_course_staff, require_course_staff, require_principal
from ..access.model import Principal
from ..attendance.repository import AttendanceRepository
from ..core.constants import RISK_TOP_LIMIT
from ..core.enums import RequestStatus, RiskLevel, Role, SessionState
from ..core.exceptions import AuthorizationError, NotEnrolledError, NotFoundError
from ..courses.model import Course
from ..courses.repository import CourseRepository
from ..policies.model import AttendancePolicy
from ..policies.service import PolicyService
from ..requests.repository import RequestRepository
from ..sessions.repository import SessionRepository
from .calculator.base import StandingCalculator
from .calculator.standard_calculator import StandardStandingCalculator
from .model import CourseExcuseTally, CourseReport, ExcuseApprovalReport, ExcuseTally, RiskReport, StudentStanding


class AttendanceReportService:
    """Aggregates the ledger over a course's CLOSED sessions.

    Policy is applied on every read, so an approved excuse or appeal shows up
    in the next report without any stored recomputation.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        sessions: SessionRepository,
        courses: CourseRepository,
        policies: PolicyService,
        *,
        calculator: Optional[StandingCalculator] = None,
        requests: Optional[RequestRepository] = None,
    ):
        self._attendance = attendance
        self._sessions = sessions
        self._courses = courses
        self._policies = policies
        self._calculator = calculator or StandardStandingCalculator()
        self._requests = requests

    def _get_course(self, course_id: int) -> Course:
        course = self._courses.get_by_id(int(course_id))
        if not course:
            raise NotFoundError("Course not found")
        return course

    def standings(self, course_id: int, student_ids: Optional[Iterable[int]] = None) -> Sequence[StudentStanding]:
        """Standings for the given students (default: everyone enrolled)."""

        policy = self._policies.get_policy(int(course_id))
        closed = [s.session_id for s in self._sessions.list_for_course(int(course_id), state=SessionState.CLOSED)]
        closed_ids = set(closed)

        if student_ids is None:
            student_ids = self._courses.list_enrolled_student_ids(int(course_id))
        wanted = sorted({int(s) for s in student_ids})

        by_student: Dict[int, dict] = {s: {} for s in wanted}
        for rec in self._attendance.list_for_course(int(course_id)):
            if rec.student_id in by_student and rec.session_id in closed_ids:
                by_student[rec.student_id][rec.session_id] = rec.status

        return [
            self._calculator.standing(
                student_id=student_id,
                statuses=[by_student[student_id].get(session_id) for session_id in closed],
                policy=policy,
            )
            for student_id in wanted
        ]

    def policy_for(self, course_id: int) -> AttendancePolicy:
        return self._policies.get_policy(int(course_id))

    def standing_for(self, course_id: int, student_id: int) -> StudentStanding:
        return self.standings(course_id, [student_id])[0]

    def course_report(self, principal: Optional[Principal], course_id: int) -> CourseReport:
        principal = require_principal(principal)
        course = self._get_course(course_id)

        if is_course_staff(principal, course):
            student_ids = None
        elif principal.is_student:
            if not self._courses.is_enrolled(course.course_id, principal.user_id):
                raise NotEnrolledError("Student is not enrolled in this course")
            student_ids = [principal.user_id]
        else:
            raise AuthorizationError("Only the course instructor or an administrator can do this")

        students = self.standings(course.course_id, student_ids)
        total = len(self._sessions.list_for_course(course.course_id, state=SessionState.CLOSED))
        return CourseReport(
            course=course,
            policy=self._policies.get_policy(course.course_id),
            total_sessions=total,
            students=students,
        )

    def risk_report(self, principal: Optional[Principal], course_id: int) -> RiskReport:
        course = self._get_course(course_id)
        require_course_staff(principal, course)

        students = self.standings(course.course_id)
        top_absences = sorted(
            (s for s in students if s.effective_absences > 0),
            key=lambda s: (-s.effective_absences, s.student_id),
        )[:RISK_TOP_LIMIT]
        top_late = sorted(
            (s for s in students if s.max_consecutive_late > 0),
            key=lambda s: (-s.max_consecutive_late, s.student_id),
        )[:RISK_TOP_LIMIT]

        return RiskReport(
            course=course,
            policy=self._policies.get_policy(course.course_id),
            danger=[s for s in students if s.risk_level == RiskLevel.DANGER],
            warning=[s for s in students if s.risk_level == RiskLevel.WARNING],
            normal=[s for s in students if s.risk_level == RiskLevel.NORMAL],
            top_absences=top_absences,
            top_consecutive_late=top_late,
        )

    def excuse_report(self, principal: Optional[Principal], course_id: Optional[int] = None) -> ExcuseApprovalReport:
        """Excuse approval rates: instructors see their own courses, admins every course."""

        principal = require_principal(principal)
        if self._requests is None:
            raise NotFoundError("Excuse statistics are not available")

        if course_id is not None:
            course = self._get_course(course_id)
            require_course_staff(principal, course)
            scope: Optional[list] = [course.course_id]
        elif principal.role == Role.ADMIN:
            scope = None
        elif principal.role == Role.INSTRUCTOR:
            scope = [c.course_id for c in self._courses.list_courses_for_instructor(principal.user_id)]
        else:
            raise AuthorizationError("Only the course instructor or an administrator can do this")

        counts: Dict[int, Dict[RequestStatus, int]] = {}
        for cid, status, n in self._requests.count_excuses_by_course(course_ids=scope):
            per_status = counts.setdefault(cid, {})
            per_status[status] = per_status.get(status, 0) + n

        by_course = []
        for cid in sorted(counts):
            course = self._courses.get_by_id(cid)
            if course is not None:
                by_course.append(CourseExcuseTally(course=course, tally=_tally(counts[cid])))

        overall: Dict[RequestStatus, int] = {}
        for per_status in counts.values():
            for status, n in per_status.items():
                overall[status] = overall.get(status, 0) + n

        return ExcuseApprovalReport(
            overall=_tally(overall),
            by_course=by_course,
            course_id=int(course_id) if course_id is not None else None,
        )


def _tally(per_status: Dict[RequestStatus, int]) -> ExcuseTally:
    return ExcuseTally(
        total=sum(per_status.values()),
        approved=per_status.get(RequestStatus.APPROVED, 0),
        rejected=per_status.get(RequestStatus.REJECTED, 0),
        pending=per_status.get(RequestStatus.PENDING, 0),
    )
