from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceStatus, RequestStatus
from .model import AppealRecord, ExcuseRequest


class RequestRepository(Protocol):
    # Excuse requests
    def create_excuse(
        self,
        *,
        session_id: int,
        student_id: int,
        reason: str,
        reason_code: Optional[str],
        files: Sequence[str],
    ) -> ExcuseRequest:
        """Raises DuplicateActiveRequestError when a PENDING or APPROVED
        excuse already exists for (session_id, student_id)."""

        raise NotImplementedError

    def get_excuse(self, *, request_id: int) -> Optional[ExcuseRequest]:
        raise NotImplementedError

    def find_active_excuse(self, *, session_id: int, student_id: int) -> Optional[ExcuseRequest]:
        raise NotImplementedError

    def list_excuses(
        self,
        *,
        status: Optional[RequestStatus] = None,
        student_id: Optional[int] = None,
        course_ids: Optional[Sequence[int]] = None,
        session_id: Optional[int] = None,
        limit: int = 200,
    ) -> Sequence[ExcuseRequest]:
        raise NotImplementedError

    def count_excuses_by_course(
        self, *, course_ids: Optional[Sequence[int]] = None
    ) -> Sequence[tuple[int, RequestStatus, int]]:
        """(course_id, status, count) rows; `course_ids=None` means every course."""

        raise NotImplementedError

    def decide_excuse(
        self,
        *,
        request_id: int,
        status: RequestStatus,
        decided_by: int,
        decided_at: datetime,
        instructor_comment: Optional[str] = None,
    ) -> bool:
        """Terminal write; only succeeds while the request is still PENDING."""

        raise NotImplementedError

    # Appeals
    def create_appeal(
        self,
        *,
        attendance_id: int,
        student_id: int,
        message: str,
        requested_status: Optional[AttendanceStatus],
    ) -> AppealRecord:
        """Raises DuplicateActiveRequestError when a PENDING or APPROVED
        appeal already exists for the attendance record."""

        raise NotImplementedError

    def get_appeal(self, *, appeal_id: int) -> Optional[AppealRecord]:
        raise NotImplementedError

    def find_active_appeal(self, *, attendance_id: int) -> Optional[AppealRecord]:
        raise NotImplementedError

    def list_appeals(
        self,
        *,
        status: Optional[RequestStatus] = None,
        student_id: Optional[int] = None,
        course_ids: Optional[Sequence[int]] = None,
        limit: int = 200,
    ) -> Sequence[AppealRecord]:
        raise NotImplementedError

    def decide_appeal(
        self,
        *,
        appeal_id: int,
        status: RequestStatus,
        decided_by: int,
        decided_at: datetime,
        corrected_status: Optional[AttendanceStatus] = None,
        instructor_comment: Optional[str] = None,
    ) -> bool:
        raise NotImplementedError
