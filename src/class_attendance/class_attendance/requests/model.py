from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import format_ts
from ..core.enums import AttendanceStatus, RequestStatus


@dataclass(frozen=True)
class UploadedFile:
    """Upload as received from the HTTP layer, before storage."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ExcuseRequest:
    request_id: int
    session_id: int
    student_id: int
    reason: str
    status: RequestStatus
    created_at: datetime
    reason_code: Optional[str] = None
    files: Sequence[str] = field(default_factory=tuple)
    instructor_comment: Optional[str] = None
    decided_by: Optional[int] = None
    decided_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "session_id": self.session_id,
            "student_id": self.student_id,
            "reason": self.reason,
            "reason_code": self.reason_code,
            "files": list(self.files),
            "status": self.status.value,
            "instructor_comment": self.instructor_comment,
            "decided_by": self.decided_by,
            "decided_at": format_ts(self.decided_at),
            "created_at": format_ts(self.created_at),
        }


@dataclass(frozen=True)
class AppealRecord:
    appeal_id: int
    attendance_id: int
    student_id: int
    message: str
    status: RequestStatus
    created_at: datetime
    requested_status: Optional[AttendanceStatus] = None
    corrected_status: Optional[AttendanceStatus] = None
    instructor_comment: Optional[str] = None
    decided_by: Optional[int] = None
    decided_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return {
            "appeal_id": self.appeal_id,
            "attendance_id": self.attendance_id,
            "student_id": self.student_id,
            "message": self.message,
            "requested_status": self.requested_status.value if self.requested_status else None,
            "corrected_status": self.corrected_status.value if self.corrected_status else None,
            "status": self.status.value,
            "instructor_comment": self.instructor_comment,
            "decided_by": self.decided_by,
            "decided_at": format_ts(self.decided_at),
            "created_at": format_ts(self.created_at),
        }
