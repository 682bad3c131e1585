"""Notification wording for each lifecycle event."""

from __future__ import annotations

from typing import Sequence

from ..core.enums import NotificationType, RequestStatus
from .model import EffectLog


def attendance_open(log: EffectLog, *, session_id: int, student_ids: Sequence[int]) -> None:
    log.notify(
        student_ids,
        type=NotificationType.ATTENDANCE_OPEN,
        title="Attendance is open",
        content="Attendance check has started. Check in now.",
        link=f"/student/attendance?sessionId={session_id}",
    )


def attendance_close(log: EffectLog, *, student_ids: Sequence[int]) -> None:
    log.notify(
        student_ids,
        type=NotificationType.ATTENDANCE_CLOSE,
        title="Attendance is closed",
        content="Attendance check has been closed.",
        link="/student/attendance",
    )


def _verdict(status: RequestStatus) -> str:
    return "approved" if status == RequestStatus.APPROVED else "rejected"


def excuse_result(log: EffectLog, *, student_id: int, status: RequestStatus, course_title: str) -> None:
    log.notify(
        [student_id],
        type=NotificationType.EXCUSE_RESULT,
        title=f"Excuse request {_verdict(status)}",
        content=f"Your excuse request for {course_title} was {_verdict(status)}.",
        link="/student/excuses",
    )


def appeal_result(log: EffectLog, *, student_id: int, status: RequestStatus, course_title: str) -> None:
    log.notify(
        [student_id],
        type=NotificationType.APPEAL_RESULT,
        title=f"Appeal {_verdict(status)}",
        content=f"Your attendance appeal for {course_title} was {_verdict(status)}.",
        link="/student/appeals",
    )


def absence_warning(log: EffectLog, *, student_id: int, course_title: str, absences: int, max_absent: int) -> None:
    danger = absences >= max_absent
    log.notify(
        [student_id],
        type=NotificationType.ABSENCE_WARNING,
        title="Absence limit reached" if danger else "Absence warning",
        content=(
            f"{course_title}: {absences} absence(s) counted against a limit of {max_absent}. "
            + ("Further absences fail the course." if danger else "Please watch your attendance.")
        ),
        link="/student/attendance",
    )
