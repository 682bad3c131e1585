from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceMethod, SessionState
from .model import ClassSession


class SessionRepository(Protocol):
    def get_by_id(self, session_id: int) -> Optional[ClassSession]:
        raise NotImplementedError

    def create(
        self,
        *,
        course_id: int,
        start_at: datetime,
        end_at: datetime,
        room: Optional[str],
        attendance_method: AttendanceMethod,
        week: Optional[int] = None,
    ) -> int:
        raise NotImplementedError

    def update_state(
        self,
        *,
        session_id: int,
        expected: SessionState,
        state: SessionState,
        attendance_code: Optional[str],
    ) -> bool:
        """Compare-and-set the lifecycle state.

        Returns False when the stored state is no longer `expected`.
        """

        raise NotImplementedError

    def set_state(self, *, session_id: int, expected: SessionState, state: SessionState) -> bool:
        """Compare-and-set the state only; the attendance code is left as stored."""

        raise NotImplementedError

    def set_code(self, *, session_id: int, attendance_code: str) -> bool:
        raise NotImplementedError

    def update_details(
        self,
        *,
        session_id: int,
        start_at: datetime,
        end_at: datetime,
        room: Optional[str],
        week: Optional[int],
    ) -> bool:
        raise NotImplementedError

    def set_method(
        self,
        *,
        session_id: int,
        attendance_method: AttendanceMethod,
        attendance_code: Optional[str],
    ) -> bool:
        raise NotImplementedError

    def delete(self, session_id: int) -> bool:
        """Remove a session. Raises SessionInUseError while rows still reference it."""

        raise NotImplementedError

    def list_for_course(self, course_id: int, *, state: Optional[SessionState] = None) -> Sequence[ClassSession]:
        """Sessions ordered by start time."""

        raise NotImplementedError
