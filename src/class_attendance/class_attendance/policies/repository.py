from __future__ import annotations

from typing import Optional, Protocol

from .model import AttendancePolicy


class PolicyRepository(Protocol):
    def get(self, course_id: int) -> Optional[AttendancePolicy]:
        raise NotImplementedError

    def upsert(self, *, course_id: int, max_absent: int, late_to_absent: int) -> AttendancePolicy:
        raise NotImplementedError
