from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from ...core.enums import AttendanceStatus
from ...policies.model import AttendancePolicy
from ..model import StudentStanding


class StandingCalculator(ABC):
    """Calculator interface (Strategy Pattern for attendance standing)."""

    @abstractmethod
    def standing(
        self,
        *,
        student_id: int,
        statuses: Sequence[Optional[AttendanceStatus]],
        policy: AttendancePolicy,
    ) -> StudentStanding:
        """`statuses` holds one entry per closed session in start order.

        None means the student has no record for that session.
        """

        raise NotImplementedError
