from __future__ import annotations

from dataclasses import dataclass

from ..core.constants import DEFAULT_LATE_TO_ABSENT, DEFAULT_MAX_ABSENT


@dataclass(frozen=True)
class AttendancePolicy:
    """Per-course thresholds. `is_default` marks a policy that was never set."""

    course_id: int
    max_absent: int = DEFAULT_MAX_ABSENT
    late_to_absent: int = DEFAULT_LATE_TO_ABSENT
    is_default: bool = False

    def as_dict(self) -> dict:
        return {"max_absent": self.max_absent, "late_to_absent": self.late_to_absent}
