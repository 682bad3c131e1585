from __future__ import annotations

from typing import Optional, Sequence

from .base import StandingCalculator
from ...core.constants import CONSECUTIVE_LATE_WARNING
from ...core.enums import AttendanceStatus, RiskLevel
from ...policies.model import AttendancePolicy
from ..model import StudentStanding


def longest_late_run(statuses: Sequence[Optional[AttendanceStatus]]) -> int:
    best = run = 0
    for s in statuses:
        run = run + 1 if s == AttendanceStatus.LATE else 0
        best = max(best, run)
    return best


class StandardStandingCalculator(StandingCalculator):
    """Standard rule: every `late_to_absent` lates count as one absence."""

    def standing(
        self,
        *,
        student_id: int,
        statuses: Sequence[Optional[AttendanceStatus]],
        policy: AttendancePolicy,
    ) -> StudentStanding:
        counts = {s: 0 for s in AttendanceStatus}
        for s in statuses:
            if s is not None:
                counts[s] += 1

        late = counts[AttendanceStatus.LATE]
        absent = counts[AttendanceStatus.ABSENT]
        late_conversions = late // policy.late_to_absent
        effective = absent + late_conversions

        total = len(statuses)
        attended = counts[AttendanceStatus.PRESENT] + late + counts[AttendanceStatus.EXCUSED]
        rate = round(attended / total * 100, 2) if total else 0.0

        run = longest_late_run(statuses)
        reasons: list[str] = []
        if effective >= policy.max_absent:
            level = RiskLevel.DANGER
            reasons.append(f"Absences {effective} reached the limit of {policy.max_absent}")
        elif effective >= policy.max_absent - 1:
            level = RiskLevel.WARNING
            reasons.append(f"Absences {effective} are one short of the limit of {policy.max_absent}")
        else:
            level = RiskLevel.NORMAL

        if run >= CONSECUTIVE_LATE_WARNING:
            if level == RiskLevel.NORMAL:
                level = RiskLevel.WARNING
            reasons.append(f"{run} consecutive late arrivals")

        if late_conversions:
            reasons.append(f"{late} late(s) converted to {late_conversions} absence(s)")

        return StudentStanding(
            student_id=int(student_id),
            total_sessions=total,
            present=counts[AttendanceStatus.PRESENT],
            late=late,
            absent=absent,
            excused=counts[AttendanceStatus.EXCUSED],
            pending=counts[AttendanceStatus.PENDING],
            late_conversions=late_conversions,
            effective_absences=effective,
            attendance_rate=rate,
            exceeds_limit=effective > policy.max_absent,
            max_consecutive_late=run,
            risk_level=level,
            reasons=tuple(reasons),
        )
