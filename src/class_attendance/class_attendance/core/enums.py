from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Principal role supplied by the identity provider."""

    ADMIN = "ADMIN"
    INSTRUCTOR = "INSTRUCTOR"
    STUDENT = "STUDENT"


class AttendanceStatus(str, Enum):
    """Status stored on an attendance record."""

    PRESENT = "PRESENT"
    LATE = "LATE"
    ABSENT = "ABSENT"
    EXCUSED = "EXCUSED"
    PENDING = "PENDING"


class AttendanceMethod(str, Enum):
    DIRECT = "DIRECT"
    CODE = "CODE"


class SessionState(str, Enum):
    """Lifecycle of a class session. CLOSED is terminal."""

    SCHEDULED = "SCHEDULED"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SessionEvent(str, Enum):
    OPEN = "OPEN"
    CLOSE = "CLOSE"


class RequestStatus(str, Enum):
    """Approval flow state for excuse requests and appeals."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class NotificationType(str, Enum):
    ATTENDANCE_OPEN = "ATTENDANCE_OPEN"
    ATTENDANCE_CLOSE = "ATTENDANCE_CLOSE"
    EXCUSE_RESULT = "EXCUSE_RESULT"
    APPEAL_RESULT = "APPEAL_RESULT"
    ABSENCE_WARNING = "ABSENCE_WARNING"


class RiskLevel(str, Enum):
    NORMAL = "NORMAL"
    WARNING = "WARNING"
    DANGER = "DANGER"
