from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.reconciliation import ReconciliationEngine
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceService
from .core.constants import ALLOWED_UPLOAD_TYPES, MAX_UPLOAD_BYTES, NOTIFICATION_POLL_SECONDS
from .courses.mysql_course_repository import MySQLCourseRepository
from .courses.repository import CourseRepository
from .database.connection import DBConfig, DatabaseConnection, TransactionScope
from .effects.mysql_sinks import MySQLAuditSink, MySQLNotificationSink
from .effects.runner import EffectRunner
from .effects.sinks import AuditSink, NotificationInbox
from .policies.mysql_policy_repository import MySQLPolicyRepository
from .policies.repository import PolicyRepository
from .policies.service import PolicyService
from .reports.service import AttendanceReportService
from .requests.mysql_request_repository import MySQLRequestRepository
from .requests.repository import RequestRepository
from .requests.service import RequestService
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.repository import SessionRepository
from .sessions.service import SessionService
from .storage.local_file_storage import LocalFileStorage
from .storage.repository import FileStorage


@dataclass(frozen=True)
class Container:
    tx: TransactionScope

    courses_repo: CourseRepository
    sessions_repo: SessionRepository
    attendance_repo: AttendanceRepository
    policies_repo: PolicyRepository
    requests_repo: RequestRepository
    notification_inbox: NotificationInbox
    audit_sink: AuditSink
    storage: FileStorage

    effects: EffectRunner
    policy_service: PolicyService
    report_service: AttendanceReportService
    session_service: SessionService
    attendance_service: AttendanceService
    request_service: RequestService

    notification_poll_seconds: int = NOTIFICATION_POLL_SECONDS


def assemble(
    *,
    tx: TransactionScope,
    courses_repo: CourseRepository,
    sessions_repo: SessionRepository,
    attendance_repo: AttendanceRepository,
    policies_repo: PolicyRepository,
    requests_repo: RequestRepository,
    notification_inbox: NotificationInbox,
    audit_sink: AuditSink,
    storage: FileStorage,
    allow_post_close_corrections: bool = True,
    allowed_upload_types: Optional[Iterable[str]] = None,
    max_upload_bytes: int = MAX_UPLOAD_BYTES,
    notification_poll_seconds: int = NOTIFICATION_POLL_SECONDS,
    clock=None,
    rng=None,
) -> Container:
    """Wire services on top of whatever repositories and sinks are given."""

    clock_kwargs = {"clock": clock} if clock is not None else {}

    effects = EffectRunner(notification_inbox, audit_sink)
    policy_service = PolicyService(policies_repo, courses_repo, effects)
    report_service = AttendanceReportService(
        attendance_repo, sessions_repo, courses_repo, policy_service, requests=requests_repo
    )
    reconciler = ReconciliationEngine(attendance_repo, courses_repo)
    session_service = SessionService(
        sessions_repo,
        courses_repo,
        reconciler,
        tx,
        effects,
        reports=report_service,
        attendance=attendance_repo,
        requests=requests_repo,
        rng=rng,
    )
    attendance_service = AttendanceService(
        attendance_repo,
        sessions_repo,
        courses_repo,
        tx,
        effects,
        allow_post_close_corrections=allow_post_close_corrections,
        **clock_kwargs,
    )
    request_service = RequestService(
        requests_repo,
        attendance_repo,
        sessions_repo,
        courses_repo,
        storage,
        tx,
        effects,
        allowed_upload_types=allowed_upload_types or ALLOWED_UPLOAD_TYPES,
        max_upload_bytes=max_upload_bytes,
        **clock_kwargs,
    )

    return Container(
        tx=tx,
        courses_repo=courses_repo,
        sessions_repo=sessions_repo,
        attendance_repo=attendance_repo,
        policies_repo=policies_repo,
        requests_repo=requests_repo,
        notification_inbox=notification_inbox,
        audit_sink=audit_sink,
        storage=storage,
        effects=effects,
        policy_service=policy_service,
        report_service=report_service,
        session_service=session_service,
        attendance_service=attendance_service,
        request_service=request_service,
        notification_poll_seconds=int(notification_poll_seconds),
    )


def build_container(settings) -> Container:
    db_config = getattr(settings, "DB_CONFIG")
    config = DBConfig(
        host=str(db_config["host"]),
        port=int(db_config.get("port", 3306)),
        user=str(db_config["user"]),
        password=str(db_config["password"]),
        database=str(db_config["database"]),
    )
    conn = DatabaseConnection.get_instance(config)

    return assemble(
        tx=conn,
        courses_repo=MySQLCourseRepository(conn),
        sessions_repo=MySQLSessionRepository(conn),
        attendance_repo=MySQLAttendanceRepository(conn),
        policies_repo=MySQLPolicyRepository(conn),
        requests_repo=MySQLRequestRepository(conn),
        notification_inbox=MySQLNotificationSink(conn),
        audit_sink=MySQLAuditSink(conn),
        storage=LocalFileStorage(
            getattr(settings, "UPLOAD_DIR", "uploads"),
            url_prefix=getattr(settings, "UPLOAD_URL_PREFIX", "/uploads"),
        ),
        allow_post_close_corrections=bool(getattr(settings, "ALLOW_POST_CLOSE_CORRECTIONS", True)),
        allowed_upload_types=getattr(settings, "ALLOWED_UPLOAD_TYPES", None),
        max_upload_bytes=int(getattr(settings, "MAX_UPLOAD_BYTES", MAX_UPLOAD_BYTES)),
        notification_poll_seconds=int(getattr(settings, "NOTIFICATION_POLL_SECONDS", NOTIFICATION_POLL_SECONDS)),
    )
