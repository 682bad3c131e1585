from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..core.enums import AttendanceStatus, RequestStatus
from ..core.exceptions import DuplicateActiveRequestError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_json, is_duplicate_key, to_json
from .model import AppealRecord, ExcuseRequest
from .repository import RequestRepository

_EXCUSE_COLUMNS = """
    e.request_id, e.session_id, e.student_id, e.reason, e.reason_code, e.files,
    e.status, e.instructor_comment, e.decided_by, e.decided_at, e.created_at
"""

_APPEAL_COLUMNS = """
    a.appeal_id, a.attendance_id, a.student_id, a.message, a.requested_status,
    a.corrected_status, a.status, a.instructor_comment, a.decided_by, a.decided_at, a.created_at
"""


def _to_excuse(r: dict) -> ExcuseRequest:
    return ExcuseRequest(
        request_id=int(r["request_id"]),
        session_id=int(r["session_id"]),
        student_id=int(r["student_id"]),
        reason=r["reason"],
        reason_code=r.get("reason_code"),
        files=tuple(from_json(r.get("files")) or ()),
        status=RequestStatus(r["status"]),
        instructor_comment=r.get("instructor_comment"),
        decided_by=r.get("decided_by"),
        decided_at=r.get("decided_at"),
        created_at=r["created_at"],
    )


def _optional_status(value) -> Optional[AttendanceStatus]:
    return AttendanceStatus(value) if value else None


def _to_appeal(r: dict) -> AppealRecord:
    return AppealRecord(
        appeal_id=int(r["appeal_id"]),
        attendance_id=int(r["attendance_id"]),
        student_id=int(r["student_id"]),
        message=r["message"],
        requested_status=_optional_status(r.get("requested_status")),
        corrected_status=_optional_status(r.get("corrected_status")),
        status=RequestStatus(r["status"]),
        instructor_comment=r.get("instructor_comment"),
        decided_by=r.get("decided_by"),
        decided_at=r.get("decided_at"),
        created_at=r["created_at"],
    )


def _in_clause(column: str, values: Sequence[int]) -> str:
    return f"{column} IN ({', '.join(['%s'] * len(values))})"


class MySQLRequestRepository(RequestRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    # -------- Excuse requests --------
    def create_excuse(
        self,
        *,
        session_id: int,
        student_id: int,
        reason: str,
        reason_code: Optional[str],
        files: Sequence[str],
    ) -> ExcuseRequest:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO excuse_requests(session_id, student_id, reason, reason_code, files, status)
                    VALUES(%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        int(session_id),
                        int(student_id),
                        reason,
                        reason_code,
                        to_json(list(files)),
                        RequestStatus.PENDING.value,
                    ),
                )
                request_id = int(cur.lastrowid)
        except mysql.connector.IntegrityError as e:
            if is_duplicate_key(e):
                raise DuplicateActiveRequestError("An excuse request for this session is already pending or approved")
            raise

        created = self.get_excuse(request_id=request_id)
        assert created is not None
        return created

    def get_excuse(self, *, request_id: int) -> Optional[ExcuseRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_EXCUSE_COLUMNS} FROM excuse_requests e WHERE e.request_id=%s",
                (int(request_id),),
            )
            r = fetchone(cur)
            return _to_excuse(r) if r else None

    def find_active_excuse(self, *, session_id: int, student_id: int) -> Optional[ExcuseRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_EXCUSE_COLUMNS}
                FROM excuse_requests e
                WHERE e.session_id=%s AND e.student_id=%s AND e.status IN (%s,%s)
                LIMIT 1
                """,
                (int(session_id), int(student_id), RequestStatus.PENDING.value, RequestStatus.APPROVED.value),
            )
            r = fetchone(cur)
            return _to_excuse(r) if r else None

    def list_excuses(
        self,
        *,
        status: Optional[RequestStatus] = None,
        student_id: Optional[int] = None,
        course_ids: Optional[Sequence[int]] = None,
        session_id: Optional[int] = None,
        limit: int = 200,
    ) -> Sequence[ExcuseRequest]:
        clauses = ["1=1"]
        params: list[object] = []

        if status is not None:
            clauses.append("e.status=%s")
            params.append(status.value)
        if student_id is not None:
            clauses.append("e.student_id=%s")
            params.append(int(student_id))
        if session_id is not None:
            clauses.append("e.session_id=%s")
            params.append(int(session_id))
        if course_ids is not None:
            if not course_ids:
                return []
            clauses.append(_in_clause("cs.course_id", course_ids))
            params.extend(int(c) for c in course_ids)

        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_EXCUSE_COLUMNS}
                FROM excuse_requests e
                JOIN class_sessions cs ON cs.session_id = e.session_id
                WHERE {where}
                ORDER BY e.created_at DESC, e.request_id DESC
                LIMIT %s
                """,
                tuple(params + [int(limit)]),
            )
            return [_to_excuse(r) for r in fetchall(cur)]

    def count_excuses_by_course(
        self, *, course_ids: Optional[Sequence[int]] = None
    ) -> Sequence[tuple[int, RequestStatus, int]]:
        where = "1=1"
        params: list[object] = []
        if course_ids is not None:
            if not course_ids:
                return []
            where = _in_clause("cs.course_id", course_ids)
            params.extend(int(c) for c in course_ids)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT cs.course_id, e.status, COUNT(*) AS n
                FROM excuse_requests e
                JOIN class_sessions cs ON cs.session_id = e.session_id
                WHERE {where}
                GROUP BY cs.course_id, e.status
                ORDER BY cs.course_id
                """,
                tuple(params),
            )
            return [(int(r["course_id"]), RequestStatus(r["status"]), int(r["n"])) for r in fetchall(cur)]

    def decide_excuse(
        self,
        *,
        request_id: int,
        status: RequestStatus,
        decided_by: int,
        decided_at: datetime,
        instructor_comment: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE excuse_requests
                SET status=%s, decided_by=%s, decided_at=%s, instructor_comment=%s
                WHERE request_id=%s AND status=%s
                """,
                (
                    status.value,
                    int(decided_by),
                    decided_at,
                    instructor_comment,
                    int(request_id),
                    RequestStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0

    # -------- Appeals --------
    def create_appeal(
        self,
        *,
        attendance_id: int,
        student_id: int,
        message: str,
        requested_status: Optional[AttendanceStatus],
    ) -> AppealRecord:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO appeals(attendance_id, student_id, message, requested_status, status)
                    VALUES(%s,%s,%s,%s,%s)
                    """,
                    (
                        int(attendance_id),
                        int(student_id),
                        message,
                        requested_status.value if requested_status else None,
                        RequestStatus.PENDING.value,
                    ),
                )
                appeal_id = int(cur.lastrowid)
        except mysql.connector.IntegrityError as e:
            if is_duplicate_key(e):
                raise DuplicateActiveRequestError("An appeal for this record is already pending or approved")
            raise

        created = self.get_appeal(appeal_id=appeal_id)
        assert created is not None
        return created

    def get_appeal(self, *, appeal_id: int) -> Optional[AppealRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_APPEAL_COLUMNS} FROM appeals a WHERE a.appeal_id=%s",
                (int(appeal_id),),
            )
            r = fetchone(cur)
            return _to_appeal(r) if r else None

    def find_active_appeal(self, *, attendance_id: int) -> Optional[AppealRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_APPEAL_COLUMNS}
                FROM appeals a
                WHERE a.attendance_id=%s AND a.status IN (%s,%s)
                LIMIT 1
                """,
                (int(attendance_id), RequestStatus.PENDING.value, RequestStatus.APPROVED.value),
            )
            r = fetchone(cur)
            return _to_appeal(r) if r else None

    def list_appeals(
        self,
        *,
        status: Optional[RequestStatus] = None,
        student_id: Optional[int] = None,
        course_ids: Optional[Sequence[int]] = None,
        limit: int = 200,
    ) -> Sequence[AppealRecord]:
        clauses = ["1=1"]
        params: list[object] = []

        if status is not None:
            clauses.append("a.status=%s")
            params.append(status.value)
        if student_id is not None:
            clauses.append("a.student_id=%s")
            params.append(int(student_id))
        if course_ids is not None:
            if not course_ids:
                return []
            clauses.append(_in_clause("cs.course_id", course_ids))
            params.extend(int(c) for c in course_ids)

        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_APPEAL_COLUMNS}
                FROM appeals a
                JOIN attendance_records ar ON ar.attendance_id = a.attendance_id
                JOIN class_sessions cs ON cs.session_id = ar.session_id
                WHERE {where}
                ORDER BY a.created_at DESC, a.appeal_id DESC
                LIMIT %s
                """,
                tuple(params + [int(limit)]),
            )
            return [_to_appeal(r) for r in fetchall(cur)]

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
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE appeals
                SET status=%s, decided_by=%s, decided_at=%s, corrected_status=%s, instructor_comment=%s
                WHERE appeal_id=%s AND status=%s
                """,
                (
                    status.value,
                    int(decided_by),
                    decided_at,
                    corrected_status.value if corrected_status else None,
                    instructor_comment,
                    int(appeal_id),
                    RequestStatus.PENDING.value,
                ),
            )
            return cur.rowcount > 0
