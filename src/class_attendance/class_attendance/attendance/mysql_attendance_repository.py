from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..core.enums import AttendanceStatus
from ..core.exceptions import DuplicateRecordError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_duplicate_key
from .model import AttendanceRecord
from .repository import AttendanceRepository


def _to_record(r: dict) -> AttendanceRecord:
    return AttendanceRecord(
        attendance_id=int(r["attendance_id"]),
        session_id=int(r["session_id"]),
        student_id=int(r["student_id"]),
        status=AttendanceStatus(r["status"]),
        checked_at=r.get("checked_at"),
    )


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT attendance_id, session_id, student_id, status, checked_at
                FROM attendance_records
                WHERE attendance_id=%s
                """,
                (int(attendance_id),),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def get_for_session_and_student(self, session_id: int, student_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT attendance_id, session_id, student_id, status, checked_at
                FROM attendance_records
                WHERE session_id=%s AND student_id=%s
                """,
                (int(session_id), int(student_id)),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def list_for_session(self, session_id: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT attendance_id, session_id, student_id, status, checked_at
                FROM attendance_records
                WHERE session_id=%s
                ORDER BY student_id ASC
                """,
                (int(session_id),),
            )
            return [_to_record(r) for r in fetchall(cur)]

    def list_for_course(self, course_id: int, *, student_id: Optional[int] = None) -> Sequence[AttendanceRecord]:
        clauses = ["cs.course_id=%s"]
        params: list[object] = [int(course_id)]
        if student_id is not None:
            clauses.append("ar.student_id=%s")
            params.append(int(student_id))

        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT ar.attendance_id, ar.session_id, ar.student_id, ar.status, ar.checked_at
                FROM attendance_records ar
                JOIN class_sessions cs ON cs.session_id = ar.session_id
                WHERE {where}
                ORDER BY cs.start_at ASC, ar.student_id ASC
                """,
                tuple(params),
            )
            return [_to_record(r) for r in fetchall(cur)]

    def create(
        self,
        *,
        session_id: int,
        student_id: int,
        status: AttendanceStatus,
        checked_at: Optional[datetime] = None,
    ) -> AttendanceRecord:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO attendance_records(session_id, student_id, status, checked_at)
                    VALUES(%s,%s,%s,%s)
                    """,
                    (int(session_id), int(student_id), status.value, checked_at),
                )
                attendance_id = int(cur.lastrowid)
        except mysql.connector.IntegrityError as e:
            if is_duplicate_key(e):
                raise DuplicateRecordError("An attendance record already exists for this student and session")
            raise

        return AttendanceRecord(
            attendance_id=attendance_id,
            session_id=int(session_id),
            student_id=int(student_id),
            status=status,
            checked_at=checked_at,
        )

    def update_status(
        self,
        *,
        attendance_id: int,
        status: AttendanceStatus,
        expected: Optional[AttendanceStatus] = None,
        checked_at: Optional[datetime] = None,
    ) -> bool:
        sets = ["status=%s"]
        params: list[object] = [status.value]
        if checked_at is not None:
            sets.append("checked_at=%s")
            params.append(checked_at)

        clauses = ["attendance_id=%s"]
        params.append(int(attendance_id))
        if expected is not None:
            clauses.append("status=%s")
            params.append(expected.value)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE attendance_records SET {', '.join(sets)} WHERE {' AND '.join(clauses)}",
                tuple(params),
            )
            return cur.rowcount > 0
