from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..core.enums import AttendanceMethod, SessionState
from ..core.exceptions import SessionInUseError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_row_referenced
from .model import ClassSession
from .repository import SessionRepository

_COLUMNS = "session_id, course_id, week, start_at, end_at, room, attendance_method, attendance_code, state"


def _to_session(r: dict) -> ClassSession:
    return ClassSession(
        session_id=int(r["session_id"]),
        course_id=int(r["course_id"]),
        week=int(r["week"]) if r.get("week") is not None else None,
        start_at=r["start_at"],
        end_at=r["end_at"],
        room=r.get("room"),
        attendance_method=AttendanceMethod(r["attendance_method"]),
        attendance_code=r.get("attendance_code"),
        state=SessionState(r["state"]),
    )


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, session_id: int) -> Optional[ClassSession]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM class_sessions WHERE session_id=%s", (int(session_id),))
            r = fetchone(cur)
            return _to_session(r) if r else None

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
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO class_sessions(course_id, week, start_at, end_at, room, attendance_method, state)
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(course_id),
                    week,
                    start_at,
                    end_at,
                    room,
                    attendance_method.value,
                    SessionState.SCHEDULED.value,
                ),
            )
            return int(cur.lastrowid)

    def update_state(
        self,
        *,
        session_id: int,
        expected: SessionState,
        state: SessionState,
        attendance_code: Optional[str],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE class_sessions
                SET state=%s, attendance_code=%s
                WHERE session_id=%s AND state=%s
                """,
                (state.value, attendance_code, int(session_id), expected.value),
            )
            return cur.rowcount > 0

    def set_state(self, *, session_id: int, expected: SessionState, state: SessionState) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE class_sessions SET state=%s WHERE session_id=%s AND state=%s",
                (state.value, int(session_id), expected.value),
            )
            return cur.rowcount > 0

    def set_code(self, *, session_id: int, attendance_code: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE class_sessions SET attendance_code=%s WHERE session_id=%s",
                (attendance_code, int(session_id)),
            )
            return cur.rowcount > 0

    def update_details(
        self,
        *,
        session_id: int,
        start_at: datetime,
        end_at: datetime,
        room: Optional[str],
        week: Optional[int],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE class_sessions
                SET start_at=%s, end_at=%s, room=%s, week=%s
                WHERE session_id=%s
                """,
                (start_at, end_at, room, week, int(session_id)),
            )
            return cur.rowcount > 0

    def set_method(
        self,
        *,
        session_id: int,
        attendance_method: AttendanceMethod,
        attendance_code: Optional[str],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE class_sessions SET attendance_method=%s, attendance_code=%s WHERE session_id=%s",
                (attendance_method.value, attendance_code, int(session_id)),
            )
            return cur.rowcount > 0

    def delete(self, session_id: int) -> bool:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute("DELETE FROM class_sessions WHERE session_id=%s", (int(session_id),))
                return cur.rowcount > 0
        except mysql.connector.IntegrityError as e:
            if is_row_referenced(e):
                raise SessionInUseError("Session still has attendance records or excuse requests") from e
            raise

    def list_for_course(self, course_id: int, *, state: Optional[SessionState] = None) -> Sequence[ClassSession]:
        clauses = ["course_id=%s"]
        params: list[object] = [int(course_id)]
        if state is not None:
            clauses.append("state=%s")
            params.append(state.value)

        where = " AND ".join(clauses)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM class_sessions WHERE {where} ORDER BY start_at ASC, session_id ASC",
                tuple(params),
            )
            return [_to_session(r) for r in fetchall(cur)]
