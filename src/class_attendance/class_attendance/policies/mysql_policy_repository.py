from __future__ import annotations

from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .model import AttendancePolicy
from .repository import PolicyRepository


class MySQLPolicyRepository(PolicyRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, course_id: int) -> Optional[AttendancePolicy]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT course_id, max_absent, late_to_absent FROM attendance_policies WHERE course_id=%s",
                (int(course_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return AttendancePolicy(
                course_id=int(r["course_id"]),
                max_absent=int(r["max_absent"]),
                late_to_absent=int(r["late_to_absent"]),
            )

    def upsert(self, *, course_id: int, max_absent: int, late_to_absent: int) -> AttendancePolicy:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_policies(course_id, max_absent, late_to_absent)
                VALUES(%s,%s,%s)
                ON DUPLICATE KEY UPDATE max_absent=VALUES(max_absent), late_to_absent=VALUES(late_to_absent)
                """,
                (int(course_id), int(max_absent), int(late_to_absent)),
            )
        return AttendancePolicy(course_id=int(course_id), max_absent=int(max_absent), late_to_absent=int(late_to_absent))
