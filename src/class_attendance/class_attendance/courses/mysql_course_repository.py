from __future__ import annotations

from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import Course
from .repository import CourseRepository


def _to_course(r: dict) -> Course:
    return Course(course_id=int(r["course_id"]), title=r["title"], instructor_id=int(r["instructor_id"]))


class MySQLCourseRepository(CourseRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, course_id: int) -> Optional[Course]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT course_id, title, instructor_id FROM courses WHERE course_id=%s",
                (int(course_id),),
            )
            r = fetchone(cur)
            return _to_course(r) if r else None

    def list_enrolled_student_ids(self, course_id: int) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT student_id FROM enrollments WHERE course_id=%s ORDER BY student_id",
                (int(course_id),),
            )
            return [int(r["student_id"]) for r in fetchall(cur)]

    def is_enrolled(self, course_id: int, student_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT 1 AS ok FROM enrollments WHERE course_id=%s AND student_id=%s",
                (int(course_id), int(student_id)),
            )
            return fetchone(cur) is not None

    def list_courses_for_instructor(self, instructor_id: int) -> Sequence[Course]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT course_id, title, instructor_id FROM courses WHERE instructor_id=%s ORDER BY course_id",
                (int(instructor_id),),
            )
            return [_to_course(r) for r in fetchall(cur)]
