from __future__ import annotations

from flask import Flask, request

from ..access.guards import is_course_staff
from ..common.http import current_principal, int_field, json_body, ok
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.attendance_service

    @app.route("/api/sessions/<int:session_id>/attend", methods=["POST"], endpoint="attend_session")
    def attend_session(session_id: int):
        body = json_body()
        code = body.get("code")
        rec = service.check_in(current_principal(), session_id=session_id, code=str(code) if code is not None else None)
        return ok(rec.as_dict(), 201)

    @app.route("/api/sessions/<int:session_id>/attendance", methods=["GET"], endpoint="session_roster")
    def session_roster(session_id: int):
        principal = current_principal()
        roster = service.session_roster(principal, session_id)
        course = container.courses_repo.get_by_id(roster.session.course_id)
        staff = bool(principal and course and is_course_staff(principal, course))
        return ok(roster.as_dict(include_code=staff))

    @app.route("/api/attendances", methods=["POST"], endpoint="create_attendance")
    def create_attendance():
        body = json_body()
        rec = service.mark(
            current_principal(),
            session_id=int_field(body, "session_id"),
            student_id=int_field(body, "student_id"),
            status=body.get("status"),
        )
        return ok(rec.as_dict(), 201)

    @app.route("/api/attendances/<int:attendance_id>", methods=["PATCH"], endpoint="update_attendance")
    def update_attendance(attendance_id: int):
        body = json_body()
        rec = service.update(current_principal(), attendance_id=attendance_id, status=body.get("status"))
        return ok(rec.as_dict())

    @app.route("/api/courses/<int:course_id>/attendances", methods=["GET"], endpoint="course_attendances")
    def course_attendances(course_id: int):
        student_id = request.args.get("student_id", type=int)
        records = service.records_for_student(current_principal(), course_id=course_id, student_id=student_id)
        return ok([r.as_dict() for r in records])
