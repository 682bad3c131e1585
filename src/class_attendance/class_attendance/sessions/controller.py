from __future__ import annotations

import io

from flask import Flask, request, send_file

from ..access.guards import is_course_staff
from ..common.http import current_principal, json_body, ok
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.session_service

    def _session_dict(sess):
        principal = current_principal()
        course = container.courses_repo.get_by_id(sess.course_id)
        staff = bool(principal and course and is_course_staff(principal, course))
        return sess.as_dict(include_code=staff)

    @app.route("/api/courses/<int:course_id>/sessions", methods=["GET"], endpoint="list_sessions")
    def list_sessions(course_id: int):
        sessions = service.list_sessions(current_principal(), course_id)
        return ok([_session_dict(s) for s in sessions])

    @app.route("/api/courses/<int:course_id>/sessions", methods=["POST"], endpoint="schedule_session")
    def schedule_session(course_id: int):
        body = json_body()
        sess = service.schedule(
            current_principal(),
            course_id=course_id,
            start_at=body.get("start_at"),
            end_at=body.get("end_at"),
            room=body.get("room"),
            attendance_method=body.get("attendance_method") or "DIRECT",
            week=body.get("week"),
        )
        return ok(sess.as_dict(), 201)

    @app.route("/api/sessions/<int:session_id>", methods=["GET"], endpoint="get_session")
    def get_session(session_id: int):
        sess = service.get_session(current_principal(), session_id)
        return ok(_session_dict(sess))

    @app.route("/api/sessions/<int:session_id>", methods=["PUT"], endpoint="update_session")
    def update_session(session_id: int):
        body = json_body()
        sess = service.update(
            current_principal(),
            session_id,
            start_at=body.get("start_at"),
            end_at=body.get("end_at"),
            room=(body.get("room") or "") if "room" in body else None,
            attendance_method=body.get("attendance_method"),
            week=body.get("week"),
        )
        return ok(sess.as_dict())

    @app.route("/api/sessions/<int:session_id>", methods=["DELETE"], endpoint="delete_session")
    def delete_session(session_id: int):
        service.delete(current_principal(), session_id)
        return ok({"session_id": session_id, "deleted": True})

    @app.route("/api/sessions/<int:session_id>/open", methods=["POST"], endpoint="open_session")
    def open_session(session_id: int):
        sess = service.open(current_principal(), session_id)
        return ok(sess.as_dict())

    @app.route("/api/sessions/<int:session_id>/close", methods=["POST"], endpoint="close_session")
    def close_session(session_id: int):
        result = service.close(current_principal(), session_id)
        return ok(result.as_dict())

    @app.route("/api/sessions/<int:session_id>/code", methods=["POST"], endpoint="regenerate_code")
    def regenerate_code(session_id: int):
        sess = service.regenerate_code(current_principal(), session_id)
        return ok({"session_id": sess.session_id, "attendance_code": sess.attendance_code})

    @app.route("/api/sessions/<int:session_id>/code/qr.png", methods=["GET"], endpoint="session_code_qr")
    def session_code_qr(session_id: int):
        png = service.code_qr_png(current_principal(), session_id)
        download = request.args.get("download") == "1"
        return send_file(
            io.BytesIO(png),
            mimetype="image/png",
            as_attachment=download,
            download_name=f"session_{session_id}_code.png",
        )
