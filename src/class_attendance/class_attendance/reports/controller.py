from __future__ import annotations

from flask import Flask, request

from ..common.http import current_principal, ok
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.report_service

    @app.route("/api/courses/<int:course_id>/reports/attendance", methods=["GET"], endpoint="attendance_report")
    def attendance_report(course_id: int):
        return ok(service.course_report(current_principal(), course_id).as_dict())

    @app.route("/api/courses/<int:course_id>/reports/risk", methods=["GET"], endpoint="risk_report")
    def risk_report(course_id: int):
        return ok(service.risk_report(current_principal(), course_id).as_dict())

    @app.route("/api/excuses/reports", methods=["GET"], endpoint="excuse_report")
    def excuse_report():
        course_id = request.args.get("course_id", type=int)
        return ok(service.excuse_report(current_principal(), course_id).as_dict())
