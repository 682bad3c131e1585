from __future__ import annotations

from flask import Flask, request

from ..common.http import current_principal, json_body, ok
from ..container import Container
from .model import UploadedFile


def _uploads() -> list[UploadedFile]:
    out: list[UploadedFile] = []
    for storage in request.files.getlist("files"):
        if not storage or not storage.filename:
            continue
        out.append(
            UploadedFile(
                filename=storage.filename,
                content_type=(storage.mimetype or "").lower(),
                data=storage.read(),
            )
        )
    return out


def _form_or_json() -> dict:
    if request.mimetype == "multipart/form-data" or request.form:
        return request.form.to_dict()
    return json_body()


def register(app: Flask, container: Container) -> None:
    service = container.request_service

    # -------- Excuse requests --------
    @app.route("/api/sessions/<int:session_id>/excuses", methods=["POST"], endpoint="submit_excuse")
    def submit_excuse(session_id: int):
        data = _form_or_json()
        excuse = service.submit_excuse(
            current_principal(),
            session_id=session_id,
            reason=data.get("reason", ""),
            reason_code=data.get("reason_code"),
            files=_uploads(),
        )
        return ok(excuse.as_dict(), 201)

    @app.route("/api/excuses", methods=["GET"], endpoint="list_excuses")
    def list_excuses():
        excuses = service.list_excuses(
            current_principal(),
            status=request.args.get("status"),
            course_id=request.args.get("course_id", type=int),
        )
        return ok([e.as_dict() for e in excuses])

    @app.route("/api/excuses/<int:request_id>", methods=["GET"], endpoint="get_excuse")
    def get_excuse(request_id: int):
        return ok(service.get_excuse(current_principal(), request_id).as_dict())

    @app.route("/api/excuses/<int:request_id>", methods=["PATCH"], endpoint="decide_excuse")
    def decide_excuse(request_id: int):
        body = json_body()
        excuse = service.decide_excuse(
            current_principal(),
            request_id=request_id,
            decision=body.get("status"),
            comment=body.get("instructor_comment"),
        )
        return ok(excuse.as_dict())

    # -------- Appeals --------
    @app.route("/api/attendances/<int:attendance_id>/appeals", methods=["POST"], endpoint="submit_appeal")
    def submit_appeal(attendance_id: int):
        body = json_body()
        appeal = service.submit_appeal(
            current_principal(),
            attendance_id=attendance_id,
            message=body.get("message", ""),
            requested_status=body.get("requested_status"),
        )
        return ok(appeal.as_dict(), 201)

    @app.route("/api/appeals", methods=["GET"], endpoint="list_appeals")
    def list_appeals():
        appeals = service.list_appeals(
            current_principal(),
            status=request.args.get("status"),
            course_id=request.args.get("course_id", type=int),
        )
        return ok([a.as_dict() for a in appeals])

    @app.route("/api/appeals/<int:appeal_id>", methods=["GET"], endpoint="get_appeal")
    def get_appeal(appeal_id: int):
        return ok(service.get_appeal(current_principal(), appeal_id).as_dict())

    @app.route("/api/appeals/<int:appeal_id>", methods=["PATCH"], endpoint="decide_appeal")
    def decide_appeal(appeal_id: int):
        body = json_body()
        appeal = service.decide_appeal(
            current_principal(),
            appeal_id=appeal_id,
            decision=body.get("status"),
            corrected_status=body.get("corrected_status"),
            comment=body.get("instructor_comment"),
        )
        return ok(appeal.as_dict())
