from __future__ import annotations

from flask import Flask

from ..common.http import current_principal, json_body, ok
from ..container import Container


def register(app: Flask, container: Container) -> None:
    service = container.policy_service

    @app.route("/api/courses/<int:course_id>/policy", methods=["GET"], endpoint="get_policy")
    def get_policy(course_id: int):
        policy = service.view_policy(current_principal(), course_id)
        return ok({**policy.as_dict(), "course_id": policy.course_id, "is_default": policy.is_default})

    @app.route("/api/courses/<int:course_id>/policy", methods=["PUT"], endpoint="set_policy")
    def set_policy(course_id: int):
        body = json_body()
        policy = service.set_policy(
            current_principal(),
            course_id=course_id,
            max_absent=body.get("max_absent"),
            late_to_absent=body.get("late_to_absent"),
        )
        return ok({**policy.as_dict(), "course_id": policy.course_id, "is_default": False})
