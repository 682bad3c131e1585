from __future__ import annotations

from flask import Flask, request

from ..access.guards import require_principal
from ..common.http import current_principal, ok
from ..container import Container
from ..core.exceptions import NotFoundError


def register(app: Flask, container: Container) -> None:
    inbox = container.notification_inbox
    poll_seconds = container.notification_poll_seconds

    @app.route("/api/notifications", methods=["GET"], endpoint="list_notifications")
    def list_notifications():
        principal = require_principal(current_principal())
        items = inbox.list_for_user(
            principal.user_id,
            unread_only=request.args.get("unread") == "1",
            limit=request.args.get("limit", default=50, type=int),
        )
        return ok([n.as_dict() for n in items], poll_seconds=poll_seconds)

    @app.route("/api/notifications/<int:notification_id>/read", methods=["PATCH"], endpoint="read_notification")
    def read_notification(notification_id: int):
        principal = require_principal(current_principal())
        if not inbox.mark_read(user_id=principal.user_id, notification_id=notification_id):
            raise NotFoundError("Notification not found")
        return ok({"notification_id": notification_id, "is_read": True})
