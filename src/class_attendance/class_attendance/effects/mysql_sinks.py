from __future__ import annotations

from typing import Any, Optional, Sequence

from ..core.enums import NotificationType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, to_json
from .model import Notification
from .sinks import AuditSink, NotificationInbox


class MySQLNotificationSink(NotificationInbox):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def notify(
        self,
        user_ids: Sequence[int],
        *,
        type: NotificationType,
        title: str,
        content: str,
        link: Optional[str] = None,
    ) -> None:
        rows = [(int(uid), type.value, title, content, link) for uid in user_ids]
        if not rows:
            return
        with db_cursor(self._conn_factory) as (_, cur):
            cur.executemany(
                """
                INSERT INTO notifications(user_id, type, title, content, link)
                VALUES(%s,%s,%s,%s,%s)
                """,
                rows,
            )

    def list_for_user(self, user_id: int, *, unread_only: bool = False, limit: int = 50) -> Sequence[Notification]:
        where = "user_id=%s AND is_read=0" if unread_only else "user_id=%s"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT notification_id, user_id, type, title, content, link, is_read, created_at
                FROM notifications
                WHERE {where}
                ORDER BY created_at DESC, notification_id DESC
                LIMIT %s
                """,
                (int(user_id), int(limit)),
            )
            return [
                Notification(
                    notification_id=int(r["notification_id"]),
                    user_id=int(r["user_id"]),
                    type=NotificationType(r["type"]),
                    title=r["title"],
                    content=r["content"],
                    link=r.get("link"),
                    is_read=bool(r["is_read"]),
                    created_at=r["created_at"],
                )
                for r in fetchall(cur)
            ]

    def mark_read(self, *, user_id: int, notification_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE notifications SET is_read=1 WHERE notification_id=%s AND user_id=%s",
                (int(notification_id), int(user_id)),
            )
            return cur.rowcount > 0


class MySQLAuditSink(AuditSink):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def record(
        self,
        *,
        actor_id: Optional[int],
        action: str,
        target_type: str,
        target_id: Any,
        old_value: Optional[dict] = None,
        new_value: Optional[dict] = None,
    ) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO audit_logs(actor_id, action, target_type, target_id, old_value, new_value)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(actor_id) if actor_id is not None else None,
                    action,
                    target_type,
                    str(target_id) if target_id is not None else None,
                    to_json(old_value),
                    to_json(new_value),
                ),
            )
