from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from ..core.enums import NotificationType
from .model import Notification


class NotificationSink(Protocol):
    def notify(
        self,
        user_ids: Sequence[int],
        *,
        type: NotificationType,
        title: str,
        content: str,
        link: Optional[str] = None,
    ) -> None:
        raise NotImplementedError


class NotificationInbox(NotificationSink, Protocol):
    """Sink that also serves polling clients."""

    def list_for_user(self, user_id: int, *, unread_only: bool = False, limit: int = 50) -> Sequence[Notification]:
        raise NotImplementedError

    def mark_read(self, *, user_id: int, notification_id: int) -> bool:
        raise NotImplementedError


class AuditSink(Protocol):
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
        raise NotImplementedError
