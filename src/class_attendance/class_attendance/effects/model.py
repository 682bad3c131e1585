from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Tuple, Union

from ..core.enums import NotificationType


@dataclass(frozen=True)
class NotificationEffect:
    user_ids: Tuple[int, ...]
    type: NotificationType
    title: str
    content: str
    link: Optional[str] = None


@dataclass(frozen=True)
class AuditEffect:
    actor_id: Optional[int]
    action: str
    target_type: str
    target_id: Any
    old_value: Optional[dict] = None
    new_value: Optional[dict] = None


Effect = Union[NotificationEffect, AuditEffect]


@dataclass(frozen=True)
class Notification:
    """Row kept by the notification sink for polling clients."""

    notification_id: int
    user_id: int
    type: NotificationType
    title: str
    content: str
    link: Optional[str]
    is_read: bool
    created_at: datetime

    def as_dict(self) -> dict:
        return {
            "notification_id": self.notification_id,
            "type": self.type.value,
            "title": self.title,
            "content": self.content,
            "link": self.link,
            "is_read": self.is_read,
            "created_at": self.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        }


@dataclass
class EffectLog:
    """Effects collected while a use case runs; dispatched after commit."""

    items: list = field(default_factory=list)

    def notify(self, user_ids, *, type: NotificationType, title: str, content: str, link: Optional[str] = None) -> None:
        ids = tuple(int(u) for u in user_ids)
        if ids:
            self.items.append(NotificationEffect(user_ids=ids, type=type, title=title, content=content, link=link))

    def audit(self, *, actor_id, action: str, target_type: str, target_id, old_value=None, new_value=None) -> None:
        self.items.append(
            AuditEffect(
                actor_id=actor_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                old_value=old_value,
                new_value=new_value,
            )
        )
