from __future__ import annotations

import logging
from typing import Iterable

from .model import AuditEffect, Effect, NotificationEffect
from .sinks import AuditSink, NotificationSink

logger = logging.getLogger(__name__)


class EffectRunner:
    """Dispatches post-commit effects to the notification and audit sinks.

    Each effect is best-effort: a failing sink is logged and the remaining
    effects still run. Callers never see sink failures.
    """

    def __init__(self, notifications: NotificationSink, audit: AuditSink):
        self._notifications = notifications
        self._audit = audit

    def dispatch(self, effects: Iterable[Effect]) -> None:
        for effect in effects:
            try:
                self._run(effect)
            except Exception:
                logger.exception("Side effect failed: %r", effect)

    def _run(self, effect: Effect) -> None:
        if isinstance(effect, NotificationEffect):
            self._notifications.notify(
                list(effect.user_ids),
                type=effect.type,
                title=effect.title,
                content=effect.content,
                link=effect.link,
            )
        elif isinstance(effect, AuditEffect):
            self._audit.record(
                actor_id=effect.actor_id,
                action=effect.action,
                target_type=effect.target_type,
                target_id=effect.target_id,
                old_value=effect.old_value,
                new_value=effect.new_value,
            )
        else:
            raise TypeError(f"Unsupported effect: {type(effect)!r}")
