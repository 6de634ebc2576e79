"""
Per-user notification inboxes stored under notifications/{uid}/{id}.

`Notifier` is the fan-out used by triggers: delivery is best-effort and a
failed write is logged rather than raised. `NotificationService` backs the
inbox callables.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from dacite import Config, from_dict

from backend import auth, errors, validation
from backend.clock import Clock, now_ms
from backend.store import RecordStore, join_path, new_key
from shared.constants import DEFAULT_LIST_LIMIT, NOTIFICATIONS_COLLECTION
from shared.types import (
    CallerIdentity,
    Notification,
    NotificationType,
    RelatedEntity,
    Role,
)

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


def inbox_path(uid: str, notification_id: str | None = None) -> str:
    if notification_id is None:
        return join_path(NOTIFICATIONS_COLLECTION, uid)
    return join_path(NOTIFICATIONS_COLLECTION, uid, notification_id)


def notification_from_record(record: Dict[str, Any]) -> Notification:
    return from_dict(
        data_class=Notification,
        data=record,
        config=Config(check_types=False, cast=[NotificationType]),
    )


def notification_to_record(notification: Notification) -> Dict[str, Any]:
    record = asdict(notification)
    record["type"] = NotificationType(notification.type).value
    return record


class Notifier:
    def __init__(self, store: RecordStore, clock: Clock = now_ms):
        self.store = store
        self.clock = clock

    def deliver(
        self,
        recipient_id: str,
        *,
        title: str,
        body: str = "",
        type: NotificationType | str = NotificationType.GENERAL,
        related: Optional[RelatedEntity] = None,
    ) -> str:
        """Appends a notification to the recipient's inbox, raising on failure."""
        notification = Notification(
            id=new_key(),
            title=title,
            body=body,
            type=NotificationType(type),
            read=False,
            createdAt=self.clock(),
            related=related,
        )
        self.store.set(
            inbox_path(recipient_id, notification.id),
            notification_to_record(notification),
        )
        return notification.id

    def notify(self, recipient_id: str, **kwargs) -> Optional[str]:
        """Fire-and-forget delivery; returns None when the write failed."""
        try:
            return self.deliver(recipient_id, **kwargs)
        except Exception:
            logger.exception(f"Failed to deliver notification to {recipient_id}")
            return None


class NotificationService:
    def __init__(
        self, store: RecordStore, notifier: Notifier, *, list_limit_max: int = 500
    ):
        self.store = store
        self.notifier = notifier
        self.list_limit_max = list_limit_max

    def send(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        auth.require_role(caller, {Role.ADMIN})
        uid = validation.require_id(payload, "uid")
        title = validation.text(MAX_TITLE_LENGTH)("title", payload.get("title"))
        if not title:
            raise errors.invalid_argument("uid + title required.")
        body = validation.text()("body", payload.get("body")) or ""
        notification_type = (
            validation.choice(NotificationType)("type", payload.get("type"))
            or NotificationType.GENERAL
        )
        related = None
        related_payload = payload.get("related")
        if related_payload is not None:
            if not isinstance(related_payload, dict):
                raise errors.invalid_argument("related must be {kind, id}.")
            related = RelatedEntity(
                kind=validation.require_id(related_payload, "kind"),
                id=validation.require_id(related_payload, "id"),
            )

        with errors.store_errors("send_notification"):
            notification_id = self.notifier.deliver(
                uid,
                title=title,
                body=body,
                type=notification_type,
                related=related,
            )
        return {"ok": True, "id": notification_id}

    def list(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        caller = auth.require_caller(caller)
        unread_only = validation.boolean()("unread_only", payload.get("unread_only"))
        limit = validation.number(minimum=1)("limit", payload.get("limit"))
        limit = min(int(limit or DEFAULT_LIST_LIMIT), self.list_limit_max)

        with errors.store_errors("list_notifications"):
            inbox = self.store.get(inbox_path(caller.uid)) or {}
        notifications: List[Notification] = [
            notification_from_record(item)
            for item in inbox.values()
            if isinstance(item, dict)
        ]
        if unread_only:
            notifications = [n for n in notifications if not n.read]
        notifications.sort(key=lambda n: n.createdAt or 0, reverse=True)
        items = [notification_to_record(n) for n in notifications[:limit]]
        return {"ok": True, "items": items}

    def mark_read(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        caller = auth.require_caller(caller)
        notification_id = validation.require_id(payload)
        path = inbox_path(caller.uid, notification_id)
        with errors.store_errors("mark_notification_read"):
            if self.store.get(path) is None:
                raise errors.not_found(f"Notification '{notification_id}' not found.")
            self.store.update(path, {"read": True})
        return {"ok": True}

    def delete(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        caller = auth.require_caller(caller)
        notification_id = validation.require_id(payload)
        path = inbox_path(caller.uid, notification_id)
        with errors.store_errors("delete_notification"):
            if self.store.get(path) is None:
                raise errors.not_found(f"Notification '{notification_id}' not found.")
            self.store.remove(path)
        return {"ok": True}

    def clear(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        """Clears the caller's inbox; admins may clear another user's."""
        caller = auth.require_caller(caller)
        target_uid = validation.optional_id(payload, "target_uid")
        if target_uid and target_uid != caller.uid and not auth.is_admin(caller):
            raise errors.permission_denied("Only admins can clear another inbox.")
        uid = target_uid or caller.uid
        with errors.store_errors("clear_notifications"):
            self.store.remove(inbox_path(uid))
        return {"ok": True, "uid": uid}
