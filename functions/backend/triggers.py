"""
Change-reaction triggers: keep createdAt/updatedAt current on every watched
record and fan out notifications for the record types that need them.

A trigger's own metadata stamp is itself a write to the watched record and
fires the trigger again. That second firing sees a change confined to the
metadata fields and stops without writing, which is what breaks the loop.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from backend.clock import Clock, now_ms
from backend.notifications import Notifier
from backend.store import RecordStore, join_path
from shared.constants import CREATED_AT, METADATA_FIELDS, UPDATED_AT
from shared.types import NotificationType, RelatedEntity

logger = logging.getLogger(__name__)


def strip_metadata(record: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in (record or {}).items()
        if key not in METADATA_FIELDS
    }


def _canonical(record: Dict[str, Any]) -> str:
    return json.dumps(record, sort_keys=True, default=str)


def is_metadata_only_change(
    before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]
) -> bool:
    """True when before and after differ in nothing but createdAt/updatedAt."""
    return _canonical(strip_metadata(before)) == _canonical(strip_metadata(after))


@dataclass(frozen=True)
class RecordChange:
    collection: str
    record_id: str
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]

    @property
    def created(self) -> bool:
        return self.before is None and self.after is not None

    @property
    def deleted(self) -> bool:
        return self.after is None

    def value(self, field: str, *, previous: bool = False) -> Any:
        record = self.before if previous else self.after
        return (record or {}).get(field)

    def changed(self, field: str) -> bool:
        return self.value(field, previous=True) != self.value(field)


@dataclass(frozen=True)
class Delivery:
    recipient_id: str
    title: str
    body: str
    type: NotificationType


# Decides who hears about a change; returns nothing for silent changes.
FanOutPolicy = Callable[[RecordChange], Iterable[Delivery]]


def assignment_fan_out(
    label: str,
    *,
    assignee_field: str = "assigned_to",
    owner_field: str = "created_by",
    status_field: str = "status",
) -> FanOutPolicy:
    """
    Fan-out for assignable records (tasks, issues).

    Creation and deletion notify the assignee, a reassignment notifies the
    new assignee, and a status transition notifies the assignee and the
    owner. Each recipient gets at most one notification per change.
    """

    def policy(change: RecordChange) -> Iterable[Delivery]:
        record_ref = f"{label} {change.record_id}"
        deliveries: Dict[str, Delivery] = {}

        def add(recipient: Any, title: str, body: str, kind: NotificationType):
            if recipient and recipient not in deliveries:
                deliveries[recipient] = Delivery(recipient, title, body, kind)

        if change.created:
            add(
                change.value(assignee_field),
                f"New {label.lower()} assigned",
                f"{record_ref} has been assigned to you.",
                NotificationType.CREATED,
            )
        elif change.deleted:
            add(
                change.value(assignee_field, previous=True),
                f"{label} removed",
                f"{record_ref} has been deleted.",
                NotificationType.DELETED,
            )
        else:
            if change.changed(assignee_field):
                add(
                    change.value(assignee_field),
                    f"{label} assigned to you",
                    f"{record_ref} has been assigned to you.",
                    NotificationType.UPDATED,
                )
            if change.changed(status_field):
                status = change.value(status_field)
                for recipient in (
                    change.value(assignee_field),
                    change.value(owner_field),
                ):
                    add(
                        recipient,
                        f"{label} status changed",
                        f"{record_ref} is now {status}.",
                        NotificationType.UPDATED,
                    )
        return list(deliveries.values())

    return policy


class ChangeReactionTrigger:
    """Reacts to one write on `<collection>/{recordId}`."""

    def __init__(
        self,
        collection: str,
        store: RecordStore,
        *,
        notifier: Optional[Notifier] = None,
        fan_out: Optional[FanOutPolicy] = None,
        clock: Clock = now_ms,
    ):
        self.collection = collection
        self.store = store
        self.notifier = notifier
        self.fan_out = fan_out
        self.clock = clock

    def handle(
        self,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
        record_id: str,
    ) -> Optional[Dict[str, Any]]:
        """Returns the metadata stamp written, or None when nothing was."""
        change = RecordChange(self.collection, record_id, before, after)

        if change.deleted:
            self._notify(change)
            return None

        if is_metadata_only_change(before, after):
            return None

        stamp = self.metadata_stamp(change)
        try:
            self.store.update(join_path(self.collection, record_id), stamp)
        except Exception:
            # The record keeps a stale updatedAt until its next real write.
            logger.exception(
                f"Failed to stamp metadata on {self.collection}/{record_id}"
            )

        self._notify(change)
        return stamp

    def metadata_stamp(self, change: RecordChange) -> Dict[str, int]:
        now = self.clock()
        if change.created:
            # Overrides any provisional values written by the endpoint.
            return {CREATED_AT: now, UPDATED_AT: now}

        previous = change.value(UPDATED_AT, previous=True)
        if isinstance(previous, (int, float)) and not isinstance(previous, bool):
            now = max(now, int(previous) + 1)
        stamp = {UPDATED_AT: now}

        created_at = change.value(CREATED_AT, previous=True)
        if created_at is None:
            if change.value(CREATED_AT) is None:
                stamp[CREATED_AT] = now
        elif change.value(CREATED_AT) != created_at:
            stamp[CREATED_AT] = created_at
        return stamp

    def _notify(self, change: RecordChange) -> None:
        if self.fan_out is None or self.notifier is None:
            return
        try:
            deliveries = list(self.fan_out(change))
        except Exception:
            logger.exception(
                f"Fan-out failed for {change.collection}/{change.record_id}"
            )
            return
        related = RelatedEntity(kind=change.collection, id=change.record_id)
        for delivery in deliveries:
            self.notifier.notify(
                delivery.recipient_id,
                title=delivery.title,
                body=delivery.body,
                type=delivery.type,
                related=related,
            )
