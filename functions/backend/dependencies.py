"""
Dependency wiring for the functions entry point.

`build_services` is called once at process start; every component receives
its store, clock and collaborators from here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from backend.clock import Clock, now_ms
from backend.config import Settings, get_settings
from backend.entities.batteries import BatteryService
from backend.entities.generators import GeneratorService
from backend.entities.invoices import InvoiceService
from backend.entities.issues import IssueService, issue_fan_out
from backend.entities.service_logs import ServiceLogService
from backend.entities.shops import ShopService
from backend.entities.tasks import TaskService, task_fan_out
from backend.entities.users import UserService
from backend.identity import FirebaseIdentityAdmin, IdentityAdmin, InMemoryIdentityAdmin
from backend.notifications import NotificationService, Notifier
from backend.reports import ReportService
from backend.store import FirebaseRecordStore, InMemoryRecordStore, RecordStore
from backend.triggers import ChangeReactionTrigger
from shared.constants import (
    BATTERIES_COLLECTION,
    GENERATORS_COLLECTION,
    INVOICES_COLLECTION,
    ISSUES_COLLECTION,
    SERVICE_LOGS_COLLECTION,
    SHOPS_COLLECTION,
    TASKS_COLLECTION,
    USERS_COLLECTION,
)


@dataclass
class Services:
    store: RecordStore
    identity: IdentityAdmin
    notifier: Notifier
    notifications: NotificationService
    generators: GeneratorService
    batteries: BatteryService
    service_logs: ServiceLogService
    issues: IssueService
    tasks: TaskService
    invoices: InvoiceService
    shops: ShopService
    users: UserService
    reports: ReportService
    triggers: Dict[str, ChangeReactionTrigger]


def build_services(
    settings: Optional[Settings] = None,
    *,
    store: Optional[RecordStore] = None,
    identity: Optional[IdentityAdmin] = None,
    clock: Clock = now_ms,
) -> Services:
    settings = settings or get_settings()
    if store is None:
        if settings.use_in_memory_backends:
            store = InMemoryRecordStore()
        else:
            store = FirebaseRecordStore()
    if identity is None:
        if settings.use_in_memory_backends:
            identity = InMemoryIdentityAdmin()
        else:
            identity = FirebaseIdentityAdmin()

    options = dict(
        clock=clock,
        id_width=settings.id_sequence_width,
        list_limit_max=settings.list_limit_max,
    )
    notifier = Notifier(store, clock=clock)

    def trigger(collection, fan_out=None):
        return ChangeReactionTrigger(
            collection, store, notifier=notifier, fan_out=fan_out, clock=clock
        )

    triggers = {
        GENERATORS_COLLECTION: trigger(GENERATORS_COLLECTION),
        BATTERIES_COLLECTION: trigger(BATTERIES_COLLECTION),
        SERVICE_LOGS_COLLECTION: trigger(SERVICE_LOGS_COLLECTION),
        ISSUES_COLLECTION: trigger(ISSUES_COLLECTION, issue_fan_out),
        TASKS_COLLECTION: trigger(TASKS_COLLECTION, task_fan_out),
        INVOICES_COLLECTION: trigger(INVOICES_COLLECTION),
        SHOPS_COLLECTION: trigger(SHOPS_COLLECTION),
        USERS_COLLECTION: trigger(USERS_COLLECTION),
    }
    if isinstance(store, InMemoryRecordStore):
        # Deployed triggers are bound by the platform instead.
        for collection, change_trigger in triggers.items():
            store.watch(collection, change_trigger.handle)

    return Services(
        store=store,
        identity=identity,
        notifier=notifier,
        notifications=NotificationService(
            store, notifier, list_limit_max=settings.list_limit_max
        ),
        generators=GeneratorService(store, **options),
        batteries=BatteryService(store, **options),
        service_logs=ServiceLogService(store, **options),
        issues=IssueService(store, **options),
        tasks=TaskService(store, **options),
        invoices=InvoiceService(store, **options),
        shops=ShopService(store, **options),
        users=UserService(store, identity, **options),
        reports=ReportService(
            store, timezone=settings.report_timezone, clock=clock
        ),
        triggers=triggers,
    )
