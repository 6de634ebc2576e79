# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Cloud functions for the fleet maintenance backend - callable endpoints,
# change triggers and scheduled reports.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
from typing import Any, Callable, Optional

# Third-party library imports
from firebase_admin import initialize_app
from firebase_functions import db_fn, https_fn, logger, options, scheduler_fn

# Local application imports
from backend.auth import caller_from_request
from backend.config import get_settings
from backend.dependencies import build_services
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
from shared.types import CallerIdentity, ReportPeriod

settings = get_settings()

if settings.database_url:
    initialize_app(options={"databaseURL": settings.database_url})
else:
    initialize_app()

options.set_global_options(region=settings.region, cpu=settings.cpu)

services = build_services(settings)

REPORT_TIMEZONE = scheduler_fn.Timezone(settings.report_timezone)

Operation = Callable[[Optional[CallerIdentity], dict], dict]


def _dispatch(operation: Operation, req: https_fn.CallableRequest) -> dict:
    """Runs an endpoint operation for the verified caller of `req`."""
    payload = req.data if isinstance(req.data, dict) else {}
    return operation(caller_from_request(req), payload)


# Generators


@https_fn.on_call()
def create_generator(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.generators.create, req)


@https_fn.on_call()
def update_generator(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.generators.update, req)


@https_fn.on_call()
def delete_generator(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.generators.delete, req)


@https_fn.on_call()
def get_generator(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.generators.get, req)


@https_fn.on_call()
def list_generators(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.generators.list, req)


@https_fn.on_call()
def set_generator_status(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.generators.set_status, req)


# Batteries


@https_fn.on_call()
def add_battery(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.batteries.create, req)


@https_fn.on_call()
def update_battery(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.batteries.update, req)


@https_fn.on_call()
def delete_battery(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.batteries.delete, req)


@https_fn.on_call()
def get_battery(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.batteries.get, req)


@https_fn.on_call()
def list_batteries(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.batteries.list, req)


@https_fn.on_call()
def assign_battery(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.batteries.assign, req)


@https_fn.on_call()
def replace_battery(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.batteries.replace, req)


# Service logs


@https_fn.on_call()
def log_service(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.service_logs.create, req)


@https_fn.on_call()
def update_service_log(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.service_logs.update, req)


@https_fn.on_call()
def delete_service_log(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.service_logs.delete, req)


@https_fn.on_call()
def get_service_log(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.service_logs.get, req)


@https_fn.on_call()
def list_service_logs(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.service_logs.list, req)


@https_fn.on_call()
def mark_overdue_services(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.service_logs.mark_overdue, req)


# Issues


@https_fn.on_call()
def report_issue(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.issues.create, req)


@https_fn.on_call()
def update_issue(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.issues.update, req)


@https_fn.on_call()
def delete_issue(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.issues.delete, req)


@https_fn.on_call()
def get_issue(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.issues.get, req)


@https_fn.on_call()
def list_issues(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.issues.list, req)


@https_fn.on_call()
def assign_issue(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.issues.assign, req)


@https_fn.on_call()
def set_issue_status(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.issues.set_status, req)


@https_fn.on_call()
def link_gate_pass(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.issues.link_gate_pass, req)


# Tasks


@https_fn.on_call()
def create_task(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.tasks.create, req)


@https_fn.on_call()
def update_task(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.tasks.update, req)


@https_fn.on_call()
def delete_task(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.tasks.delete, req)


@https_fn.on_call()
def get_task(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.tasks.get, req)


@https_fn.on_call()
def list_tasks(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.tasks.list, req)


@https_fn.on_call()
def set_task_status(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.tasks.set_status, req)


# Invoices


@https_fn.on_call()
def create_invoice(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.invoices.create, req)


@https_fn.on_call()
def update_invoice(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.invoices.update, req)


@https_fn.on_call()
def delete_invoice(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.invoices.delete, req)


@https_fn.on_call()
def get_invoice(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.invoices.get, req)


@https_fn.on_call()
def list_invoices(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.invoices.list, req)


@https_fn.on_call()
def mark_invoice_paid(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.invoices.mark_paid, req)


@https_fn.on_call()
def set_invoice_status(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.invoices.set_status, req)


# Shops


@https_fn.on_call()
def create_shop(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.shops.create, req)


@https_fn.on_call()
def update_shop(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.shops.update, req)


@https_fn.on_call()
def delete_shop(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.shops.delete, req)


@https_fn.on_call()
def get_shop(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.shops.get, req)


@https_fn.on_call()
def list_shops(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.shops.list, req)


# Users


@https_fn.on_call()
def create_user_profile(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.users.create, req)


@https_fn.on_call()
def update_user_profile(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.users.update, req)


@https_fn.on_call()
def delete_user(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.users.delete, req)


@https_fn.on_call()
def get_user(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.users.get, req)


@https_fn.on_call()
def list_users(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.users.list, req)


@https_fn.on_call()
def set_user_role(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.users.set_role, req)


@https_fn.on_call()
def set_user_status(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.users.set_status, req)


# Notifications


@https_fn.on_call()
def send_notification(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.notifications.send, req)


@https_fn.on_call()
def list_notifications(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.notifications.list, req)


@https_fn.on_call()
def mark_notification_read(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.notifications.mark_read, req)


@https_fn.on_call()
def delete_notification(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.notifications.delete, req)


@https_fn.on_call()
def clear_notifications(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.notifications.clear, req)


# Reports


@https_fn.on_call(timeout_sec=120)
def generate_report(req: https_fn.CallableRequest) -> dict:
    return _dispatch(services.reports.generate_report, req)


# Change triggers


def _react(collection: str, event: db_fn.Event[db_fn.Change[Any]]) -> None:
    """Hands one observed write to the collection's trigger."""
    record_id = event.params["recordId"]
    stamp = services.triggers[collection].handle(
        event.data.before, event.data.after, record_id
    )
    if stamp is not None:
        logger.debug(f"Stamped {collection}/{record_id}: {stamp}")


@db_fn.on_value_written(reference=f"/{GENERATORS_COLLECTION}/{{recordId}}")
def on_generator_written(event: db_fn.Event[db_fn.Change[Any]]) -> None:
    _react(GENERATORS_COLLECTION, event)


@db_fn.on_value_written(reference=f"/{BATTERIES_COLLECTION}/{{recordId}}")
def on_battery_written(event: db_fn.Event[db_fn.Change[Any]]) -> None:
    _react(BATTERIES_COLLECTION, event)


@db_fn.on_value_written(reference=f"/{SERVICE_LOGS_COLLECTION}/{{recordId}}")
def on_service_log_written(event: db_fn.Event[db_fn.Change[Any]]) -> None:
    _react(SERVICE_LOGS_COLLECTION, event)


@db_fn.on_value_written(reference=f"/{ISSUES_COLLECTION}/{{recordId}}")
def on_issue_written(event: db_fn.Event[db_fn.Change[Any]]) -> None:
    _react(ISSUES_COLLECTION, event)


@db_fn.on_value_written(reference=f"/{TASKS_COLLECTION}/{{recordId}}")
def on_task_written(event: db_fn.Event[db_fn.Change[Any]]) -> None:
    _react(TASKS_COLLECTION, event)


@db_fn.on_value_written(reference=f"/{INVOICES_COLLECTION}/{{recordId}}")
def on_invoice_written(event: db_fn.Event[db_fn.Change[Any]]) -> None:
    _react(INVOICES_COLLECTION, event)


@db_fn.on_value_written(reference=f"/{SHOPS_COLLECTION}/{{recordId}}")
def on_shop_written(event: db_fn.Event[db_fn.Change[Any]]) -> None:
    _react(SHOPS_COLLECTION, event)


@db_fn.on_value_written(reference=f"/{USERS_COLLECTION}/{{recordId}}")
def on_user_written(event: db_fn.Event[db_fn.Change[Any]]) -> None:
    _react(USERS_COLLECTION, event)


# Scheduled jobs


@scheduler_fn.on_schedule(schedule="0 0 * * *", timezone=REPORT_TIMEZONE)
def daily_report(event: scheduler_fn.ScheduledEvent) -> None:
    key, _ = services.reports.generate(ReportPeriod.DAILY)
    logger.info(f"Daily report {key} written")


@scheduler_fn.on_schedule(schedule="0 0 1 * *", timezone=REPORT_TIMEZONE)
def monthly_report(event: scheduler_fn.ScheduledEvent) -> None:
    key, _ = services.reports.generate(ReportPeriod.MONTHLY)
    logger.info(f"Monthly report {key} written")


@scheduler_fn.on_schedule(schedule="0 1 * * *", timezone=REPORT_TIMEZONE)
def mark_overdue(event: scheduler_fn.ScheduledEvent) -> None:
    invoices = services.invoices.mark_overdue_now()
    service_logs = services.service_logs.mark_overdue_now()
    logger.info(
        f"Marked {invoices} invoices and {service_logs} service logs overdue"
    )
