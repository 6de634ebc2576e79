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

from enum import StrEnum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class Role(StrEnum):
    ADMIN = "admin"
    OPERATOR = "operator"
    TECHNICIAN = "technician"
    INVENTORY = "inventory"


class GeneratorStatus(StrEnum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    REPAIR = "Repair"
    UNUSABLE = "Unusable"


class GeneratorLocation(StrEnum):
    UP = "UP"
    DOWN = "DOWN"


class BatteryType(StrEnum):
    TEMPORARY = "Temporary"
    FINAL = "Final"


class EquipmentType(StrEnum):
    GENERATOR = "generator"
    BATTERY = "battery"
    CHARGER = "charger"


class IssueSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IssueStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TaskPriority(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TaskStatus(StrEnum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class InvoiceStatus(StrEnum):
    PENDING = "Pending"
    PAID = "Paid"
    OVERDUE = "Overdue"


class UserStatus(StrEnum):
    ACTIVE = "active"
    DISABLED = "disabled"


class NotificationType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    GENERAL = "general"


class ReportPeriod(StrEnum):
    DAILY = "daily"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class CallerIdentity:
    """The verified caller of a callable, as attached by the platform."""

    uid: str
    role: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RelatedEntity:
    """Weak reference from a notification back to the record it is about."""

    kind: str
    id: str


@dataclass
class Notification:
    """Schema for an inbox entry stored under notifications/{uid}/{id}."""

    id: str
    title: str
    body: str
    type: NotificationType
    read: bool
    createdAt: int
    related: Optional[RelatedEntity] = None


@dataclass
class LineItem:
    """A single invoice line; amount wins over qty * unit_price."""

    description: Optional[str] = None
    qty: Optional[float] = None
    unit_price: Optional[float] = None
    amount: Optional[float] = None
