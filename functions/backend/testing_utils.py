"""
Helpers for tests: a deterministic clock, caller identities and a fully
wired in-memory service graph.
"""

from __future__ import annotations

from typing import Optional

from backend.config import Settings
from backend.dependencies import Services, build_services
from backend.identity import InMemoryIdentityAdmin
from backend.store import InMemoryRecordStore
from shared.types import CallerIdentity, Role

# 2023-11-14T22:13:20Z
START_MS = 1_700_000_000_000


class FakeClock:
    """Advances by `step` milliseconds on every reading."""

    def __init__(self, start: int = START_MS, step: int = 1000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


def caller(role: Optional[Role | str], uid: Optional[str] = None) -> CallerIdentity:
    return CallerIdentity(uid=uid or f"{role or 'nobody'}-uid", role=role)


ADMIN = caller(Role.ADMIN)
OPERATOR = caller(Role.OPERATOR)
TECHNICIAN = caller(Role.TECHNICIAN)
INVENTORY = caller(Role.INVENTORY)


def make_services(clock: Optional[FakeClock] = None, **settings) -> Services:
    """Builds every service on a fresh in-memory store with triggers attached."""
    settings.setdefault("REPORT_TIMEZONE", "UTC")
    return build_services(
        Settings(**settings),
        store=InMemoryRecordStore(),
        identity=InMemoryIdentityAdmin(),
        clock=clock or FakeClock(),
    )


def inbox(services: Services, uid: str) -> dict:
    return services.store.get(f"notifications/{uid}") or {}
