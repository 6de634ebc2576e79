"""
Record store abstraction over the Realtime Database and an in-memory
implementation used for local runs and tests.

Records live in a tree addressed by slash-separated paths, keyed by
collection and then record id (e.g. `generators/GN0001`).
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Tuple

from firebase_admin import db

logger = logging.getLogger(__name__)

# Invoked with (before, after, record_id); after is None on deletion.
ChangeHandler = Callable[[Optional[dict], Optional[dict], str], None]


def join_path(*parts: str) -> str:
    return "/".join(str(p).strip("/") for p in parts if str(p).strip("/"))


def split_path(path: str) -> List[str]:
    return [segment for segment in path.split("/") if segment]


def new_key() -> str:
    """Returns a fresh, collision-free child key."""
    return uuid.uuid4().hex


class RecordStore(Protocol):
    """Interface for hierarchical record access."""

    def get(self, path: str) -> Optional[Any]:
        ...

    def set(self, path: str, value: Any) -> None:
        ...

    def update(self, path: str, values: dict) -> None:
        ...

    def remove(self, path: str) -> None:
        ...

    def allocate_counter(self, path: str) -> int:
        ...

    def query(self, path: str, field: str, value: Any) -> Dict[str, Any]:
        ...


def _prune(value: Any) -> Any:
    """Drops null leaves and empty maps, as the Realtime Database does."""
    if isinstance(value, dict):
        pruned = {}
        for key, child in value.items():
            child = _prune(child)
            if child is not None:
                pruned[str(key)] = child
        return pruned or None
    if isinstance(value, (list, tuple)):
        items = [_prune(item) for item in value]
        return items or None
    return value


class InMemoryRecordStore:
    """
    Simple in-memory tree for development and tests.

    Emulates database triggers: handlers registered with `watch` receive one
    call per changed record after the write that changed it has returned.
    Writes made from inside a handler are queued and delivered once the
    current handler finishes. A write from another thread blocks until the
    running dispatch loop has delivered its changes too.
    """

    def __init__(self):
        self.root: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._watchers: Dict[str, List[ChangeHandler]] = {}
        self._pending: Deque[Tuple[str, str, Optional[dict], Optional[dict]]] = (
            deque()
        )
        self._dispatch_lock = threading.Lock()
        self._local = threading.local()

    def watch(self, collection: str, handler: ChangeHandler) -> None:
        self._watchers.setdefault(collection, []).append(handler)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.root.clear()
            self._pending.clear()

    def get(self, path: str) -> Optional[Any]:
        with self._lock:
            return copy.deepcopy(self._read(split_path(path)))

    def set(self, path: str, value: Any) -> None:
        segments = split_path(path)
        self._write(segments, lambda: self._assign(segments, _prune(value)))

    def update(self, path: str, values: dict) -> None:
        if not values:
            raise ValueError("update requires a non-empty dict")
        segments = split_path(path)

        def apply():
            for key, value in values.items():
                self._assign(segments + split_path(key), _prune(value))

        self._write(segments, apply)

    def remove(self, path: str) -> None:
        segments = split_path(path)
        self._write(segments, lambda: self._assign(segments, None))

    def allocate_counter(self, path: str) -> int:
        with self._lock:
            segments = split_path(path)
            current = self._read(segments) or 0
            self._assign(segments, current + 1)
            return current + 1

    def query(self, path: str, field: str, value: Any) -> Dict[str, Any]:
        with self._lock:
            node = self._read(split_path(path))
            if not isinstance(node, dict):
                return {}
            return {
                key: copy.deepcopy(child)
                for key, child in sorted(node.items())
                if isinstance(child, dict) and child.get(field) == value
            }

    def _read(self, segments: List[str]) -> Optional[Any]:
        node: Any = self.root
        for segment in segments:
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return node

    def _assign(self, segments: List[str], value: Any) -> None:
        if not segments:
            self.root = value if isinstance(value, dict) else {}
            return
        if value is None:
            self._delete(segments)
            return
        node = self.root
        for segment in segments[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {}
                node[segment] = child
            node = child
        node[segments[-1]] = copy.deepcopy(value)

    def _delete(self, segments: List[str]) -> None:
        trail = []
        node: Any = self.root
        for segment in segments[:-1]:
            if not isinstance(node, dict) or segment not in node:
                return
            trail.append((node, segment))
            node = node[segment]
        if isinstance(node, dict):
            node.pop(segments[-1], None)
        # Parents left without children disappear.
        for parent, segment in reversed(trail):
            if parent[segment]:
                break
            del parent[segment]

    def _write(self, segments: List[str], mutate: Callable[[], None]) -> None:
        with self._lock:
            if segments:
                touched = [segments[0]] if segments[0] in self._watchers else []
            else:
                touched = list(self._watchers)
            before = {c: copy.deepcopy(self.root.get(c) or {}) for c in touched}
            mutate()
            for collection in touched:
                after = self.root.get(collection) or {}
                for record_id in sorted(set(before[collection]) | set(after)):
                    old = before[collection].get(record_id)
                    new = copy.deepcopy(after.get(record_id))
                    if old != new:
                        self._pending.append((collection, record_id, old, new))
        self._drain()

    def _drain(self) -> None:
        # Handler writes are picked up by the loop already running here.
        if getattr(self._local, "dispatching", False):
            return
        with self._dispatch_lock:
            self._local.dispatching = True
            try:
                while True:
                    with self._lock:
                        if not self._pending:
                            break
                        collection, record_id, before, after = self._pending.popleft()
                    for handler in list(self._watchers.get(collection, [])):
                        try:
                            handler(before, after, record_id)
                        except Exception:
                            logger.exception(
                                f"Trigger for {collection}/{record_id} failed"
                            )
            finally:
                self._local.dispatching = False


class FirebaseRecordStore:
    """Realtime Database implementation using the Admin SDK."""

    def __init__(self, app=None):
        self.app = app

    def _ref(self, path: str) -> db.Reference:
        return db.reference("/" + join_path(path), app=self.app)

    def get(self, path: str) -> Optional[Any]:
        return self._ref(path).get()

    def set(self, path: str, value: Any) -> None:
        if value is None:
            self._ref(path).delete()
            return
        self._ref(path).set(value)

    def update(self, path: str, values: dict) -> None:
        self._ref(path).update(values)

    def remove(self, path: str) -> None:
        self._ref(path).delete()

    def allocate_counter(self, path: str) -> int:
        # Runs as a compare-and-swap transaction; retried by the SDK on contention.
        return self._ref(path).transaction(lambda current: (current or 0) + 1)

    def query(self, path: str, field: str, value: Any) -> Dict[str, Any]:
        result = self._ref(path).order_by_child(field).equal_to(value).get()
        return dict(result or {})
