"""
Connection registry: visitor id -> set of live stream handles.

- total connections = one per handle; unique visitors = number of visitor keys.
- A visitor key exists only while it has at least one handle.
- All reads and writes of the map and the counter share one lock. Critical
  sections never await, so the lock is safe on the event loop and from threads.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Protocol, Set, Tuple

from app.core.errors import RegistryInvariantError

logger = logging.getLogger("counter.registry")


class ConnectionHandle(Protocol):
    """One live push channel to one client."""

    visitor_id: str
    created_at: datetime

    def send(self, message: str) -> bool:
        """Push an encoded frame. False means the client is gone."""
        ...


class ConnectionRegistry:
    """Concurrency-safe bookkeeping of live connections grouped by visitor."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._visitors: Dict[str, Set[ConnectionHandle]] = {}
        self._total = 0

    def attach(self, visitor_id: str, handle: ConnectionHandle) -> None:
        with self._lock:
            handles = self._visitors.setdefault(visitor_id, set())
            if handle in handles:
                return
            handles.add(handle)
            self._total += 1

    def detach(self, visitor_id: str, handle: ConnectionHandle) -> bool:
        """
        Remove handle from visitor_id; prune the visitor when its set empties.
        Returns False (and changes nothing) if the handle is not registered there.
        """
        with self._lock:
            handles = self._visitors.get(visitor_id)
            if handles is None or handle not in handles:
                return False
            handles.discard(handle)
            if not handles:
                del self._visitors[visitor_id]
            self._total -= 1
            return True

    def snapshot(self) -> Tuple[int, int]:
        """(total_connections, unique_visitors) read atomically."""
        with self._lock:
            return self._total, len(self._visitors)

    def for_each_handle(self, fn: Callable[[ConnectionHandle], None]) -> int:
        """
        Call fn on every registered handle. Handles are copied under the lock and
        visited outside it, so fn may detach handles. An error from fn on one
        handle is logged and the rest are still visited.
        """
        with self._lock:
            handles = [h for hs in self._visitors.values() for h in hs]
        for handle in handles:
            try:
                fn(handle)
            except Exception:
                logger.exception("Handler failed for visitor %s", handle.visitor_id)
        return len(handles)

    def handles_for(self, visitor_id: str) -> FrozenSet[ConnectionHandle]:
        with self._lock:
            return frozenset(self._visitors.get(visitor_id, ()))

    def check_invariants(self) -> None:
        """Raise RegistryInvariantError if the counter drifted from the handle sets."""
        with self._lock:
            counted = sum(len(hs) for hs in self._visitors.values())
            empty = [v for v, hs in self._visitors.items() if not hs]
            total = self._total
        if counted != total:
            raise RegistryInvariantError(
                f"total_connections={total} but {counted} handles are registered"
            )
        if empty:
            raise RegistryInvariantError(f"empty visitor entries not pruned: {empty}")

    @property
    def total_connections(self) -> int:
        return self.snapshot()[0]

    @property
    def unique_visitors(self) -> int:
        return self.snapshot()[1]

    def __contains__(self, visitor_id: object) -> bool:
        with self._lock:
            return visitor_id in self._visitors

    def __len__(self) -> int:
        return self.total_connections
