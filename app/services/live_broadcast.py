"""
In-memory live broadcaster for SSE fanout.

- On every registry change, one snapshot is built and pushed to all handles.
- A failed push is not retried; the handle is handed to on_send_failure, which
  tears that connection down.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from app.core.schemas import CountSnapshot
from app.services.registry import ConnectionHandle, ConnectionRegistry
from app.services.sse import encode_snapshot

logger = logging.getLogger("counter.broadcast")


class LiveBroadcaster:
    """Fanout of the current (total, unique) counts to every registered handle."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        on_send_failure: Optional[Callable[[ConnectionHandle], bool]] = None,
    ):
        self._registry = registry
        self._on_send_failure = on_send_failure
        self._broadcasts = 0
        self._failed_sends = 0

    def current_snapshot(self) -> CountSnapshot:
        total, unique = self._registry.snapshot()
        return CountSnapshot(
            total_connections=total,
            unique_visitors=unique,
            timestamp=datetime.now(timezone.utc),
        )

    def broadcast_current_state(self) -> CountSnapshot:
        """
        Send the current counts to all connected clients and return them.

        Unreachable handles are dropped without a nested broadcast; the fanout
        then repeats with the corrected counts until a pass drops nothing.
        """
        while True:
            snapshot = self.current_snapshot()
            frame = encode_snapshot(snapshot)
            failed: List[ConnectionHandle] = []

            def push(handle: ConnectionHandle) -> None:
                if not handle.send(frame):
                    failed.append(handle)

            self._registry.for_each_handle(push)
            self._broadcasts += 1

            if not failed:
                return snapshot
            self._failed_sends += len(failed)
            logger.debug("Broadcast: %d handle(s) unreachable", len(failed))
            if not self._drop(failed):
                return snapshot

    def _drop(self, failed: List[ConnectionHandle]) -> int:
        """Detach failed handles without rebroadcasting; returns how many were removed."""
        removed = 0
        for handle in failed:
            if self._on_send_failure is not None:
                gone = self._on_send_failure(handle)
            else:
                gone = self._registry.detach(handle.visitor_id, handle)
            if gone:
                removed += 1
        return removed

    @property
    def broadcasts(self) -> int:
        return self._broadcasts

    @property
    def failed_sends(self) -> int:
        return self._failed_sends
