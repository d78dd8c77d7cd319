"""
Per-connection lifecycle for the live count stream.

- StreamConnection: CONNECTING -> ATTACHED -> DETACHED (terminal). Attaching
  registers the connection and broadcasts; a keep-alive task pings this
  connection only; detaching runs exactly once and rebroadcasts.
- ConnectionManager: owns the registry and broadcaster and builds connections.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Callable, List, Optional

from app.core.config import settings
from app.core.errors import ConnectionStateError
from app.core.schemas import CountSnapshot
from app.services.live_broadcast import LiveBroadcaster
from app.services.registry import ConnectionHandle, ConnectionRegistry
from app.services.sse import HEARTBEAT_FRAME

logger = logging.getLogger("counter.connection")


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    ATTACHED = "attached"
    DETACHED = "detached"


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class StreamConnection:
    """
    One SSE client. Implements ConnectionHandle: send() enqueues an encoded frame
    on a bounded queue that frames() drains into the HTTP response.
    """

    def __init__(
        self,
        visitor_id: str,
        registry: ConnectionRegistry,
        broadcaster: LiveBroadcaster,
        heartbeat_interval: float = 15.0,
        queue_maxsize: int = 100,
    ):
        self.visitor_id = visitor_id
        self.connection_id = uuid.uuid4().hex[:12]
        self.created_at = datetime.now(timezone.utc)
        self._registry = registry
        self._broadcaster = broadcaster
        self._heartbeat_interval = heartbeat_interval
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_maxsize)
        self._state = ConnectionState.CONNECTING
        self._state_lock = threading.Lock()
        self._keepalive: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def __repr__(self) -> str:
        return (
            f"StreamConnection(id={self.connection_id}, visitor={self.visitor_id}, "
            f"state={self._state.value})"
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def keepalive_task(self) -> Optional[asyncio.Task]:
        return self._keepalive

    def send(self, message: str) -> bool:
        if self._state is not ConnectionState.ATTACHED:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            # Client stopped draining; treat as gone.
            return False
        return True

    def attach(self) -> None:
        """Register, start the keep-alive and push the current counts to everyone."""
        with self._state_lock:
            if self._state is not ConnectionState.CONNECTING:
                raise ConnectionStateError(
                    f"cannot attach connection {self.connection_id} in state {self._state.value}"
                )
            self._state = ConnectionState.ATTACHED
        self._loop = asyncio.get_running_loop()
        self._registry.attach(self.visitor_id, self)
        self._keepalive = self._loop.create_task(
            self._keep_alive(), name=f"keepalive-{self.connection_id}"
        )
        total, unique = self._registry.snapshot()
        logger.info(
            "New connection: visitor %s, total=%d unique=%d", self.visitor_id, total, unique
        )
        self._broadcaster.broadcast_current_state()

    def detach(self, broadcast: bool = True) -> bool:
        """
        Tear the connection down once. Later calls return False and do nothing,
        so a close notification racing a failed send cannot double-decrement.
        """
        with self._state_lock:
            if self._state is ConnectionState.DETACHED:
                return False
            was_attached = self._state is ConnectionState.ATTACHED
            self._state = ConnectionState.DETACHED

        task, self._keepalive = self._keepalive, None
        if task is not None and task is not _current_task():
            self._on_loop(task.cancel)
        self._on_loop(self._close_queue)
        if not was_attached:
            return True

        removed = self._registry.detach(self.visitor_id, self)
        total, unique = self._registry.snapshot()
        logger.info(
            "Connection closed: visitor %s, total=%d unique=%d", self.visitor_id, total, unique
        )
        if removed and broadcast:
            self._broadcaster.broadcast_current_state()
        return True

    async def frames(self) -> AsyncIterator[str]:
        """
        SSE body. Attaches on first iteration and detaches when the stream ends,
        including cancellation on client disconnect.
        """
        try:
            self.attach()
            while True:
                frame = await self._queue.get()
                if frame is None:
                    break
                yield frame
        finally:
            self.detach()

    async def _keep_alive(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            if not self.send(HEARTBEAT_FRAME):
                logger.debug("Keep-alive failed: visitor %s", self.visitor_id)
                self.detach()
                return

    def _on_loop(self, fn: Callable[[], object]) -> None:
        """Run fn now when on the connection's loop, else hand it to that loop."""
        if self._loop is None or _running_loop() is self._loop:
            fn()
        else:
            self._loop.call_soon_threadsafe(fn)

    def _close_queue(self) -> None:
        while True:
            try:
                self._queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()


class ConnectionManager:
    """Wires the registry, broadcaster and per-request StreamConnections together."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        heartbeat_interval: Optional[float] = None,
        queue_maxsize: Optional[int] = None,
    ):
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.broadcaster = LiveBroadcaster(self.registry, on_send_failure=self._on_send_failure)
        self._heartbeat_interval = (
            settings.HEARTBEAT_SEC if heartbeat_interval is None else heartbeat_interval
        )
        self._queue_maxsize = (
            settings.CONNECTION_QUEUE_SIZE if queue_maxsize is None else queue_maxsize
        )

    def open(self, visitor_id: str) -> StreamConnection:
        return StreamConnection(
            visitor_id,
            self.registry,
            self.broadcaster,
            heartbeat_interval=self._heartbeat_interval,
            queue_maxsize=self._queue_maxsize,
        )

    def snapshot(self) -> CountSnapshot:
        return self.broadcaster.current_snapshot()

    def _on_send_failure(self, handle: ConnectionHandle) -> bool:
        # The broadcaster sends the follow-up counts itself.
        if isinstance(handle, StreamConnection):
            return handle.detach(broadcast=False)
        return self.registry.detach(handle.visitor_id, handle)

    async def close_all(self) -> int:
        """Detach every live connection without rebroadcasting (shutdown)."""
        handles: List[ConnectionHandle] = []
        self.registry.for_each_handle(handles.append)
        tasks = []
        for handle in handles:
            if isinstance(handle, StreamConnection):
                if handle.keepalive_task is not None:
                    tasks.append(handle.keepalive_task)
                handle.detach(broadcast=False)
            else:
                self.registry.detach(handle.visitor_id, handle)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Closed %d live connection(s)", len(handles))
        return len(handles)
