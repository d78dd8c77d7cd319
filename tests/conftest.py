from datetime import datetime, timezone

import pytest

from app.services.connection import ConnectionManager
from app.services.live_state import set_manager


class FakeHandle:
    """In-memory ConnectionHandle that records frames; alive=False simulates a gone client."""

    def __init__(self, visitor_id, alive=True):
        self.visitor_id = visitor_id
        self.created_at = datetime.now(timezone.utc)
        self.alive = alive
        self.messages = []

    def send(self, message):
        if not self.alive:
            return False
        self.messages.append(message)
        return True

    def __repr__(self):
        return f"FakeHandle({self.visitor_id})"


@pytest.fixture
def make_handle():
    return FakeHandle


@pytest.fixture
def manager():
    m = ConnectionManager(heartbeat_interval=3600, queue_maxsize=100)
    set_manager(m)
    yield m
    set_manager(None)
