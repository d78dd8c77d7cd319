"""
Shared in-memory state for the live counter.

Set at app lifespan start; read by API routes.
"""
from __future__ import annotations

from typing import Optional

from app.services.connection import ConnectionManager

_manager: Optional[ConnectionManager] = None


def set_manager(m: Optional[ConnectionManager]) -> None:
    global _manager
    _manager = m


def get_manager() -> ConnectionManager:
    if _manager is None:
        raise RuntimeError("Live counter state not initialized")
    return _manager
