from app.services.connection import ConnectionManager, ConnectionState, StreamConnection
from app.services.identity import CookieIdentityResolver, get_identity_resolver
from app.services.live_broadcast import LiveBroadcaster
from app.services.live_state import get_manager, set_manager
from app.services.registry import ConnectionHandle, ConnectionRegistry

__all__ = [
    "ConnectionHandle",
    "ConnectionManager",
    "ConnectionRegistry",
    "ConnectionState",
    "CookieIdentityResolver",
    "LiveBroadcaster",
    "StreamConnection",
    "get_identity_resolver",
    "get_manager",
    "set_manager",
]
