"""
Live counter stream.

- GET /events: SSE stream of {totalConnections, uniqueVisitors, timestamp} on
  every connect/disconnect, plus a heartbeat comment every HEARTBEAT_SEC.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from app.core.errors import IdentityResolutionError
from app.services.identity import CookieIdentityResolver, get_identity_resolver
from app.services.live_state import get_manager
from app.services.sse import MEDIA_TYPE, SSE_HEADERS

router = APIRouter()
logger = logging.getLogger("counter.api")


@router.get("/events", summary="Live connection counts via Server-Sent Events")
async def events(
    request: Request,
    resolver: CookieIdentityResolver = Depends(get_identity_resolver),
):
    """
    Stream of live counts. The connection is counted while it stays open.
    Connect with EventSource (withCredentials) or: curl -N http://localhost:3001/events
    """
    try:
        visitor_id, issued = resolver.resolve(request)
    except IdentityResolutionError as e:
        logger.warning("Identity resolution failed: %s", e)
        return JSONResponse(status_code=503, content={"detail": "visitor identity unavailable"})

    connection = get_manager().open(visitor_id)
    response = StreamingResponse(
        connection.frames(),
        media_type=MEDIA_TYPE,
        headers=SSE_HEADERS,
    )
    if issued:
        resolver.persist(response, visitor_id)
    return response
