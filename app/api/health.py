"""Health endpoints: liveness and current counts."""
from fastapi import APIRouter

from app.core.schemas import StatusOut
from app.services.live_state import get_manager

router = APIRouter(tags=["health"])


@router.get("/health/live")
async def liveness():
    """Liveness: process is running. No dependencies checked."""
    return {"status": "ok"}


@router.get("/health", response_model=StatusOut)
async def status():
    """Current counts, from the same registry snapshot the stream broadcasts."""
    snapshot = get_manager().snapshot()
    return StatusOut(
        status="ok",
        total_connections=snapshot.total_connections,
        unique_visitors=snapshot.unique_visitors,
        timestamp=snapshot.timestamp,
    )
