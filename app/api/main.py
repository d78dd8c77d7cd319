"""
FastAPI application for the live visitor counter (in-memory; single process).

- Health: /health (current counts), /health/live
- Stream: /events (SSE)
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.api.health import router as health_router
from app.api.router import router as api_router
from app.services.connection import ConnectionManager
from app.services.live_state import set_manager


def _setup_logging() -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    _setup_logging()

    manager = ConnectionManager()
    set_manager(manager)
    logging.getLogger("counter.api").info(
        "Live counter ready: SSE at %s/events, heartbeat %.0fs",
        settings.API_PREFIX,
        settings.HEARTBEAT_SEC,
    )

    yield

    await manager.close_all()
    set_manager(None)


app = FastAPI(
    title="Live Visitor Counter",
    description="Real-time total connections and unique visitors over SSE",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(api_router, prefix=settings.API_PREFIX)


def main() -> None:
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
