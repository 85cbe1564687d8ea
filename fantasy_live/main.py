# fantasy_live/main.py
from __future__ import annotations

import logging
from fastapi import FastAPI
from fastapi.routing import APIRoute

from .db import Base, engine
from .settings import settings
from .services.scheduler import MatchScheduler
from .routers import matches as matches_router
from .routers import settlement as settlement_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- App init ---
app = FastAPI(title="Fantasy Live Engine", version="0.1.0")
# manual triggers work even when the timers are disabled
app.state.scheduler = MatchScheduler()

# --- Health Check ---
@app.get("/health")
def health():
    """Lightweight health check."""
    return {"ok": True, "scheduler": app.state.scheduler.running}

# --- Startup / shutdown ---
@app.on_event("startup")
async def startup():
    # Only auto-create tables locally; use Alembic in production
    if settings.ENV != "production":
        Base.metadata.create_all(bind=engine)
    if settings.SCHEDULER_ENABLED:
        await app.state.scheduler.start()
    else:
        logger.info("SCHEDULER_ENABLED=0, timers not started")

@app.on_event("shutdown")
async def shutdown():
    await app.state.scheduler.shutdown()

# --- Include routers ---
app.include_router(matches_router.router)
app.include_router(settlement_router.router)

# --- Debug route for visibility ---
@app.get("/debug/routes")
def list_routes():
    """List all registered API routes."""
    return [
        {"path": route.path, "name": route.name, "methods": sorted(route.methods)}
        for route in app.routes
        if isinstance(route, APIRoute)
    ]
