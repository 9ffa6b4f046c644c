#!/usr/bin/env python3
"""
Gig Discovery Service

This FastAPI service hosts discovery sessions: each session owns a query
controller that searches, filters, sorts and pages gig listings for one actor.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

import psutil
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from ...config import settings
from ...db.repository import ListingRepository
from ...logging_config import setup_logging
from ...models.listing import Coordinate
from ...models.query import (
    BUDGET_RANGES,
    CATEGORIES,
    DURATION_OPTIONS,
    FILTER_PRESETS,
    RADIUS_OPTIONS,
    DiscoveryView,
    SortOption,
    Urgency,
    WorkTypeFilter,
)
from .controller import DiscoveryController
from .sources import StaticLocationProvider

# Load environment variables
load_dotenv()

# Create module-specific logger
logger = setup_logging("gig_discovery_api")
setup_logging("gigdiscovery")

# Monotonic seconds used for session idle tracking
clock: Callable[[], float] = time.monotonic


@dataclass
class Session:
    controller: DiscoveryController
    last_access: float


_sessions_lock = asyncio.Lock()
sessions: Dict[str, Session] = {}


class SessionRequest(BaseModel):
    actor_id: Optional[str] = None
    coordinate: Optional[Coordinate] = None


class QueryUpdate(BaseModel):
    """Intents to apply to a session; omitted fields are left alone."""
    search_term: Optional[str] = None
    category: Optional[str] = None
    budget_min: Optional[float] = Field(default=None, ge=0)
    budget_max: Optional[float] = Field(default=None, ge=0)
    durations: Optional[List[str]] = None
    work_type: Optional[WorkTypeFilter] = None
    urgency: Optional[Urgency] = None
    skills: Optional[List[str]] = None
    sort_option: Optional[SortOption] = None
    show_nearby_only: Optional[bool] = None
    radius_km: Optional[float] = Field(default=None, gt=0)
    coordinate: Optional[Coordinate] = None


class SessionResponse(BaseModel):
    id: str
    view: DiscoveryView


async def expire_idle_sessions() -> int:
    """Close and drop sessions idle longer than ``session_idle_seconds``."""
    cutoff = clock() - settings.session_idle_seconds
    async with _sessions_lock:
        expired = {sid: s for sid, s in sessions.items() if s.last_access < cutoff}
        for sid in expired:
            del sessions[sid]
    for sid, session in expired.items():
        await session.controller.close()
        logger.info("Session expired", extra={"session_id": sid})
    return len(expired)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the listing repository and close every session on shutdown."""
    repository = await ListingRepository(settings.db_path).ainit()
    app.state.repository = repository
    logger.info("Gig discovery service started", extra={"db_path": settings.db_path})
    try:
        yield
    finally:
        async with _sessions_lock:
            for session in sessions.values():
                await session.controller.close()
            sessions.clear()
        logger.info("Service shutdown complete")


app = FastAPI(
    title="Gig Discovery Service",
    description="Search, filter, sort and page gig listings",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def get_session(sid: str) -> DiscoveryController:
    await expire_idle_sessions()
    async with _sessions_lock:
        session = sessions.get(sid)
        if session is not None:
            session.last_access = clock()
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {sid}")
    return session.controller


def apply_update(controller: DiscoveryController, update: QueryUpdate) -> List[str]:
    """Translate a query update into controller intents; returns the applied fields.

    The whole update is validated before any intent is dispatched, so a
    rejected update leaves the session unchanged.

    Raises:
        ValueError: If any part of the update is invalid
    """
    fields = update.model_dump(exclude_unset=True)

    filter_changes = {
        key: fields[key]
        for key in ("budget_min", "budget_max", "durations", "work_type", "urgency", "skills")
        if key in fields
    }
    for key in ("durations", "skills"):
        if key in filter_changes and filter_changes[key] is None:
            filter_changes[key] = []
    for key, default in (("work_type", WorkTypeFilter.ALL), ("urgency", Urgency.ALL)):
        if key in filter_changes and filter_changes[key] is None:
            filter_changes[key] = default

    if "category" in fields:
        controller.check_category(update.category)
    if filter_changes:
        controller.validate_filters(**filter_changes)

    if "coordinate" in fields and isinstance(controller.location, StaticLocationProvider):
        controller.location.update(update.coordinate)
        controller.location_changed()
    if "search_term" in fields:
        controller.set_search_term(update.search_term or "")
    if "category" in fields:
        controller.set_category(update.category)
    if "show_nearby_only" in fields:
        controller.set_nearby_only(bool(update.show_nearby_only))
    if update.radius_km is not None:
        controller.set_radius(update.radius_km)
    if "sort_option" in fields:
        controller.set_sort(update.sort_option)
    if filter_changes:
        controller.update_filters(**filter_changes)

    return sorted(fields)


@app.post("/sessions")
async def create_session(request: SessionRequest) -> SessionResponse:
    """Open a discovery session and run its initial load."""
    await expire_idle_sessions()
    sid = f"session-{uuid4().hex[:12]}"
    controller = DiscoveryController(
        app.state.repository,
        location=StaticLocationProvider(request.coordinate),
        actor_id=request.actor_id,
    )
    view = await controller.start()
    async with _sessions_lock:
        sessions[sid] = Session(controller=controller, last_access=clock())
    logger.info("Session created", extra={"session_id": sid, "authenticated": request.actor_id is not None})
    return SessionResponse(id=sid, view=view)


@app.get("/sessions/{sid}")
async def get_view(sid: str) -> DiscoveryView:
    controller = await get_session(sid)
    return controller.view


@app.patch("/sessions/{sid}/query")
async def update_query(sid: str, update: QueryUpdate) -> Dict[str, Any]:
    controller = await get_session(sid)
    try:
        applied = apply_update(controller, update)
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"id": sid, "status": "queued", "applied": applied}


@app.post("/sessions/{sid}/search")
async def submit_search(sid: str) -> DiscoveryView:
    controller = await get_session(sid)
    return await controller.submit_search()


@app.post("/sessions/{sid}/more")
async def load_more(sid: str) -> DiscoveryView:
    controller = await get_session(sid)
    return await controller.load_more()


@app.post("/sessions/{sid}/presets/{preset_id}")
async def apply_preset(sid: str, preset_id: str) -> Dict[str, Any]:
    controller = await get_session(sid)
    try:
        controller.apply_preset(preset_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"id": sid, "status": "queued", "preset": preset_id}


@app.delete("/sessions/{sid}/filters")
async def clear_filters(sid: str) -> Dict[str, Any]:
    controller = await get_session(sid)
    controller.clear_filters()
    return {"id": sid, "status": "queued"}


@app.delete("/sessions/{sid}")
async def close_session(sid: str) -> Dict[str, Any]:
    controller = await get_session(sid)
    async with _sessions_lock:
        sessions.pop(sid, None)
    await controller.close()
    return {"id": sid, "status": "closed"}


@app.get("/options")
async def get_options() -> Dict[str, Any]:
    """Choices offered by the filter panel."""
    return {
        "categories": CATEGORIES,
        "durations": DURATION_OPTIONS,
        "budget_ranges": [budget.model_dump() for budget in BUDGET_RANGES],
        "radius_km": RADIUS_OPTIONS,
        "sort_options": [option.value for option in SortOption],
        "presets": [preset.model_dump(mode="json") for preset in FILTER_PRESETS.values()],
    }


@app.get("/health")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint."""
    repository = getattr(app.state, "repository", None)
    healthy = repository is not None and await repository.check_connection()
    if not healthy:
        raise HTTPException(status_code=503, detail="Database connection failed")
    return {
        "status": "healthy",
        "database": "connected",
        "sessions": len(sessions),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metrics": {
            "cpu_percent": psutil.cpu_percent(),
            "memory_percent": psutil.virtual_memory().percent,
        },
    }


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
