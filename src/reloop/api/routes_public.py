# src/reloop/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from reloop.api.routes_public_parts.events import router as events_router
from reloop.api.routes_public_parts.health import router as health_router
from reloop.api.routes_public_parts.metrics import router as metrics_router
from reloop.api.routes_public_parts.notes import router as notes_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(notes_router, prefix="/v1", tags=["notes"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
