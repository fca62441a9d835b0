"""Presence API routes."""
from fastapi import APIRouter

from vibefield.api.presence import routes_presence, routes_ws

router = APIRouter()

router.include_router(routes_presence.router)
router.include_router(routes_ws.router, tags=["websocket"])
