"""Field API routes."""
from fastapi import APIRouter

from vibefield.api.field import routes_tiles

router = APIRouter()

router.include_router(routes_tiles.router)
