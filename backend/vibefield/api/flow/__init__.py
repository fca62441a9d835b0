"""Flow API routes."""
from fastapi import APIRouter

from vibefield.api.flow import routes_flow

router = APIRouter()

router.include_router(routes_flow.router)
