"""Convergence API routes."""
from fastapi import APIRouter

from vibefield.api.convergence import routes_convergence

router = APIRouter()

router.include_router(routes_convergence.router)
