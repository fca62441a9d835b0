"""Policy API routes."""
from fastapi import APIRouter

from vibefield.api.policy import routes_policy

router = APIRouter()

router.include_router(routes_policy.router)
