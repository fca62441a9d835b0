"""Policy ladder routes for state classes other than presence (music switch, work status, ...)."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from vibefield.api.deps import get_current_identity, get_policy_config, get_policy_store
from vibefield.domain.common.errors import ValidationError
from vibefield.domain.common.types import to_naive_utc, utcnow
from vibefield.domain.policy.ladder import evaluate
from vibefield.domain.policy.models import PolicyConfig, PolicyInput
from vibefield.domain.policy.repositories import PolicyStateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/policy", tags=["policy"])


class PolicyEvaluateRequest(BaseModel):
    """Candidate state change. Omitted history is loaded from the stored ladder state.

    Supplied history is for dry runs only; a commit always runs against the stored state.
    """
    class_key: str = Field(..., min_length=1, max_length=64)
    theta: float
    omega: float
    band: Optional[int] = None
    prev_band: Optional[int] = None
    last_change_at: Optional[datetime] = None
    venue_safety_suppressed: bool = False
    allow_raw_precision: bool = False
    commit: bool = Field(default=False, description="Record the change when allowed")


@router.post("/evaluate")
async def evaluate_policy(
    request: PolicyEvaluateRequest,
    identity_id: str = Depends(get_current_identity),
    store: PolicyStateStore = Depends(get_policy_store),
    config: PolicyConfig = Depends(get_policy_config),
):
    """Run the ladder for one class. Denials are normal responses with allowed=false."""
    if request.commit and (request.last_change_at is not None or request.prev_band is not None):
        raise ValidationError("last_change_at and prev_band cannot be supplied with commit")

    now = utcnow()
    last_change_at = request.last_change_at
    prev_band = request.prev_band
    if last_change_at is None or prev_band is None:
        stored = await store.get(identity_id, request.class_key)
        if stored is not None:
            last_change_at = last_change_at or stored.last_change_at
            prev_band = prev_band if prev_band is not None else stored.band
    if last_change_at is not None:
        last_change_at = to_naive_utc(last_change_at)

    decision = evaluate(
        PolicyInput(
            class_key=request.class_key,
            now=now,
            theta=request.theta,
            omega=request.omega,
            last_change_at=last_change_at,
            band=request.band,
            prev_band=prev_band,
            venue_safety_suppressed=request.venue_safety_suppressed,
            allow_raw_precision=request.allow_raw_precision,
        ),
        config,
    )
    if decision.allowed and request.commit:
        await store.record_change(identity_id, request.class_key, now, request.band)
        logger.info(f"[POLICY] {identity_id}/{request.class_key} change recorded")
    return decision.to_dict()
