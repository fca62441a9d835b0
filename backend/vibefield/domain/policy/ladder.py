"""Policy ladder: ordered gates deciding whether a state change may be broadcast.

Gates, first failure wins:
    1. venue safety suppression (driving, in a call, ...)
    2. confidence below theta_min
    3. uncertainty above omega_max
    4. per-class minimum interval since the last accepted change
    5. hysteresis: band must move by at least one step, or a fixed cushion
       since the last change when bands are not available
Otherwise the change is allowed, banded unless raw precision was permitted.

evaluate() is pure. Each class is either MAY_CHANGE or COOLING_DOWN; an
accepted change moves it to COOLING_DOWN until both the minimum interval and
hysteresis clear. Persisting last_change_at / band is the caller's job.
"""
from __future__ import annotations

from typing import Optional

from vibefield.domain.policy.models import (
    ClassState,
    PolicyConfig,
    PolicyDecision,
    PolicyInput,
    PolicyReason,
    RedactionLevel,
)

DEFAULT_CONFIG = PolicyConfig()


def _elapsed_s(inp: PolicyInput) -> Optional[float]:
    if inp.last_change_at is None:
        return None
    return (inp.now - inp.last_change_at).total_seconds()


def _bands_available(inp: PolicyInput) -> bool:
    return inp.band is not None and inp.prev_band is not None


def _min_interval_remaining(inp: PolicyInput, config: PolicyConfig) -> Optional[float]:
    elapsed = _elapsed_s(inp)
    if elapsed is None:
        return None
    remaining = config.min_interval_for(inp.class_key) - elapsed
    return remaining if remaining > 0 else None


def _hysteresis_block(inp: PolicyInput, config: PolicyConfig) -> tuple[bool, Optional[float]]:
    """(blocked, retry_after_s). Band blocks carry no retry time: the band has to move."""
    if _bands_available(inp):
        return abs(inp.band - inp.prev_band) < 1, None
    elapsed = _elapsed_s(inp)
    if elapsed is None:
        return False, None
    remaining = config.hysteresis_cushion_s - elapsed
    if remaining > 0:
        return True, remaining
    return False, None


def class_state(inp: PolicyInput, config: PolicyConfig = DEFAULT_CONFIG) -> ClassState:
    """Whether the class may change right now, ignoring confidence and safety gates."""
    if _min_interval_remaining(inp, config) is not None:
        return ClassState.COOLING_DOWN
    blocked, _ = _hysteresis_block(inp, config)
    return ClassState.COOLING_DOWN if blocked else ClassState.MAY_CHANGE


def _deny(reason: PolicyReason, state: ClassState, **flags) -> PolicyDecision:
    return PolicyDecision(
        allowed=False,
        reason=reason,
        redaction_level=RedactionLevel.SUPPRESSED,
        state=state,
        **flags,
    )


def evaluate(inp: PolicyInput, config: PolicyConfig = DEFAULT_CONFIG) -> PolicyDecision:
    """Run the ladder. Same input (including now) always yields the same decision."""
    state = class_state(inp, config)

    if inp.venue_safety_suppressed:
        return _deny(PolicyReason.VENUE_SAFETY, state)

    # NaN confidence fails the gate
    if not (inp.theta >= config.theta_min):
        return _deny(PolicyReason.LOW_CONFIDENCE, state)

    if not (inp.omega <= config.omega_max):
        return _deny(PolicyReason.HIGH_UNCERTAINTY, state)

    remaining = _min_interval_remaining(inp, config)
    if remaining is not None:
        return _deny(
            PolicyReason.MIN_INTERVAL,
            state,
            min_interval_enforced=True,
            retry_after_s=remaining,
        )

    blocked, retry_after = _hysteresis_block(inp, config)
    if blocked:
        return _deny(
            PolicyReason.HYSTERESIS,
            state,
            hysteresis_applied=True,
            retry_after_s=retry_after,
        )

    return PolicyDecision(
        allowed=True,
        reason=PolicyReason.OK,
        redaction_level=RedactionLevel.RAW if inp.allow_raw_precision else RedactionLevel.BANDED,
        state=state,
    )
