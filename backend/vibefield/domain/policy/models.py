"""Policy ladder contracts."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional


class PolicyReason(str, enum.Enum):
    OK = "ok"
    LOW_CONFIDENCE = "low_confidence"
    HIGH_UNCERTAINTY = "high_uncertainty"
    MIN_INTERVAL = "min_interval"
    HYSTERESIS = "hysteresis"
    VENUE_SAFETY = "venue_safety"


class RedactionLevel(str, enum.Enum):
    RAW = "raw"
    BANDED = "banded"
    SUPPRESSED = "suppressed"


class ClassState(str, enum.Enum):
    MAY_CHANGE = "may_change"
    COOLING_DOWN = "cooling_down"


@dataclass(frozen=True)
class PolicyConfig:
    theta_min: float = 0.75
    omega_max: float = 0.15
    hysteresis_cushion_s: float = 5.0
    default_min_interval_s: float = 30.0
    min_intervals_s: Mapping[str, float] = field(
        default_factory=lambda: {
            "presence": 30.0,
            "music_switch": 40.0,
            "work_status": 1800.0,
            "home_hvac": 480.0,
        }
    )

    @classmethod
    def from_settings(cls, settings) -> "PolicyConfig":
        return cls(
            theta_min=settings.policy_theta_min,
            omega_max=settings.policy_omega_max,
            hysteresis_cushion_s=settings.policy_hysteresis_cushion_seconds,
            default_min_interval_s=settings.policy_default_min_interval_seconds,
            min_intervals_s=dict(settings.policy_min_intervals),
        )

    def min_interval_for(self, class_key: str) -> float:
        return float(self.min_intervals_s.get(class_key, self.default_min_interval_s))


@dataclass(frozen=True)
class PolicyInput:
    """Everything the ladder looks at. now is supplied by the caller (synthetic clocks in tests)."""

    class_key: str
    now: datetime
    theta: float
    omega: float
    last_change_at: Optional[datetime] = None
    band: Optional[int] = None
    prev_band: Optional[int] = None
    venue_safety_suppressed: bool = False
    allow_raw_precision: bool = False


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: PolicyReason
    redaction_level: RedactionLevel
    state: ClassState
    min_interval_enforced: bool = False
    hysteresis_applied: bool = False
    retry_after_s: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value,
            "redaction_level": self.redaction_level.value,
            "state": self.state.value,
            "observability": {
                "min_interval_enforced": self.min_interval_enforced,
                "hysteresis_applied": self.hysteresis_applied,
            },
            "retry_after_s": self.retry_after_s,
        }


@dataclass(frozen=True)
class PolicyStateRecord:
    """What the caller remembers about the last accepted change of one class."""

    last_change_at: datetime
    band: Optional[int] = None
