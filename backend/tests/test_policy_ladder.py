"""Tests for the policy ladder."""
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from vibefield.domain.policy.ladder import class_state, evaluate
from vibefield.domain.policy.models import (
    ClassState,
    PolicyConfig,
    PolicyInput,
    PolicyReason,
    RedactionLevel,
)
from vibefield.domain.policy.redaction import redact_position
from vibefield.domain.common.geo import Position

NOW = datetime(2026, 3, 14, 12, 0, 0)


def make_input(**overrides) -> PolicyInput:
    base = PolicyInput(class_key="presence", now=NOW, theta=0.9, omega=0.05)
    return replace(base, **overrides)


def test_first_change_allowed_and_banded():
    decision = evaluate(make_input())
    assert decision.allowed is True
    assert decision.reason == PolicyReason.OK
    assert decision.redaction_level == RedactionLevel.BANDED
    assert decision.state == ClassState.MAY_CHANGE


def test_raw_precision_only_when_permitted():
    assert evaluate(make_input(allow_raw_precision=True)).redaction_level == RedactionLevel.RAW


@pytest.mark.parametrize(
    "extra",
    [
        {},
        {"omega": 0.9},
        {"last_change_at": NOW - timedelta(seconds=1)},
        {"band": 3, "prev_band": 3},
        {"allow_raw_precision": True},
        {"class_key": "work_status", "last_change_at": NOW},
    ],
)
def test_low_confidence_wins_over_later_gates(extra):
    decision = evaluate(make_input(theta=0.5, **extra))
    assert decision.allowed is False
    assert decision.reason == PolicyReason.LOW_CONFIDENCE
    assert decision.redaction_level == RedactionLevel.SUPPRESSED


def test_venue_safety_is_checked_first():
    decision = evaluate(make_input(theta=0.1, omega=0.9, venue_safety_suppressed=True))
    assert decision.reason == PolicyReason.VENUE_SAFETY


def test_nan_confidence_denied():
    assert evaluate(make_input(theta=float("nan"))).reason == PolicyReason.LOW_CONFIDENCE


def test_high_uncertainty():
    decision = evaluate(make_input(omega=0.16))
    assert decision.reason == PolicyReason.HIGH_UNCERTAINTY
    assert evaluate(make_input(omega=0.15)).allowed is True


@pytest.mark.parametrize(
    "class_key,interval",
    [("presence", 30), ("music_switch", 40), ("work_status", 1800), ("home_hvac", 480), ("unknown_class", 30)],
)
def test_min_interval_per_class(class_key, interval):
    just_before = make_input(class_key=class_key, last_change_at=NOW - timedelta(seconds=interval - 1))
    decision = evaluate(just_before)
    assert decision.reason == PolicyReason.MIN_INTERVAL
    assert decision.min_interval_enforced is True
    assert decision.retry_after_s == pytest.approx(1.0)
    assert decision.state == ClassState.COOLING_DOWN

    at_interval = make_input(class_key=class_key, last_change_at=NOW - timedelta(seconds=interval))
    assert evaluate(at_interval).allowed is True


def test_hysteresis_with_bands():
    moved = make_input(last_change_at=NOW - timedelta(seconds=60), band=4, prev_band=3)
    assert evaluate(moved).allowed is True

    same = make_input(last_change_at=NOW - timedelta(seconds=60), band=3, prev_band=3)
    decision = evaluate(same)
    assert decision.reason == PolicyReason.HYSTERESIS
    assert decision.hysteresis_applied is True
    assert decision.retry_after_s is None
    assert decision.state == ClassState.COOLING_DOWN


def test_hysteresis_idempotent():
    same = make_input(last_change_at=NOW - timedelta(seconds=60), band=2, prev_band=2)
    first = evaluate(same)
    second = evaluate(same)
    assert first.reason == second.reason == PolicyReason.HYSTERESIS


def test_hysteresis_cushion_without_bands():
    # A zero min interval isolates the cushion gate
    config = PolicyConfig(min_intervals_s={"presence": 0.0})
    within = make_input(last_change_at=NOW - timedelta(seconds=3))
    decision = evaluate(within, config)
    assert decision.reason == PolicyReason.HYSTERESIS
    assert decision.retry_after_s == pytest.approx(2.0)

    after = make_input(last_change_at=NOW - timedelta(seconds=5))
    assert evaluate(after, config).allowed is True


def test_deterministic_for_identical_input():
    inp = make_input(last_change_at=NOW - timedelta(seconds=10), band=1, prev_band=0)
    assert evaluate(inp) == evaluate(inp)


def test_class_state_transitions():
    config = PolicyConfig()
    assert class_state(make_input(), config) == ClassState.MAY_CHANGE
    cooling = make_input(last_change_at=NOW)
    assert class_state(cooling, config) == ClassState.COOLING_DOWN
    later = replace(cooling, now=NOW + timedelta(seconds=30))
    assert class_state(later, config) == ClassState.MAY_CHANGE


def test_decision_to_dict_shape():
    body = evaluate(make_input(theta=0.2)).to_dict()
    assert body["allowed"] is False
    assert body["reason"] == "low_confidence"
    assert body["redaction_level"] == "suppressed"
    assert set(body["observability"]) == {"min_interval_enforced", "hysteresis_applied"}


def test_config_from_settings_table():
    class FakeSettings:
        policy_theta_min = 0.8
        policy_omega_max = 0.1
        policy_hysteresis_cushion_seconds = 2.0
        policy_default_min_interval_seconds = 12.0
        policy_min_intervals = {"presence": 20.0}

    config = PolicyConfig.from_settings(FakeSettings)
    assert config.min_interval_for("presence") == 20.0
    assert config.min_interval_for("anything_else") == 12.0


def test_redaction_levels():
    pos = Position(37.774929, -122.419416)
    assert redact_position(pos, RedactionLevel.RAW) == pos
    assert redact_position(pos, RedactionLevel.BANDED) == Position(37.7749, -122.4194)
    with pytest.raises(ValueError):
        redact_position(pos, RedactionLevel.SUPPRESSED)
