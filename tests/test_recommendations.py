from __future__ import annotations

import pytest

from turbine_health.classifier import Classification
from turbine_health.recommendations import confidence_tier, recommend
from turbine_health.schemas import SCORED_SCENARIOS, Scenario
from turbine_health.settings import get_settings


def _c(scenario, confidence, features=(), reason=None):
    return Classification(
        scenario=scenario,
        confidence=confidence,
        contributing_features=tuple(features),
        scores={s: 0.25 for s in SCORED_SCENARIOS},
        reason=reason,
    )


def test_confidence_tiers():
    s = get_settings()
    assert confidence_tier(0.9, s) == "high"
    assert confidence_tier(0.6, s) == "moderate"
    assert confidence_tier(0.2, s) == "low"


@pytest.mark.parametrize("scenario", list(Scenario))
@pytest.mark.parametrize("confidence", [0.0, 0.3, 0.55, 0.8, 1.0])
def test_table_is_total(scenario, confidence):
    recs = recommend(_c(scenario, confidence))
    assert 1 <= len(recs) <= 4
    assert len(set(recs)) == len(recs)


def test_high_confidence_gearbox_schedules_maintenance():
    recs = recommend(_c(Scenario.GEARBOX_WEAR, 0.9, ["gearbox_temp_delta"]))
    assert any("schedule maintenance" in r.lower() for r in recs)


def test_gearbox_trend_puts_oil_check_before_vibration_analysis():
    recs = recommend(_c(Scenario.GEARBOX_WEAR, 0.9, ["gearbox_bearing_temp_trend", "gearbox_temp_delta"]))
    oil = next(i for i, r in enumerate(recs) if "viscosity" in r)
    vibration = next(i for i, r in enumerate(recs) if r.lower().startswith("perform vibration"))
    assert oil < vibration


def test_moderate_confidence_gives_monitoring_advice():
    recs = recommend(_c(Scenario.YAW_DEGRADATION, 0.6))
    assert recs[0] == "Monitor yaw misalignment trend"


def test_unknown_reason_comes_first():
    recs = recommend(_c(Scenario.UNKNOWN, 0.9, reason="insufficient_window"))
    assert recs[0].startswith("Collect more samples")

    recs = recommend(_c(Scenario.UNKNOWN, 0.0, reason="missing_channels"))
    assert recs[0] == "Check the sensors for missing mandatory channels"
