from __future__ import annotations

from turbine_health.classifier import Classification
from turbine_health.schemas import Scenario
from turbine_health.settings import Settings, get_settings

MAX_RECOMMENDATIONS = 4


def confidence_tier(confidence: float, settings: Settings) -> str:
    if confidence >= settings.high_confidence:
        return "high"
    if confidence >= settings.min_confidence:
        return "moderate"
    return "low"


def recommend(classification: Classification, settings: Settings | None = None) -> list[str]:
    """Ordered maintenance advice (1-4 lines) for one classification.

    Base lines come from the scenario x confidence-tier table. Lines keyed on the
    most salient contributing feature (or, for Unknown, on the reason) go first.
    """
    settings = settings or get_settings()
    table = settings.recommendations
    scenario = classification.scenario

    tier = confidence_tier(classification.confidence, settings)
    first: tuple[str, ...] = ()
    if scenario == Scenario.UNKNOWN:
        if classification.reason is not None:
            first = table.unknown_reasons.get(classification.reason, ())
    elif classification.contributing_features:
        top = classification.contributing_features[0]
        first = table.salient.get(scenario, {}).get(top, ())

    out: list[str] = []
    for line in (*first, *table.tiers[scenario][tier]):
        if line not in out:
            out.append(line)
    return out[:MAX_RECOMMENDATIONS]
