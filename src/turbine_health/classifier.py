from __future__ import annotations

"""Threshold-and-rank scenario classifier.

Each scored scenario has a reference profile: a bias plus weighted deviations of
selected features from reference values. Raw scores are clipped to be
non-negative and normalized into a distribution; the top scenario wins unless
the evidence is too weak or incomplete, in which case the result is Unknown.

Any model exposing ``score(vector)`` can replace ``ThresholdRankModel``.
"""

import logging
import math
import sys
from dataclasses import dataclass, field
from typing import Mapping, Protocol

from turbine_health.errors import ScoringInvariantError
from turbine_health.feature_catalog import FEATURE_NAMES, WINDOWED_FEATURES
from turbine_health.features import FeatureVector
from turbine_health.schemas import SCORED_SCENARIOS, Scenario
from turbine_health.settings import ProfileTerm, ScenarioProfile, Settings, get_settings

logger = logging.getLogger(__name__)

SUM_TOLERANCE = 1e-9
SCORE_LIMIT = sys.float_info.max


@dataclass(frozen=True)
class ScenarioScore:
    scenario: Scenario
    raw: float
    contributions: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Classification:
    scenario: Scenario
    confidence: float
    contributing_features: tuple[str, ...]
    scores: Mapping[Scenario, float]
    reason: str | None = None
    unresolved: Scenario | None = None


class ScenarioModel(Protocol):
    def score(self, vector: FeatureVector) -> Mapping[Scenario, ScenarioScore]: ...


def deviation(term: ProfileTerm, value: float) -> float:
    d = (value - term.reference) / term.scale
    if term.mode == "excess":
        return max(d, 0.0)
    if term.mode == "shortfall":
        return max(-d, 0.0)
    if term.mode == "absolute":
        return abs(d)
    return d


def _bounded(v: float) -> float:
    """Saturate overflow from huge but finite features; NaN passes through."""
    if math.isinf(v):
        return math.copysign(SCORE_LIMIT, v)
    return v


def score_profile(profile: ScenarioProfile, vector: FeatureVector) -> ScenarioScore:
    if profile.gate_feature is not None:
        gate = vector.get(profile.gate_feature)
        if gate is None or (profile.gate_min is not None and gate < profile.gate_min):
            return ScenarioScore(profile.scenario, 0.0, {})

    contributions: dict[str, float] = {}
    for term in profile.terms:
        value = vector.get(term.feature)
        if value is None:
            # missing or not yet available: no evidence either way
            continue
        contributions[term.feature] = _bounded(term.weight * deviation(term, value))

    raw = _bounded(profile.bias + sum(contributions.values()))
    return ScenarioScore(profile.scenario, raw, contributions)


class ThresholdRankModel:
    """Baseline model scoring each scenario against its reference profile."""

    def __init__(self, profiles: tuple[ScenarioProfile, ...]):
        self.profiles = profiles

    def score(self, vector: FeatureVector) -> dict[Scenario, ScenarioScore]:
        return {p.scenario: score_profile(p, vector) for p in self.profiles}


def normalize_scores(raw: Mapping[Scenario, float]) -> dict[Scenario, float]:
    """Clip at zero and divide by the sum. All zero means Normal Operation = 1."""
    clipped = {s: max(float(raw.get(s, 0.0)), 0.0) for s in SCORED_SCENARIOS}
    peak = max(clipped.values())
    if peak <= 0.0:
        return {s: (1.0 if s == Scenario.NORMAL else 0.0) for s in SCORED_SCENARIOS}
    # scale by the peak first so the sum cannot overflow
    clipped = {s: v / peak for s, v in clipped.items()}
    total = sum(clipped.values())
    return {s: v / total for s, v in clipped.items()}


def _check_invariants(raw: Mapping[Scenario, float], dist: Mapping[Scenario, float]) -> None:
    bad = [s.value for s, v in raw.items() if not math.isfinite(v)]
    if bad:
        raise ScoringInvariantError(f"Non-finite raw scores for {bad}")
    if any(v < 0.0 or v > 1.0 for v in dist.values()):
        raise ScoringInvariantError(f"Normalized scores out of [0, 1]: {dist}")
    if abs(sum(dist.values()) - 1.0) > SUM_TOLERANCE:
        raise ScoringInvariantError(f"Normalized scores sum to {sum(dist.values())}")


def rank_contributions(contributions: Mapping[str, float], top: int) -> tuple[str, ...]:
    ranked = sorted(
        (name for name, c in contributions.items() if c != 0.0),
        key=lambda name: (-abs(contributions[name]), FEATURE_NAMES.index(name)),
    )
    return tuple(ranked[:top])


def _degraded(err: Exception) -> Classification:
    logger.error("Scoring invariant violated, returning Unknown: %s", err)
    return Classification(
        scenario=Scenario.UNKNOWN,
        confidence=0.0,
        contributing_features=(),
        scores={s: (1.0 if s == Scenario.NORMAL else 0.0) for s in SCORED_SCENARIOS},
        reason="invariant_violation",
    )


def classify(
    vector: FeatureVector,
    settings: Settings | None = None,
    model: ScenarioModel | None = None,
) -> Classification:
    settings = settings or get_settings()
    model = model or ThresholdRankModel(settings.profiles)

    scored = model.score(vector)
    raw = {s: (scored[s].raw if s in scored else 0.0) for s in SCORED_SCENARIOS}
    dist = normalize_scores(raw)
    try:
        _check_invariants(raw, dist)
    except ScoringInvariantError as err:
        if settings.debug:
            raise
        return _degraded(err)

    # max() keeps the first of equal scores, i.e. declaration order
    winner = max(SCORED_SCENARIOS, key=lambda s: dist[s])
    confidence = dist[winner]
    contributions = scored[winner].contributions if winner in scored else {}
    features = rank_contributions(contributions, settings.top_features)

    missing = [c for c in settings.mandatory_channels if c in vector.missing_channels]
    if missing:
        return Classification(
            scenario=Scenario.UNKNOWN,
            confidence=0.0,
            contributing_features=(),
            scores=dist,
            reason="missing_channels",
            unresolved=winner,
        )

    profile = next((p for p in settings.profiles if p.scenario == winner), None)
    if profile is not None and profile.requires_window and vector.pending & set(WINDOWED_FEATURES):
        return Classification(
            scenario=Scenario.UNKNOWN,
            confidence=confidence,
            contributing_features=features,
            scores=dist,
            reason="insufficient_window",
            unresolved=winner,
        )

    if confidence < settings.min_confidence:
        return Classification(
            scenario=Scenario.UNKNOWN,
            confidence=confidence,
            contributing_features=features,
            scores=dist,
            reason="low_confidence",
            unresolved=winner,
        )

    return Classification(
        scenario=winner,
        confidence=confidence,
        contributing_features=features,
        scores=dist,
    )
