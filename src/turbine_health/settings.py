from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from turbine_health.errors import SettingsError
from turbine_health.feature_catalog import CHANNEL_COLS, FEATURE_NAMES, WINDOWED_FEATURES
from turbine_health.schemas import SCENARIO_KEYS, SCORED_SCENARIOS, Scenario, Severity

CONFIG_DIR = Path(__file__).resolve().parent / "configs"

DEVIATION_MODES = ("linear", "excess", "shortfall", "absolute")
CONFIDENCE_TIERS = ("high", "moderate", "low")
UNKNOWN_REASONS = ("insufficient_window", "missing_channels", "low_confidence", "invariant_violation")
MAX_TOP_FEATURES = 3


@dataclass(frozen=True)
class TurbineSpec:
    rated_power_kw: float
    cut_in_wind_speed: float
    rated_wind_speed: float
    cut_out_wind_speed: float
    pitch_reference_deg: float


@dataclass(frozen=True)
class WindowConfig:
    size: int
    min_samples: int


@dataclass(frozen=True)
class ProfileTerm:
    feature: str
    mode: str
    reference: float
    scale: float
    weight: float


@dataclass(frozen=True)
class ScenarioProfile:
    scenario: Scenario
    bias: float
    terms: tuple[ProfileTerm, ...]
    gate_feature: str | None = None
    gate_min: float | None = None
    requires_window: bool = False


@dataclass(frozen=True)
class RecommendationTable:
    tiers: Mapping[Scenario, Mapping[str, tuple[str, ...]]]
    salient: Mapping[Scenario, Mapping[str, tuple[str, ...]]]
    unknown_reasons: Mapping[str, tuple[str, ...]]


@dataclass(frozen=True)
class Settings:
    debug: bool
    turbine: TurbineSpec
    window: WindowConfig
    min_confidence: float
    high_confidence: float
    mandatory_channels: tuple[str, ...]
    top_features: int
    physical_ranges: Mapping[str, tuple[float | None, float | None]]
    profiles: tuple[ScenarioProfile, ...]
    severity: Mapping[Scenario, Severity]
    recommendations: RecommendationTable = field(repr=False)

    def profile(self, scenario: Scenario) -> ScenarioProfile:
        for p in self.profiles:
            if p.scenario == scenario:
                return p
        raise KeyError(scenario)


def _env_flag(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _scenario(key: str) -> Scenario:
    try:
        return SCENARIO_KEYS[key]
    except KeyError:
        raise SettingsError(f"Unknown scenario key '{key}'. Expected one of {sorted(SCENARIO_KEYS)}") from None


def _parse_profile(key: str, raw: dict[str, Any]) -> ScenarioProfile:
    scenario = _scenario(key)
    terms: list[ProfileTerm] = []
    for feat, spec in (raw.get("terms") or {}).items():
        if feat not in FEATURE_NAMES:
            raise SettingsError(f"Profile '{key}' references unknown feature '{feat}'")
        mode = str(spec.get("mode", "linear"))
        if mode not in DEVIATION_MODES:
            raise SettingsError(f"Profile '{key}' feature '{feat}': unknown mode '{mode}'")
        scale = float(spec.get("scale", 1.0))
        if scale <= 0:
            raise SettingsError(f"Profile '{key}' feature '{feat}': scale must be > 0")
        terms.append(
            ProfileTerm(
                feature=feat,
                mode=mode,
                reference=float(spec.get("reference", 0.0)),
                scale=scale,
                weight=float(spec["weight"]),
            )
        )

    gate = raw.get("gate") or {}
    gate_feature = gate.get("feature")
    if gate_feature is not None and gate_feature not in FEATURE_NAMES:
        raise SettingsError(f"Profile '{key}' gate references unknown feature '{gate_feature}'")

    requires_window = bool(raw.get("requires_window", False))
    if requires_window and not any(t.feature in WINDOWED_FEATURES for t in terms):
        raise SettingsError(f"Profile '{key}' requires a window but has no windowed terms")

    # Keep terms in feature declaration order for deterministic ranking.
    terms.sort(key=lambda t: FEATURE_NAMES.index(t.feature))
    return ScenarioProfile(
        scenario=scenario,
        bias=float(raw.get("bias", 0.0)),
        terms=tuple(terms),
        gate_feature=gate_feature,
        gate_min=float(gate["min"]) if "min" in gate else None,
        requires_window=requires_window,
    )


def _parse_recommendations(raw: dict[str, Any]) -> RecommendationTable:
    tiers: dict[Scenario, Mapping[str, tuple[str, ...]]] = {}
    salient: dict[Scenario, Mapping[str, tuple[str, ...]]] = {}
    reasons: dict[str, tuple[str, ...]] = {}

    for key, block in raw.items():
        scenario = _scenario(key)
        tiers[scenario] = MappingProxyType(
            {tier: tuple(str(s) for s in block.get(tier) or []) for tier in CONFIDENCE_TIERS}
        )
        salient[scenario] = MappingProxyType(
            {feat: tuple(str(s) for s in recs) for feat, recs in (block.get("salient") or {}).items()}
        )
        if scenario == Scenario.UNKNOWN:
            reasons = {r: tuple(str(s) for s in recs) for r, recs in (block.get("reasons") or {}).items()}

    # The table must be total: every scenario x tier yields at least one line.
    gaps = [
        f"{s.value}/{tier}"
        for s in (*SCORED_SCENARIOS, Scenario.UNKNOWN)
        for tier in CONFIDENCE_TIERS
        if not tiers.get(s, {}).get(tier)
    ]
    if gaps:
        raise SettingsError(f"Recommendation table has empty entries: {gaps}")

    return RecommendationTable(
        tiers=MappingProxyType(tiers),
        salient=MappingProxyType(salient),
        unknown_reasons=MappingProxyType(reasons),
    )


def _parse_severity(raw: dict[str, Any]) -> Mapping[Scenario, Severity]:
    allowed = [s.value for s in Severity]
    out: dict[Scenario, Severity] = {}
    for key, level in raw.items():
        if level not in allowed:
            raise SettingsError(f"Severity for '{key}' must be one of {allowed}, got {level!r}")
        out[_scenario(key)] = Severity(level)
    missing = [s.value for s in (*SCORED_SCENARIOS, Scenario.UNKNOWN) if s not in out]
    if missing:
        raise SettingsError(f"Missing severity for scenarios: {missing}")
    return MappingProxyType(out)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise SettingsError(f"Config file not found: {path}")
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def parse_settings(cfg: dict[str, Any], recommendations: dict[str, Any]) -> Settings:
    turbine = cfg["turbine"]
    window = cfg.get("window", {})
    clf = cfg.get("classifier", {})

    mandatory = tuple(clf.get("mandatory_channels", ["WindSpeed", "Power"]))
    unknown = [c for c in mandatory if c not in CHANNEL_COLS]
    if unknown:
        raise SettingsError(f"Unknown mandatory channels: {unknown}")

    ranges: dict[str, tuple[float | None, float | None]] = {}
    for col, bounds in (cfg.get("physical_ranges") or {}).items():
        if col not in CHANNEL_COLS:
            raise SettingsError(f"Physical range for unknown channel '{col}'")
        lo, hi = bounds
        ranges[col] = (None if lo is None else float(lo), None if hi is None else float(hi))

    profiles_raw = cfg.get("scenarios") or {}
    profiles = tuple(_parse_profile(k, v) for k, v in profiles_raw.items())
    missing = [s.value for s in SCORED_SCENARIOS if s not in {p.scenario for p in profiles}]
    if missing:
        raise SettingsError(f"Missing scenario profiles: {missing}")
    profiles = tuple(sorted(profiles, key=lambda p: SCORED_SCENARIOS.index(p.scenario)))

    size = int(window.get("size", 6))
    min_samples = int(window.get("min_samples", 2))
    if min_samples < 2 or size < min_samples:
        raise SettingsError("window.size must be >= window.min_samples >= 2")

    top_features = int(clf.get("top_features", MAX_TOP_FEATURES))
    if not 1 <= top_features <= MAX_TOP_FEATURES:
        raise SettingsError(
            f"classifier.top_features must be between 1 and {MAX_TOP_FEATURES}, got {top_features}"
        )

    debug = bool(cfg.get("debug", False))
    env_debug = _env_flag("TURBINE_HEALTH_DEBUG")
    if env_debug is not None:
        debug = env_debug

    return Settings(
        debug=debug,
        turbine=TurbineSpec(
            rated_power_kw=float(turbine["rated_power_kw"]),
            cut_in_wind_speed=float(turbine["cut_in_wind_speed"]),
            rated_wind_speed=float(turbine["rated_wind_speed"]),
            cut_out_wind_speed=float(turbine["cut_out_wind_speed"]),
            pitch_reference_deg=float(turbine.get("pitch_reference_deg", 10.0)),
        ),
        window=WindowConfig(size=size, min_samples=min_samples),
        min_confidence=float(clf.get("min_confidence", 0.5)),
        high_confidence=float(clf.get("high_confidence", 0.75)),
        mandatory_channels=mandatory,
        top_features=top_features,
        physical_ranges=MappingProxyType(ranges),
        profiles=profiles,
        severity=_parse_severity(cfg.get("severity") or {}),
        recommendations=_parse_recommendations(recommendations),
    )


def load_settings(path: Path | None = None, recommendations_path: Path | None = None) -> Settings:
    if path is None:
        env_path = os.getenv("TURBINE_HEALTH_CONFIG")
        path = Path(env_path) if env_path else CONFIG_DIR / "default.yaml"
    if recommendations_path is None:
        recommendations_path = CONFIG_DIR / "recommendations.yaml"
    return parse_settings(_read_yaml(path), _read_yaml(recommendations_path))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once and never mutated."""
    return load_settings()
