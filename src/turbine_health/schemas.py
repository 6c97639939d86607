from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Scenario(str, Enum):
    NORMAL = "Normal Operation"
    POWER_REGULATION = "Power Regulation"
    GEARBOX_WEAR = "Early Gearbox Bearing Wear"
    YAW_DEGRADATION = "Yaw Bearing Degradation"
    UNKNOWN = "Unknown"


class Severity(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


# Scored scenarios in declaration order (ties resolve to the earlier one).
SCORED_SCENARIOS: tuple[Scenario, ...] = (
    Scenario.NORMAL,
    Scenario.POWER_REGULATION,
    Scenario.GEARBOX_WEAR,
    Scenario.YAW_DEGRADATION,
)

# Keys used for scenarios in the YAML configuration files.
SCENARIO_KEYS: dict[str, Scenario] = {
    "normal": Scenario.NORMAL,
    "power_regulation": Scenario.POWER_REGULATION,
    "gearbox_wear": Scenario.GEARBOX_WEAR,
    "yaw_degradation": Scenario.YAW_DEGRADATION,
    "unknown": Scenario.UNKNOWN,
}


class ScenarioResult(BaseModel):
    """Classifier output for one record (or the latest record of a window)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    scenario: Scenario
    confidence: float = Field(..., ge=0.0, le=1.0)
    severity: Severity = Severity.UNKNOWN
    contributing_features: list[str] = Field(
        default_factory=list, alias="contributingFeatures", max_length=3
    )
    recommendations: list[str] = Field(default_factory=list, max_length=4)
    timestamp: str = Field(..., description="ISO-8601 time stamp of the classified record")
    scores: dict[str, float] = Field(
        default_factory=dict, description="Normalized score per scored scenario (sums to 1)"
    )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---- HTTP adapter ----
class ManualRecordRequest(BaseModel):
    fields: dict[str, str | float | int | None]


class RangeFlagOut(BaseModel):
    row: int
    field: str
    value: float
    lower: float | None = None
    upper: float | None = None


class BatchAnalysisResponse(BaseModel):
    results: list[dict]
    ignored_columns: list[str]
    range_flags: list[RangeFlagOut]
