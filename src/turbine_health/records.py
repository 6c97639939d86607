from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator

from turbine_health.feature_catalog import CHANNEL_ATTRS, CHANNEL_COLS, TIME_COL


def _channel(alias: str):
    return Field(None, alias=alias)


class SensorRecord(BaseModel):
    """One timestamped turbine observation.

    Channels are optional floats; ``None`` means the value was missing in the
    input, which is different from a reading of zero.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    time_stamp: datetime
    wind_speed: float | None = _channel("WindSpeed")
    std_dev_wind_speed: float | None = _channel("StdDevWindSpeed")
    wind_dir_abs: float | None = _channel("WindDirAbs")
    wind_dir_rel: float | None = _channel("WindDirRel")
    power: float | None = _channel("Power")
    max_power: float | None = _channel("MaxPower")
    min_power: float | None = _channel("MinPower")
    std_dev_power: float | None = _channel("StdDevPower")
    avg_r_pow: float | None = _channel("AvgRPow")
    pitch: float | None = _channel("Pitch")
    gen_rpm: float | None = _channel("GenRPM")
    rotor_rpm: float | None = _channel("RotorRPM")
    envir_temp: float | None = _channel("EnvirTemp")
    nacel_temp: float | None = _channel("NacelTemp")
    gear_oil_temp: float | None = _channel("GearOilTemp")
    gear_bear_temp: float | None = _channel("GearBearTemp")
    gen_temp: float | None = _channel("GenTemp")
    gen_ph1_temp: float | None = _channel("GenPh1Temp")
    gen_ph2_temp: float | None = _channel("GenPh2Temp")
    gen_ph3_temp: float | None = _channel("GenPh3Temp")
    gen_bear_temp: float | None = _channel("GenBearTemp")

    @field_validator(*CHANNEL_ATTRS.values())
    @classmethod
    def _finite_or_missing(cls, v: float | None) -> float | None:
        if v is None:
            return None
        if math.isnan(v):
            return None
        if math.isinf(v):
            raise ValueError("channel values must be finite")
        return v

    @classmethod
    def from_row(cls, time_stamp: datetime, values: dict[str, float]) -> "SensorRecord":
        """Build from channel name -> float (NaN = missing)."""
        return cls(time_stamp=time_stamp, **{CHANNEL_ATTRS[k]: v for k, v in values.items()})

    def channel(self, name: str) -> float | None:
        return getattr(self, CHANNEL_ATTRS[name])

    def missing_channels(self) -> tuple[str, ...]:
        return tuple(c for c in CHANNEL_COLS if self.channel(c) is None)

    def as_row(self) -> dict[str, object]:
        row: dict[str, object] = {TIME_COL: pd.Timestamp(self.time_stamp)}
        for c in CHANNEL_COLS:
            v = self.channel(c)
            row[c] = np.nan if v is None else float(v)
        return row


@dataclass(frozen=True)
class RangeFlag:
    row: int
    field: str
    value: float
    lower: float | None
    upper: float | None

    def to_dict(self) -> dict:
        return {
            "row": self.row,
            "field": self.field,
            "value": self.value,
            "lower": self.lower,
            "upper": self.upper,
        }


@dataclass(frozen=True)
class SensorBatch:
    """Ordered, validated records from one CSV upload or one manual form."""

    records: tuple[SensorRecord, ...]
    ignored_columns: tuple[str, ...] = ()
    range_flags: tuple[RangeFlag, ...] = ()

    def __post_init__(self):
        if not self.records:
            raise ValueError("SensorBatch needs at least one record")

    def __len__(self) -> int:
        return len(self.records)

    def to_frame(self) -> pd.DataFrame:
        return records_to_frame(self.records)


def records_to_frame(records) -> pd.DataFrame:
    """Records -> DataFrame with time_stamp + channel columns (NaN = missing)."""
    frame = pd.DataFrame([r.as_row() for r in records], columns=[TIME_COL, *CHANNEL_COLS])
    frame[CHANNEL_COLS] = frame[CHANNEL_COLS].astype(float)
    return frame
