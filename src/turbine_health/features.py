from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from turbine_health.feature_catalog import PHASE_TEMP_COLS, SAMPLE_FEATURES, TIME_COL, WINDOWED_FEATURES
from turbine_health.records import SensorBatch, SensorRecord, records_to_frame
from turbine_health.settings import Settings, TurbineSpec, get_settings


@dataclass(frozen=True)
class FeatureVector:
    """Derived features of one record.

    ``values`` holds every per-sample feature (``None`` when an upstream channel
    is missing) and, once the window is long enough, every windowed feature.
    Windowed features that are not yet available are listed in ``pending``
    instead of appearing in ``values``.
    """

    time_stamp: datetime
    values: Mapping[str, float | None]
    pending: frozenset[str]
    missing_channels: tuple[str, ...]
    window_samples: int

    @property
    def window_ready(self) -> bool:
        return not self.pending

    def get(self, name: str) -> float | None:
        return self.values.get(name)


def expected_power(wind_speed: pd.Series, turbine: TurbineSpec) -> pd.Series:
    """Idealized power curve: cubic from cut-in to rated wind speed, then flat."""
    ci, vr = turbine.cut_in_wind_speed, turbine.rated_wind_speed
    frac = ((wind_speed**3 - ci**3) / (vr**3 - ci**3)).clip(0.0, 1.0)
    return turbine.rated_power_kw * frac


def sample_features(frame: pd.DataFrame, turbine: TurbineSpec) -> pd.DataFrame:
    """Row-local features. NaN marks a feature whose inputs were missing."""
    ws = frame["WindSpeed"]
    p = frame["Power"]
    max_p = frame["MaxPower"]

    out = pd.DataFrame(index=frame.index)
    out["load_factor"] = p / max_p.where(max_p > 0)

    operating = (ws > turbine.cut_in_wind_speed) & (ws <= turbine.cut_out_wind_speed)
    exp = expected_power(ws, turbine)
    deficit = (1.0 - p / exp.where(operating)).clip(0.0, 1.0)
    deficit = deficit.where(operating, 0.0)
    out["power_deficit"] = deficit.where(ws.notna() & p.notna())

    out["pitch_power_coherence"] = (frame["Pitch"].clip(lower=0.0) / turbine.pitch_reference_deg) * (
        1.0 - p / turbine.rated_power_kw
    ).clip(lower=0.0)
    out["wind_speed_norm"] = ws / turbine.rated_wind_speed

    phases = frame[PHASE_TEMP_COLS]
    out["phase_temp_spread"] = phases.max(axis=1, skipna=False) - phases.min(axis=1, skipna=False)
    out["gearbox_temp_delta"] = frame["GearBearTemp"] - frame["GearOilTemp"]

    # wrap the direction difference into [0, 180] degrees
    diff = frame["WindDirAbs"] - frame["WindDirRel"]
    out["yaw_misalignment"] = ((diff + 180.0) % 360.0 - 180.0).abs()

    # finite inputs can still overflow (e.g. 1e308 - -1e308); treat that as missing
    out = out.replace([np.inf, -np.inf], np.nan)
    return out[SAMPLE_FEATURES].astype(float)


def _finite(v: float) -> float | None:
    v = float(v)
    return v if np.isfinite(v) else None


def _slope(hours: np.ndarray, values: np.ndarray) -> float | None:
    """Least-squares slope per hour over the valid points (needs two)."""
    mask = np.isfinite(values)
    if mask.sum() < 2:
        return None
    x = hours[mask]
    y = values[mask]
    dx = x - x.mean()
    denom = float((dx**2).sum())
    if denom == 0.0:
        return None
    return _finite((dx * (y - y.mean())).sum() / denom)


def _mean(values: np.ndarray) -> float | None:
    valid = values[np.isfinite(values)]
    return _finite(valid.mean()) if valid.size else None


def _std(values: np.ndarray) -> float | None:
    valid = values[np.isfinite(values)]
    return _finite(valid.std(ddof=0)) if valid.size >= 2 else None


def window_features(frame: pd.DataFrame, samples: pd.DataFrame) -> dict[str, float | None]:
    """Rolling statistics over one trailing window (oldest row first)."""
    ts = pd.to_datetime(frame[TIME_COL])
    hours = ((ts - ts.iloc[0]) / pd.Timedelta(hours=1)).to_numpy(dtype=float)

    wind = frame["WindSpeed"].to_numpy(dtype=float)
    return {
        "wind_speed_mean": _mean(wind),
        "wind_speed_std": _std(wind),
        "gearbox_bearing_temp_trend": _slope(hours, frame["GearBearTemp"].to_numpy(dtype=float)),
        "yaw_misalignment_trend": _slope(hours, samples["yaw_misalignment"].to_numpy(dtype=float)),
        "power_deficit_mean": _mean(samples["power_deficit"].to_numpy(dtype=float)),
    }


def _to_optional(v: float) -> float | None:
    return None if pd.isna(v) else float(v)


def _vectors(frame: pd.DataFrame, records: list[SensorRecord], settings: Settings) -> list[FeatureVector]:
    frame = frame.reset_index(drop=True)
    samples = sample_features(frame, settings.turbine)
    size = settings.window.size
    min_samples = settings.window.min_samples

    out: list[FeatureVector] = []
    for i, rec in enumerate(records):
        values: dict[str, float | None] = {k: _to_optional(samples.at[i, k]) for k in SAMPLE_FEATURES}

        start = max(0, i - size + 1)
        n = i - start + 1
        if n >= min_samples:
            values.update(window_features(frame.iloc[start : i + 1], samples.iloc[start : i + 1]))
            pending: frozenset[str] = frozenset()
        else:
            pending = frozenset(WINDOWED_FEATURES)

        out.append(
            FeatureVector(
                time_stamp=rec.time_stamp,
                values=MappingProxyType(values),
                pending=pending,
                missing_channels=rec.missing_channels(),
                window_samples=n,
            )
        )
    return out


def extract_features(
    record: SensorRecord,
    history: Iterable[SensorRecord] = (),
    settings: Settings | None = None,
) -> FeatureVector:
    """Features of ``record`` given the prior records of the same batch (oldest first)."""
    settings = settings or get_settings()
    prior = list(history)[-(settings.window.size - 1) :] if settings.window.size > 1 else []
    records = [*prior, record]
    return _vectors(records_to_frame(records), records, settings)[-1]


def extract_batch(batch: SensorBatch, settings: Settings | None = None) -> list[FeatureVector]:
    """One vector per record, each computed over its own trailing window."""
    settings = settings or get_settings()
    records = list(batch.records)
    return _vectors(batch.to_frame(), records, settings)
