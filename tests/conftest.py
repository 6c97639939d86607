from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from turbine_health.feature_catalog import FIELD_NAMES
from turbine_health.settings import get_settings

NOMINAL = {
    "WindSpeed": 8.0,
    "StdDevWindSpeed": 1.0,
    "WindDirAbs": 180.0,
    "WindDirRel": 180.0,
    "Power": 900.0,
    "MaxPower": 1000.0,
    "MinPower": 800.0,
    "StdDevPower": 40.0,
    "AvgRPow": 10.0,
    "Pitch": 0.5,
    "GenRPM": 1500.0,
    "RotorRPM": 15.0,
    "EnvirTemp": 15.0,
    "NacelTemp": 25.0,
    "GearOilTemp": 60.0,
    "GearBearTemp": 60.0,
    "GenTemp": 70.0,
    "GenPh1Temp": 70.0,
    "GenPh2Temp": 70.0,
    "GenPh3Temp": 70.0,
    "GenBearTemp": 45.0,
}

START = datetime(2024, 3, 1, 0, 0, 0)


def stamp(i: int, minutes: int = 10) -> str:
    return (START + timedelta(minutes=minutes * i)).strftime("%Y-%m-%d %H:%M:%S")


def nominal_fields(**overrides) -> dict[str, str]:
    fields = {"time_stamp": stamp(0), **{k: str(v) for k, v in NOMINAL.items()}}
    fields.update({k: str(v) for k, v in overrides.items()})
    return fields


def make_rows(n: int, **series) -> list[dict[str, str]]:
    """n nominal rows 10 minutes apart; keyword args map a field to f(i)."""
    rows = []
    for i in range(n):
        row = nominal_fields(time_stamp=stamp(i))
        for name, fn in series.items():
            row[name] = str(fn(i))
        rows.append(row)
    return rows


def to_csv(rows: list[dict[str, str]], columns: list[str] | None = None) -> bytes:
    columns = columns or FIELD_NAMES
    lines = [",".join(columns)]
    for row in rows:
        lines.append(",".join(row.get(c, "") for c in columns))
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def nominal():
    return nominal_fields()


@pytest.fixture(autouse=True)
def _debug_settings(monkeypatch):
    """Run every test with invariant violations raising instead of degrading."""
    monkeypatch.setenv("TURBINE_HEALTH_DEBUG", "1")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
