from __future__ import annotations

import pytest

from conftest import make_rows, nominal_fields, to_csv
from turbine_health.feature_catalog import SAMPLE_FEATURES, WINDOWED_FEATURES
from turbine_health.features import extract_batch, extract_features
from turbine_health.ingest import parse_manual_record, read_csv_batch


def _single(**overrides):
    return extract_features(parse_manual_record(nominal_fields(**overrides)).records[0])


def test_nominal_sample_features():
    v = _single()
    assert v.get("load_factor") == pytest.approx(0.9)
    assert v.get("power_deficit") == 0.0
    assert v.get("gearbox_temp_delta") == 0.0
    assert v.get("phase_temp_spread") == 0.0
    assert v.get("yaw_misalignment") == 0.0
    assert v.get("wind_speed_norm") == pytest.approx(8.0 / 12.5)
    assert list(v.values) == SAMPLE_FEATURES


def test_single_record_has_windowed_features_pending():
    v = _single()
    assert v.pending == frozenset(WINDOWED_FEATURES)
    assert not v.window_ready
    assert all(name not in v.values for name in WINDOWED_FEATURES)


def test_yaw_misalignment_wraps_around_north():
    assert _single(WindDirAbs=350, WindDirRel=10).get("yaw_misalignment") == pytest.approx(20.0)
    assert _single(WindDirAbs=10, WindDirRel=350).get("yaw_misalignment") == pytest.approx(20.0)


def test_missing_channels_propagate_as_missing():
    v = _single(GenPh2Temp="", MaxPower="")
    assert v.get("phase_temp_spread") is None
    assert v.get("load_factor") is None
    assert "phase_temp_spread" in v.values
    assert v.missing_channels == ("MaxPower", "GenPh2Temp")


def test_power_deficit_when_curtailed_above_rated_wind():
    v = _single(WindSpeed=14, Power=1000, MaxPower=1050, Pitch=12)
    assert v.get("power_deficit") == pytest.approx(0.5)
    assert v.get("pitch_power_coherence") == pytest.approx(1.2 * 0.5)


def test_power_deficit_is_zero_below_cut_in():
    v = _single(WindSpeed=2.0, Power=0.0)
    assert v.get("power_deficit") == 0.0


def test_gearbox_bearing_trend_is_degrees_per_hour():
    batch = read_csv_batch(to_csv(make_rows(8, GearBearTemp=lambda i: 60 + 1.5 * i)))
    vectors = extract_batch(batch)
    assert vectors[0].pending
    assert vectors[1].window_ready
    assert vectors[-1].get("gearbox_bearing_temp_trend") == pytest.approx(9.0)
    assert vectors[-1].window_samples == 6


def test_windowed_stats_ignore_missing_points():
    rows = make_rows(4, WindSpeed=lambda i: 6 + i)
    rows[2]["WindSpeed"] = ""
    vectors = extract_batch(read_csv_batch(to_csv(rows)))
    last = vectors[-1]
    assert last.get("wind_speed_mean") == pytest.approx((6 + 7 + 9) / 3)
    assert last.get("wind_speed_std") is not None


def test_batch_matches_per_record_extraction():
    rows = make_rows(9, WindDirAbs=lambda i: 180 + 3 * i, GearBearTemp=lambda i: 60 + 0.5 * i)
    batch = read_csv_batch(to_csv(rows))
    vectors = extract_batch(batch)
    for i, rec in enumerate(batch.records):
        single = extract_features(rec, batch.records[:i])
        assert dict(single.values) == dict(vectors[i].values)
        assert single.pending == vectors[i].pending


def test_extraction_is_deterministic():
    raw = to_csv(make_rows(5, Power=lambda i: 900 + 10 * i))
    a = extract_batch(read_csv_batch(raw))
    b = extract_batch(read_csv_batch(raw))
    assert [dict(v.values) for v in a] == [dict(v.values) for v in b]


def test_overflowing_features_are_missing():
    assert _single(GearBearTemp=1e308, GearOilTemp=-1e308).get("gearbox_temp_delta") is None
    assert _single(Power=1e300, MaxPower=1e-300).get("load_factor") is None


def test_overflowing_window_statistics_are_missing():
    batch = read_csv_batch(to_csv(make_rows(3, WindSpeed=lambda i: 1e308 * (i % 2))))
    last = extract_batch(batch)[-1]
    assert last.window_ready
    assert last.get("wind_speed_std") is None
    assert last.get("wind_speed_mean") == pytest.approx(1e308 / 3)
