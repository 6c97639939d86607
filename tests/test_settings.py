from __future__ import annotations

import dataclasses

import pytest
import yaml

from turbine_health.errors import SettingsError
from turbine_health.schemas import Scenario, Severity
from turbine_health.settings import CONFIG_DIR, get_settings, load_settings, parse_settings


def _raw():
    cfg = yaml.safe_load((CONFIG_DIR / "default.yaml").read_text(encoding="utf-8"))
    recs = yaml.safe_load((CONFIG_DIR / "recommendations.yaml").read_text(encoding="utf-8"))
    return cfg, recs


def test_settings_are_loaded_once():
    assert get_settings() is get_settings()


def test_settings_are_read_only():
    s = get_settings()
    with pytest.raises(dataclasses.FrozenInstanceError):
        s.min_confidence = 0.1
    with pytest.raises(TypeError):
        s.physical_ranges["Pitch"] = (0.0, 1.0)


def test_defaults():
    s = get_settings()
    assert s.min_confidence == 0.5
    assert s.window.size >= s.window.min_samples == 2
    assert s.mandatory_channels == ("WindSpeed", "Power")
    assert [p.scenario.value for p in s.profiles] == [
        "Normal Operation",
        "Power Regulation",
        "Early Gearbox Bearing Wear",
        "Yaw Bearing Degradation",
    ]


def test_incomplete_recommendation_table_is_rejected():
    cfg, recs = _raw()
    recs["gearbox_wear"]["low"] = []
    with pytest.raises(SettingsError, match="Gearbox"):
        parse_settings(cfg, recs)


def test_unknown_profile_feature_is_rejected():
    cfg, recs = _raw()
    cfg["scenarios"]["normal"]["terms"]["vibration_rms"] = {"weight": -1.0}
    with pytest.raises(SettingsError, match="vibration_rms"):
        parse_settings(cfg, recs)


def test_config_path_from_environment(tmp_path, monkeypatch):
    cfg, _ = _raw()
    cfg["classifier"]["min_confidence"] = 0.65
    path = tmp_path / "custom.yaml"
    path.write_text(yaml.safe_dump(cfg), encoding="utf-8")
    monkeypatch.setenv("TURBINE_HEALTH_CONFIG", str(path))
    assert load_settings().min_confidence == 0.65


def test_debug_flag_from_environment(monkeypatch):
    cfg, recs = _raw()
    monkeypatch.setenv("TURBINE_HEALTH_DEBUG", "0")
    assert parse_settings(cfg, recs).debug is False


def test_shipped_config_is_not_debug(monkeypatch):
    cfg, recs = _raw()
    monkeypatch.delenv("TURBINE_HEALTH_DEBUG", raising=False)
    assert parse_settings(cfg, recs).debug is False


def test_tests_run_in_debug():
    assert get_settings().debug is True


@pytest.mark.parametrize("top", [0, 4])
def test_top_features_out_of_bounds_is_rejected(top):
    cfg, recs = _raw()
    cfg["classifier"]["top_features"] = top
    with pytest.raises(SettingsError, match="top_features"):
        parse_settings(cfg, recs)


def test_shipped_severity_levels():
    severity = get_settings().severity
    assert severity[Scenario.NORMAL] == Severity.NORMAL
    assert severity[Scenario.POWER_REGULATION] == Severity.NORMAL
    assert severity[Scenario.GEARBOX_WEAR] == Severity.WARNING
    assert severity[Scenario.YAW_DEGRADATION] == Severity.CRITICAL
    assert severity[Scenario.UNKNOWN] == Severity.UNKNOWN


def test_incomplete_severity_table_is_rejected():
    cfg, recs = _raw()
    del cfg["severity"]["yaw_degradation"]
    with pytest.raises(SettingsError, match="Yaw Bearing Degradation"):
        parse_settings(cfg, recs)


def test_unknown_severity_level_is_rejected():
    cfg, recs = _raw()
    cfg["severity"]["gearbox_wear"] = "urgent"
    with pytest.raises(SettingsError, match="urgent"):
        parse_settings(cfg, recs)
