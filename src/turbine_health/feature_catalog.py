from __future__ import annotations

# Canonical field and feature names for turbine SCADA samples.
# CSV headers and manual form keys must match the field names exactly (case-sensitive).

TIME_COL = "time_stamp"

# channel name -> record attribute
CHANNEL_ATTRS: dict[str, str] = {
    "WindSpeed": "wind_speed",
    "StdDevWindSpeed": "std_dev_wind_speed",
    "WindDirAbs": "wind_dir_abs",
    "WindDirRel": "wind_dir_rel",
    "Power": "power",
    "MaxPower": "max_power",
    "MinPower": "min_power",
    "StdDevPower": "std_dev_power",
    "AvgRPow": "avg_r_pow",
    "Pitch": "pitch",
    "GenRPM": "gen_rpm",
    "RotorRPM": "rotor_rpm",
    "EnvirTemp": "envir_temp",
    "NacelTemp": "nacel_temp",
    "GearOilTemp": "gear_oil_temp",
    "GearBearTemp": "gear_bear_temp",
    "GenTemp": "gen_temp",
    "GenPh1Temp": "gen_ph1_temp",
    "GenPh2Temp": "gen_ph2_temp",
    "GenPh3Temp": "gen_ph3_temp",
    "GenBearTemp": "gen_bear_temp",
}

CHANNEL_COLS: list[str] = list(CHANNEL_ATTRS)
FIELD_NAMES: list[str] = [TIME_COL, *CHANNEL_COLS]

PHASE_TEMP_COLS: list[str] = ["GenPh1Temp", "GenPh2Temp", "GenPh3Temp"]

# Cell values read as "missing" rather than as malformed numbers.
NA_TOKENS: frozenset[str] = frozenset({"", "NA", "N/A", "NaN", "nan", "null", "None"})

# Derived features, in declaration order. The order is used to break ties when
# ranking contributing features.
SAMPLE_FEATURES: list[str] = [
    "load_factor",
    "power_deficit",
    "pitch_power_coherence",
    "wind_speed_norm",
    "phase_temp_spread",
    "gearbox_temp_delta",
    "yaw_misalignment",
]

# Only computed once the trailing window holds at least `window.min_samples` records.
WINDOWED_FEATURES: list[str] = [
    "wind_speed_mean",
    "wind_speed_std",
    "gearbox_bearing_temp_trend",
    "yaw_misalignment_trend",
    "power_deficit_mean",
]

FEATURE_NAMES: list[str] = SAMPLE_FEATURES + WINDOWED_FEATURES
