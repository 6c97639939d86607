from __future__ import annotations

import io
import logging
import math
from datetime import datetime, timezone
from typing import Mapping

import pandas as pd

from turbine_health.errors import ValidationError, ValidationIssue
from turbine_health.feature_catalog import CHANNEL_COLS, FIELD_NAMES, NA_TOKENS, TIME_COL
from turbine_health.records import SensorBatch, SensorRecord, records_to_frame
from turbine_health.settings import Settings, get_settings
from turbine_health.validation import flag_out_of_range

logger = logging.getLogger(__name__)

# pandas resolves these against the wall clock
RELATIVE_TIME_WORDS = frozenset({"now", "today", "tomorrow", "yesterday"})


def _decode(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValidationError([ValidationIssue(None, None, f"CSV is not valid UTF-8: {e}")]) from None
    return raw.lstrip("\ufeff")


def _parse_number(cell: object) -> tuple[float, str | None]:
    """Cell -> (value, error). Missing cells give NaN with no error."""
    if cell is None:
        return math.nan, None
    if isinstance(cell, (int, float)) and not isinstance(cell, bool):
        value = float(cell)
    else:
        text = str(cell).strip()
        if text in NA_TOKENS:
            return math.nan, None
        try:
            value = float(text)
        except ValueError:
            return math.nan, f"cannot parse {text!r} as a number"
    if math.isnan(value):
        return math.nan, None
    if math.isinf(value):
        return math.nan, f"non-finite value {value!r}"
    return value, None


def _parse_time(cell: object) -> pd.Timestamp | None:
    if cell is None:
        return None
    text = str(cell).strip()
    if text in NA_TOKENS or text.lower() in RELATIVE_TIME_WORDS:
        return None
    try:
        ts = pd.to_datetime(text, format="ISO8601")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def _build_batch(
    rows: list[dict[str, object]],
    settings: Settings,
    *,
    ignored_columns: tuple[str, ...] = (),
    default_time: pd.Timestamp | None = None,
) -> SensorBatch:
    """Parse raw rows, collecting every issue before failing."""
    issues: list[ValidationIssue] = []
    parsed: list[tuple[pd.Timestamp, dict[str, float]]] = []
    prev_ts: pd.Timestamp | None = None
    seen: set[pd.Timestamp] = set()

    for i, row in enumerate(rows):
        raw_ts = row.get(TIME_COL)
        if default_time is not None and (raw_ts is None or str(raw_ts).strip() in NA_TOKENS):
            ts = default_time
        else:
            ts = _parse_time(raw_ts)
            if ts is None:
                issues.append(ValidationIssue(i, TIME_COL, f"cannot parse {raw_ts!r} as a timestamp"))

        if ts is not None:
            if ts in seen:
                issues.append(ValidationIssue(i, TIME_COL, f"duplicate timestamp {ts.isoformat()}"))
            elif prev_ts is not None and ts < prev_ts:
                issues.append(
                    ValidationIssue(i, TIME_COL, f"timestamp {ts.isoformat()} precedes {prev_ts.isoformat()}")
                )
            else:
                prev_ts = ts
            seen.add(ts)

        values: dict[str, float] = {}
        for col in CHANNEL_COLS:
            value, err = _parse_number(row.get(col))
            if err is not None:
                issues.append(ValidationIssue(i, col, err))
            values[col] = value

        if ts is not None:
            parsed.append((ts, values))

    if issues:
        raise ValidationError(issues)

    records = tuple(SensorRecord.from_row(ts.to_pydatetime(), values) for ts, values in parsed)
    frame = records_to_frame(records)
    flags = flag_out_of_range(frame[CHANNEL_COLS], settings.physical_ranges)
    return SensorBatch(records=records, ignored_columns=ignored_columns, range_flags=tuple(flags))


def read_csv_batch(raw: bytes | str, settings: Settings | None = None) -> SensorBatch:
    """Parse a CSV upload (header + one sample per row) into a validated batch."""
    settings = settings or get_settings()
    text = _decode(raw)
    if not text.strip():
        raise ValidationError([ValidationIssue(None, None, "CSV input is empty")])

    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ValidationError([ValidationIssue(None, None, f"malformed CSV: {e}")]) from None

    header = [str(c).strip() for c in df.columns]
    df.columns = header

    missing = [c for c in FIELD_NAMES if c not in header]
    if missing:
        raise ValidationError([ValidationIssue(None, c, "required column is missing") for c in missing])

    ignored = tuple(c for c in header if c not in FIELD_NAMES)
    if ignored:
        logger.warning("Ignoring unrecognized columns: %s", list(ignored))

    if df.empty:
        raise ValidationError([ValidationIssue(None, None, "CSV contains a header but no rows")])

    rows = df[FIELD_NAMES].to_dict(orient="records")
    return _build_batch(rows, settings, ignored_columns=ignored)


def parse_manual_record(
    fields: Mapping[str, object],
    settings: Settings | None = None,
    *,
    now: datetime | None = None,
) -> SensorBatch:
    """A manual form submission is a batch of one.

    Keys outside the recognized field names are rejected. Absent keys are
    missing channels; an absent ``time_stamp`` defaults to ``now`` (UTC).
    """
    settings = settings or get_settings()
    unknown = [k for k in fields if k not in FIELD_NAMES]
    if unknown:
        raise ValidationError([ValidationIssue(0, k, "unrecognized field") for k in unknown])

    now = now or datetime.now(timezone.utc)
    default_time = pd.Timestamp(now)
    if default_time.tzinfo is not None:
        default_time = default_time.tz_convert("UTC").tz_localize(None)
    default_time = default_time.floor("s")
    return _build_batch([dict(fields)], settings, default_time=default_time)
