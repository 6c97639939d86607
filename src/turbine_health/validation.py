from __future__ import annotations

"""Physical range checks.

A pandera schema describes the declared range of each bounded channel. The
schema is validated lazily so every violation in the batch is collected; each
one becomes a ``RangeFlag``. Values are never clamped.
"""

import logging
from typing import Any, Mapping

import pandas as pd
import pandera.pandas as pa
from pandera.errors import SchemaErrors

from turbine_health.records import RangeFlag

logger = logging.getLogger(__name__)


def physical_range_schema(ranges: Mapping[str, tuple[float | None, float | None]]) -> pa.DataFrameSchema:
    cols: dict[str, Any] = {}
    for col, (lo, hi) in ranges.items():
        if lo is not None and hi is not None:
            check = pa.Check.in_range(lo, hi)
        elif lo is not None:
            check = pa.Check.ge(lo)
        elif hi is not None:
            check = pa.Check.le(hi)
        else:
            continue
        cols[col] = pa.Column(float, checks=check, nullable=True, required=False)

    return pa.DataFrameSchema(columns=cols, strict=False)


def flag_out_of_range(
    frame: pd.DataFrame,
    ranges: Mapping[str, tuple[float | None, float | None]],
) -> list[RangeFlag]:
    """Return one flag per out-of-range cell, ordered by row then field.

    ``frame`` must use a 0..n-1 index matching batch row positions.
    """
    schema = physical_range_schema(ranges)
    try:
        schema.validate(frame, lazy=True)
        return []
    except SchemaErrors as err:
        cases = err.failure_cases

    flags: list[RangeFlag] = []
    for case in cases.to_dict(orient="records"):
        col = case.get("column")
        idx = case.get("index")
        if col not in ranges or idx is None or pd.isna(idx):
            # schema-level failure (e.g. dtype); nothing cell-specific to flag
            logger.warning("Range schema failure not tied to a cell: %s", case)
            continue
        row = int(idx)
        value = float(frame.at[row, col])
        lo, hi = ranges[col]
        flags.append(RangeFlag(row=row, field=str(col), value=value, lower=lo, upper=hi))

    order = list(frame.columns)
    flags.sort(key=lambda f: (f.row, order.index(f.field)))
    for f in flags:
        logger.warning(
            "Row %d: %s=%s outside physical range [%s, %s]", f.row, f.field, f.value, f.lower, f.upper
        )
    return flags
