from __future__ import annotations

import json
import os
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np

DEFAULT_EVENTS_PATH = Path("logs") / "analyses.jsonl"


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def events_path() -> Path:
    env = os.getenv("TURBINE_HEALTH_EVENTS")
    return Path(env) if env else DEFAULT_EVENTS_PATH


def _to_py(x: Any) -> Any:
    if isinstance(x, (np.integer,)):
        return int(x)
    if isinstance(x, (np.floating,)):
        return float(x)
    if isinstance(x, dict):
        return {str(k): _to_py(v) for k, v in x.items()}
    if isinstance(x, (list, tuple)):
        return [_to_py(v) for v in x]
    return x


def log_analysis_event(
    *,
    endpoint: str,
    request_id: str,
    n_rows: int,
    outputs: list[dict],
    n_range_flags: int = 0,
    ignored_columns: list[str] | None = None,
    path: Path | None = None,
) -> Path:
    """Append one JSON line summarizing a served analysis request."""
    path = path or events_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    confidences = [o["confidence"] for o in outputs if "confidence" in o]
    scenarios = Counter(o.get("scenario") for o in outputs)

    rec = {
        "timestamp_utc": _utc_now(),
        "endpoint": endpoint,
        "request_id": request_id,
        "inputs": {
            "n_rows": n_rows,
            "n_range_flags": n_range_flags,
            "ignored_columns": list(ignored_columns or []),
        },
        "outputs": {
            "n": len(outputs),
            "scenarios": dict(scenarios),
            "confidence_mean": float(np.mean(confidences)) if confidences else None,
            "confidence_min": float(np.min(confidences)) if confidences else None,
            "latest": outputs[-1] if outputs else None,
        },
    }

    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(_to_py(rec), ensure_ascii=False) + "\n")
    return path
