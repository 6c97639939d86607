from __future__ import annotations

import logging
import traceback
from functools import lru_cache
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from turbine_health.errors import ValidationError
from turbine_health.monitoring.events import log_analysis_event
from turbine_health.schemas import BatchAnalysisResponse, ManualRecordRequest, RangeFlagOut
from turbine_health.session import AnalysisSession
from turbine_health.settings import get_settings

logger = logging.getLogger(__name__)

app = FastAPI(title="Turbine Operating-State Classifier API")


@lru_cache(maxsize=1)
def get_session() -> AnalysisSession:
    return AnalysisSession()


@app.exception_handler(ValidationError)
async def _invalid_input(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "issues": [i.to_dict() for i in exc.issues]},
    )


# ---- DEV-only: return useful error text instead of silent 500 ----
@app.exception_handler(Exception)
async def _unhandled(request: Request, exc: Exception):
    tb = traceback.format_exc()
    logger.error("Unhandled error on %s\n%s", request.url.path, tb)

    if get_settings().debug:
        return JSONResponse(status_code=500, content={"detail": str(exc), "traceback": tb})

    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


def _log_event(endpoint: str, n_rows: int, outputs: list[dict], **extra) -> None:
    # Best-effort logging: NEVER break analyses
    try:
        log_analysis_event(
            endpoint=endpoint,
            request_id=str(uuid4()),
            n_rows=n_rows,
            outputs=outputs,
            **extra,
        )
    except Exception:
        logger.warning("Could not write analysis event for %s", endpoint, exc_info=True)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/analyze/batch", response_model=BatchAnalysisResponse)
async def analyze_batch(request: Request, trajectory: bool = True) -> BatchAnalysisResponse:
    raw = await request.body()
    # pandas work stays off the event loop
    analysis = await run_in_threadpool(get_session().analyze_csv, raw, trajectory=trajectory)
    outputs = [r.to_payload() for r in analysis.results]

    _log_event(
        "/analyze/batch",
        analysis.n_records,
        outputs,
        n_range_flags=len(analysis.range_flags),
        ignored_columns=list(analysis.ignored_columns),
    )

    return BatchAnalysisResponse(
        results=outputs,
        ignored_columns=list(analysis.ignored_columns),
        range_flags=[RangeFlagOut(**f.to_dict()) for f in analysis.range_flags],
    )


@app.post("/analyze/manual")
def analyze_manual(req: ManualRecordRequest) -> dict:
    fields = {k: ("" if v is None else str(v)) for k, v in req.fields.items()}
    result = get_session().submit_manual_record(fields)
    payload = result.to_payload()

    _log_event("/analyze/manual", 1, [payload])

    return payload
