from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Mapping

from turbine_health.classifier import ScenarioModel, ThresholdRankModel, classify
from turbine_health.errors import AnalysisCancelled
from turbine_health.features import FeatureVector, extract_batch
from turbine_health.ingest import parse_manual_record, read_csv_batch
from turbine_health.records import RangeFlag, SensorBatch
from turbine_health.recommendations import recommend
from turbine_health.schemas import ScenarioResult
from turbine_health.settings import Settings, get_settings


class CancellationToken:
    """Set from any thread; checked by the session between per-record steps."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AnalysisCancelled("analysis cancelled by caller")


@dataclass(frozen=True)
class BatchAnalysis:
    results: tuple[ScenarioResult, ...]
    ignored_columns: tuple[str, ...]
    range_flags: tuple[RangeFlag, ...]
    n_records: int = 0


class AnalysisSession:
    """validate -> extract -> classify -> recommend, one request at a time.

    Holds only read-only settings and the scoring model, so one instance can
    serve concurrent requests.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        model: ScenarioModel | None = None,
        workers: int = 1,
    ):
        self.settings = settings or get_settings()
        self.model = model or ThresholdRankModel(self.settings.profiles)
        self.workers = max(1, int(workers))

    def _result(self, vector: FeatureVector) -> ScenarioResult:
        c = classify(vector, self.settings, self.model)
        return ScenarioResult(
            scenario=c.scenario,
            confidence=c.confidence,
            severity=self.settings.severity[c.scenario],
            contributing_features=list(c.contributing_features),
            recommendations=recommend(c, self.settings),
            timestamp=vector.time_stamp.isoformat(),
            scores={s.value: v for s, v in c.scores.items()},
        )

    def _qualifying(self, vectors: list[FeatureVector], trajectory: bool) -> list[FeatureVector]:
        ready = [v for v in vectors if v.window_ready]
        if not ready:
            # nothing has a window yet: classify the latest record on its own
            return vectors[-1:]
        return ready if trajectory else ready[-1:]

    def analyze(
        self,
        batch: SensorBatch,
        *,
        trajectory: bool = True,
        cancel: CancellationToken | None = None,
    ) -> BatchAnalysis:
        vectors = extract_batch(batch, self.settings)
        targets = self._qualifying(vectors, trajectory)

        if self.workers > 1 and len(targets) > 1:
            results = self._run_parallel(targets, cancel)
        else:
            results = []
            for v in targets:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                results.append(self._result(v))

        return BatchAnalysis(
            results=tuple(results),
            ignored_columns=batch.ignored_columns,
            range_flags=batch.range_flags,
            n_records=len(batch),
        )

    def _run_parallel(
        self, targets: list[FeatureVector], cancel: CancellationToken | None
    ) -> list[ScenarioResult]:
        def work(v: FeatureVector) -> ScenarioResult:
            if cancel is not None:
                cancel.raise_if_cancelled()
            return self._result(v)

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(work, v) for v in targets]
            try:
                results = [f.result() for f in futures]
            except AnalysisCancelled:
                for f in futures:
                    f.cancel()
                raise
        if cancel is not None:
            cancel.raise_if_cancelled()
        return results

    def analyze_csv(
        self,
        raw_csv: bytes | str,
        *,
        trajectory: bool = True,
        cancel: CancellationToken | None = None,
    ) -> BatchAnalysis:
        batch = read_csv_batch(raw_csv, self.settings)
        return self.analyze(batch, trajectory=trajectory, cancel=cancel)

    def submit_batch(self, raw_csv: bytes | str) -> list[ScenarioResult]:
        return list(self.analyze_csv(raw_csv).results)

    def submit_manual_record(self, fields: Mapping[str, object]) -> ScenarioResult:
        batch = parse_manual_record(fields, self.settings)
        return self.analyze(batch).results[-1]


def submit_batch(raw_csv: bytes | str) -> list[ScenarioResult]:
    return AnalysisSession().submit_batch(raw_csv)


def submit_manual_record(fields: Mapping[str, object]) -> ScenarioResult:
    return AnalysisSession().submit_manual_record(fields)
