"""
Benchmark report sink.

Collects named metrics and human-readable lines emitted by experiments and
renders them as plain text or JSON.
"""

import json
from datetime import timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from clusterbench.services.load.models import LoadStats


class ReportedMetric(BaseModel):
    """One metric emitted under an experiment label."""
    experiment: str
    metric: str
    value: float


class SuiteReport:
    """
    Accumulates the results of one or more experiments.

    Experiments report through three calls:
    - report_metric for a single named value
    - report_txn_stats for the raw load statistics of a window
    - report_text for a free-form summary line
    """

    def __init__(self):
        self.metrics: List[ReportedMetric] = []
        self.text: List[str] = []

    def report_metric(self, experiment: Any, metric: str, value: float) -> None:
        self.metrics.append(
            ReportedMetric(experiment=str(experiment), metric=metric, value=float(value))
        )

    def report_text(self, text: str) -> None:
        self.text.append(text)

    def report_txn_stats(self, experiment: str, stats: LoadStats, window: timedelta) -> None:
        """Report submitted/expired counts, TPS and latencies for a load window."""
        rate = stats.rate(window)
        self.report_metric(experiment, "submitted_txn", stats.submitted)
        self.report_metric(experiment, "expired_txn", stats.expired)
        self.report_metric(experiment, "avg_tps", rate.committed)
        self.report_metric(experiment, "avg_latency", rate.latency)
        self.report_metric(experiment, "p99_latency", rate.p99_latency)

        if stats.expired == 0:
            expired_text = "no expired txns"
        else:
            expired_text = f"(!) expired {stats.expired} out of {stats.submitted} txns"
        self.report_text(
            f"{experiment} : {rate.committed:.0f} TPS, {rate.latency:.1f} ms latency, "
            f"{rate.p99_latency:.1f} ms p99 latency, {expired_text}"
        )

    def get_metric(self, experiment: str, metric: str) -> Optional[float]:
        """Last value reported for (experiment, metric), if any."""
        for reported in reversed(self.metrics):
            if reported.experiment == experiment and reported.metric == metric:
                return reported.value
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metrics": [m.model_dump() for m in self.metrics],
            "text": list(self.text),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def __str__(self) -> str:
        return "\n".join(self.text)
