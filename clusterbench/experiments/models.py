"""
Experiment models.

Defines the benchmark parameters, the node plan derived from a cluster
snapshot, the lifecycle states, and the result record of a run.
"""

import enum
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from clusterbench.cluster.models import Node
from clusterbench.config import settings


class ExperimentState(str, enum.Enum):
    """Lifecycle state of an experiment run."""
    BUILT = "built"
    FAULTS_INJECTED = "faults_injected"
    RUNNING = "running"
    REPORTING = "reporting"
    REVERTED = "reverted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TraceCaptureState(str, enum.Enum):
    """State of the trace capture path."""
    IDLE = "idle"
    DELAYING = "delaying"
    CAPTURING = "capturing"
    CAPTURED = "captured"
    EMPTY = "empty"
    FAILED = "failed"


class PerformanceBenchmarkParams(BaseModel):
    """Validated, immutable parameters of a performance benchmark."""
    model_config = ConfigDict(frozen=True)

    percent_nodes_down: int = Field(
        default=0,
        ge=0,
        le=100,
        description="Percent of validators which should be down"
    )
    duration: int = Field(
        default_factory=lambda: settings.BENCH_DURATION_SECONDS,
        gt=0,
        description="Duration of the measured window in seconds"
    )
    tps: Optional[int] = Field(
        default=None,
        gt=0,
        description="Fixed TPS during the experiment"
    )
    trace: bool = Field(default=False, description="Capture a trace during load")
    use_logs_for_trace: bool = Field(
        default=False,
        description="Take the trace from the log index instead of live sidecars"
    )
    backup: bool = Field(
        default=False,
        description="Run an online DB backup on one up validator"
    )

    @classmethod
    def new_nodes_down(cls, percent_nodes_down: int) -> "PerformanceBenchmarkParams":
        return cls(percent_nodes_down=percent_nodes_down)

    @classmethod
    def new_fixed_tps(cls, percent_nodes_down: int, fixed_tps: int) -> "PerformanceBenchmarkParams":
        return cls(percent_nodes_down=percent_nodes_down, tps=fixed_tps)

    def enable_db_backup(self) -> "PerformanceBenchmarkParams":
        return self.model_copy(update={"backup": True})


class ExperimentPlan(BaseModel):
    """Disjoint node sets an experiment acts on."""
    model_config = ConfigDict(frozen=True)

    down_validators: List[Node] = Field(default_factory=list)
    up_validators: List[Node] = Field(default_factory=list)
    up_fullnodes: List[Node] = Field(default_factory=list)


class RunWindow(BaseModel):
    """Query window for the metrics backend, in unix seconds."""
    start: int
    end: int
    buffer: timedelta

    @classmethod
    def ending_now(
        cls,
        window: timedelta,
        buffer: timedelta,
        now: Optional[float] = None
    ) -> "RunWindow":
        """
        Window of `window - 2 * buffer` ending `buffer` before now.

        The settling margins at both edges of the load window are excluded.
        """
        now = time.time() if now is None else now
        end = int(now - buffer.total_seconds())
        start = int(end - window.total_seconds() + 2 * buffer.total_seconds())
        return cls(start=start, end=end, buffer=buffer)

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.end - self.start)


class ExperimentResult(BaseModel):
    """Outcome of one experiment run."""
    experiment_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    label: str
    status: ExperimentState
    started_at: datetime
    completed_at: Optional[datetime] = None
    deadline_seconds: float
    affected_validators: List[str] = Field(default_factory=list)
    states: List[ExperimentState] = Field(default_factory=list)
    error: Optional[str] = None
    revert_error: Optional[str] = None
    report: Dict[str, Any] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == ExperimentState.SUCCEEDED
