"""
Load generation models.

An EmitJobRequest describes which nodes receive transactions and at what
rate; LoadStats is the aggregate the load engine returns once the job has run
for its window.
"""

import enum
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel, Field

from clusterbench.cluster.models import Node


class EmitMode(str, enum.Enum):
    """How the load engine paces submissions."""
    ADAPTIVE = "adaptive"
    FIXED_TPS = "fixed_tps"


class EmitJobRequest(BaseModel):
    """A load job bound to a set of target nodes."""
    instances: List[Node] = Field(default_factory=list)
    mode: EmitMode = Field(default=EmitMode.ADAPTIVE)
    target_tps: Optional[int] = Field(
        default=None,
        description="Exact submission rate when mode is fixed_tps"
    )
    accounts_per_client: int = Field(default=10, ge=1)
    workers_per_endpoint: Optional[int] = Field(default=None, ge=1)

    @classmethod
    def fixed_tps(cls, instances: List[Node], tps: int) -> "EmitJobRequest":
        """Request submitting exactly `tps` transactions per second."""
        return cls(
            instances=list(instances),
            mode=EmitMode.FIXED_TPS,
            target_tps=tps,
            accounts_per_client=1,
            workers_per_endpoint=1,
        )

    @classmethod
    def for_instances(
        cls,
        instances: List[Node],
        global_request: Optional["EmitJobRequest"] = None
    ) -> "EmitJobRequest":
        """Request for `instances` inheriting the global request's knobs."""
        if global_request is None:
            return cls(instances=list(instances))
        return global_request.model_copy(update={"instances": list(instances)})


class LoadRate(BaseModel):
    """Per-second view of LoadStats over a window."""
    submitted: int = 0
    committed: int = 0
    expired: int = 0
    latency: int = 0
    p99_latency: int = 0


class LoadStats(BaseModel):
    """Aggregate result of one load window."""
    submitted: int = 0
    committed: int = 0
    expired: int = 0
    latency: int = Field(default=0, description="Sum of commit latencies in ms")
    p50_latency: int = 0
    p90_latency: int = 0
    p99_latency: int = 0
    submission_errors: int = 0
    commit_errors: int = 0

    def rate(self, window: timedelta) -> LoadRate:
        """Average per-second rates over `window`."""
        seconds = max(int(window.total_seconds()), 1)
        return LoadRate(
            submitted=self.submitted // seconds,
            committed=self.committed // seconds,
            expired=self.expired // seconds,
            latency=self.latency // self.committed if self.committed else 0,
            p99_latency=self.p99_latency,
        )
