"""API request/response schemas."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from clusterbench.experiments.models import ExperimentState, PerformanceBenchmarkParams


class PerformanceBenchmarkRequest(PerformanceBenchmarkParams):
    """Schema for starting a performance benchmark."""
    pass


class ExperimentStartResponse(BaseModel):
    """Response schema for a started experiment."""
    experiment_id: str
    label: str
    deadline_seconds: float
    affected_validators: List[str] = Field(default_factory=list)


class ExperimentResponse(BaseModel):
    """Response schema for an experiment's state or outcome."""
    experiment_id: str
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

    class Config:
        from_attributes = True


class ExperimentListResponse(BaseModel):
    """Response schema for experiment lists."""
    running: List[ExperimentResponse]
    finished: List[ExperimentResponse]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
