"""
Cluster experiments.

This module provides:
- The performance benchmark experiment and its parameters
- Topology selection, fault injection, trace capture and backup helpers
- A runner that executes experiments within their deadline
"""

from clusterbench.experiments.models import (
    ExperimentPlan,
    ExperimentResult,
    ExperimentState,
    PerformanceBenchmarkParams,
    RunWindow,
    TraceCaptureState,
)
from clusterbench.experiments.base import Context, Experiment
from clusterbench.experiments.performance_benchmark import PerformanceBenchmark
from clusterbench.experiments.runner import ExperimentRunner

__all__ = [
    # Models
    "ExperimentPlan",
    "ExperimentResult",
    "ExperimentState",
    "PerformanceBenchmarkParams",
    "RunWindow",
    "TraceCaptureState",
    # Experiments
    "Context",
    "Experiment",
    "PerformanceBenchmark",
    "ExperimentRunner",
]
