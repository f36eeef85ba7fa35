"""Experiment interface and the collaborators experiments run against."""
import random
import structlog
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Set

from clusterbench.cluster.control import ClusterControl
from clusterbench.experiments.models import ExperimentState
from clusterbench.services.load.client import LoadEngine
from clusterbench.services.load.models import EmitJobRequest
from clusterbench.services.metrics.client import PrometheusClient
from clusterbench.services.report import SuiteReport
from clusterbench.services.tracing.log_index import LogTraceClient
from clusterbench.services.tracing.tail import TraceTail

logger = structlog.get_logger()

@dataclass
class Context:
    """Everything an experiment needs from the outside world."""
    cluster_control: ClusterControl
    tx_emitter: LoadEngine
    trace_tail: TraceTail
    log_trace_client: LogTraceClient
    prometheus: PrometheusClient
    report: SuiteReport = field(default_factory=SuiteReport)
    global_emit_job_request: Optional[EmitJobRequest] = None
    emit_to_validator: bool = True
    rng: random.Random = field(default_factory=random.Random)


class Experiment(ABC):
    """A single bounded experiment against a running cluster."""

    def __init__(self):
        self.state = ExperimentState.BUILT
        self.states: List[ExperimentState] = [ExperimentState.BUILT]
        self.revert_error: Optional[BaseException] = None

    def _set_state(self, state: ExperimentState) -> None:
        logger.info("Experiment state", experiment=str(self), state=state.value)
        self.state = state
        self.states.append(state)

    @abstractmethod
    def affected_validators(self) -> Set[str]:
        """Names of validators the experiment takes down."""
        pass

    @abstractmethod
    async def run(self, context: Context) -> None:
        """Run the experiment, raising on fatal failure."""
        pass

    @abstractmethod
    def deadline(self) -> timedelta:
        """Wall-clock budget the caller should allow for `run`."""
        pass
