"""
Experiment Runner - Executes experiments within their deadline.

Provides:
- Single experiment execution with the experiment's wall-clock budget
- Background execution for the HTTP API
- Tracking of running and finished experiments
"""

import asyncio
import structlog
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from clusterbench.config import settings
from clusterbench.errors import ExperimentTimeoutError
from clusterbench.experiments.base import Context, Experiment
from clusterbench.experiments.models import ExperimentResult, ExperimentState

logger = structlog.get_logger()


class ExperimentRunner:
    """
    Runs experiments and records their outcome.

    The runner is the experiment's host: it enforces `deadline()` and turns
    whatever the experiment raised into a failed ExperimentResult.
    """

    def __init__(self, max_results: int = None):
        self.max_results = max_results or settings.MAX_FINISHED_EXPERIMENTS
        self._running: Dict[str, ExperimentResult] = {}
        # Finished runs, oldest first; trimmed to max_results
        self._results: Dict[str, ExperimentResult] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    async def run_experiment(
        self,
        experiment: Experiment,
        context: Context,
        experiment_id: Optional[str] = None
    ) -> ExperimentResult:
        """
        Run a single experiment.

        Args:
            experiment: The experiment to run
            context: Collaborators the experiment runs against
            experiment_id: Optional identifier to record the run under

        Returns:
            ExperimentResult; status is succeeded or failed
        """
        deadline = experiment.deadline()
        result = ExperimentResult(
            experiment_id=experiment_id or str(uuid.uuid4()),
            label=str(experiment),
            status=ExperimentState.BUILT,
            started_at=datetime.utcnow(),
            deadline_seconds=deadline.total_seconds(),
            affected_validators=sorted(experiment.affected_validators()),
        )
        self._running[result.experiment_id] = result

        logger.info(
            "Starting experiment",
            experiment_id=result.experiment_id,
            experiment=result.label,
            deadline_seconds=result.deadline_seconds,
            affected_validators=result.affected_validators
        )

        try:
            await asyncio.wait_for(experiment.run(context), timeout=deadline.total_seconds())
            result.status = ExperimentState.SUCCEEDED

        except asyncio.TimeoutError:
            error = ExperimentTimeoutError(
                f"Experiment {result.label} exceeded its deadline of {result.deadline_seconds:.0f}s"
            )
            logger.error("Experiment timed out", experiment_id=result.experiment_id, error=str(error))
            result.status = ExperimentState.FAILED
            result.error = str(error)

        except Exception as e:
            logger.error(
                "Experiment failed",
                experiment_id=result.experiment_id,
                experiment=result.label,
                error=str(e)
            )
            result.status = ExperimentState.FAILED
            result.error = str(e)

        finally:
            result.completed_at = datetime.utcnow()
            result.states = list(experiment.states)
            if experiment.revert_error is not None:
                result.revert_error = str(experiment.revert_error)
            result.report = context.report.to_dict()
            self._running.pop(result.experiment_id, None)
            self._store_result(result)

        logger.info(
            "Experiment completed",
            experiment_id=result.experiment_id,
            experiment=result.label,
            success=result.success
        )
        return result

    def start_experiment(self, experiment: Experiment, context: Context) -> str:
        """Run an experiment in the background, returning its id."""
        experiment_id = str(uuid.uuid4())
        task = asyncio.create_task(
            self.run_experiment(experiment, context, experiment_id=experiment_id)
        )
        self._tasks[experiment_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(experiment_id, None))
        return experiment_id

    def _store_result(self, result: ExperimentResult) -> None:
        self._results[result.experiment_id] = result
        while len(self._results) > self.max_results:
            oldest = next(iter(self._results))
            self._results.pop(oldest)

    def get_running_experiments(self) -> List[ExperimentResult]:
        """Get list of currently running experiments."""
        return list(self._running.values())

    def get_results(self) -> List[ExperimentResult]:
        """Get list of finished experiments."""
        return list(self._results.values())

    def get_experiment(self, experiment_id: str) -> Optional[ExperimentResult]:
        return self._running.get(experiment_id) or self._results.get(experiment_id)
