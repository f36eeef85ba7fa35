"""API routes for benchmark experiments."""
import random
import structlog
import httpx
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, status

from clusterbench.api.schemas import (
    ExperimentListResponse,
    ExperimentResponse,
    ExperimentStartResponse,
    HealthResponse,
    PerformanceBenchmarkRequest,
)
from clusterbench.cluster.control import HttpClusterControl
from clusterbench.config import settings
from clusterbench.errors import ClusterBenchError
from clusterbench.experiments import Context, ExperimentRunner, PerformanceBenchmark
from clusterbench.services.load.client import HttpLoadEngine
from clusterbench.services.load.models import EmitJobRequest
from clusterbench.services.metrics.client import PrometheusClient
from clusterbench.services.report import SuiteReport
from clusterbench.services.tracing.log_index import ElasticsearchTraceClient
from clusterbench.services.tracing.tail import HttpTraceTail

logger = structlog.get_logger()

router = APIRouter()

_runner = ExperimentRunner()


def get_runner() -> ExperimentRunner:
    return _runner


def build_context() -> Context:
    """Context backed by the configured HTTP collaborators."""
    return Context(
        cluster_control=HttpClusterControl(),
        tx_emitter=HttpLoadEngine(),
        trace_tail=HttpTraceTail(),
        log_trace_client=ElasticsearchTraceClient(),
        prometheus=PrometheusClient(),
        report=SuiteReport(),
        global_emit_job_request=EmitJobRequest(
            accounts_per_client=settings.EMIT_ACCOUNTS_PER_CLIENT,
            workers_per_endpoint=settings.EMIT_WORKERS_PER_ENDPOINT,
        ),
        emit_to_validator=settings.EMIT_TO_VALIDATOR,
        rng=random.Random(),
    )


def get_context_factory() -> Callable[[], Context]:
    return build_context


# ============== Health ==============

@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=settings.APP_VERSION)


# ============== Experiments ==============

@router.post(
    "/experiments/performance-benchmark",
    response_model=ExperimentStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Experiments"]
)
async def start_performance_benchmark(
    request: PerformanceBenchmarkRequest,
    runner: ExperimentRunner = Depends(get_runner),
    context_factory: Callable[[], Context] = Depends(get_context_factory)
):
    """Plan a performance benchmark against the current cluster and start it."""
    context = context_factory()
    try:
        cluster = await context.cluster_control.snapshot()
    except (ClusterBenchError, httpx.HTTPError) as e:
        logger.error("Cluster snapshot failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Cluster control plane unavailable: {e}"
        )

    if not cluster.validators:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cluster has no validators"
        )

    experiment = PerformanceBenchmark.build(request, cluster, rng=context.rng)
    experiment_id = runner.start_experiment(experiment, context)

    logger.info("Performance benchmark started", experiment_id=experiment_id, experiment=str(experiment))
    return ExperimentStartResponse(
        experiment_id=experiment_id,
        label=str(experiment),
        deadline_seconds=experiment.deadline().total_seconds(),
        affected_validators=sorted(experiment.affected_validators()),
    )


@router.get("/experiments", response_model=ExperimentListResponse, tags=["Experiments"])
async def list_experiments(runner: ExperimentRunner = Depends(get_runner)):
    """List running and finished experiments."""
    return ExperimentListResponse(
        running=[ExperimentResponse.model_validate(r) for r in runner.get_running_experiments()],
        finished=[ExperimentResponse.model_validate(r) for r in runner.get_results()],
    )


@router.get("/experiments/{experiment_id}", response_model=ExperimentResponse, tags=["Experiments"])
async def get_experiment(
    experiment_id: str,
    runner: ExperimentRunner = Depends(get_runner)
):
    """Get an experiment's state or outcome."""
    result = runner.get_experiment(experiment_id)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Experiment {experiment_id} not found"
        )
    return ExperimentResponse.model_validate(result)
