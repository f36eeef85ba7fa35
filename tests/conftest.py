"""Pytest configuration and fixtures."""
import asyncio
import random
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set

import pytest

from clusterbench.cluster.control import ClusterControl
from clusterbench.cluster.models import Cluster, Node, NodeRole
from clusterbench.errors import CommandError, LoadDriverError, TraceQueryError
from clusterbench.experiments.base import Context
from clusterbench.services.load.client import LoadEngine
from clusterbench.services.load.models import EmitJobRequest, LoadStats
from clusterbench.services.metrics.client import PrometheusClient
from clusterbench.services.report import SuiteReport
from clusterbench.services.tracing.log_index import LogTraceClient
from clusterbench.services.tracing.models import NodeTrace, TraceEvent
from clusterbench.services.tracing.tail import TraceTail


def make_cluster(num_validators: int, with_fullnodes: bool = True) -> Cluster:
    """Cluster with validator-i paired to fullnode-i in group-i."""
    validators = [
        Node(name=f"val-{i}", role=NodeRole.VALIDATOR, group=f"group-{i}", address=f"10.0.0.{i}")
        for i in range(num_validators)
    ]
    fullnodes = []
    if with_fullnodes:
        fullnodes = [
            Node(name=f"fn-{i}", role=NodeRole.FULLNODE, group=f"group-{i}", address=f"10.0.1.{i}")
            for i in range(num_validators)
        ]
    return Cluster(validators=validators, fullnodes=fullnodes)


def submit_event(timestamp: int, txn: str = "txn::abc", stage: str = "json-rpc::submit") -> TraceEvent:
    return TraceEvent(name="submit", timestamp=timestamp, payload={"stage": stage, "node": txn})


class FakeClusterControl(ClusterControl):
    """In-memory control plane recording every command into a shared log."""

    def __init__(self, cluster: Cluster, calls: List[tuple]):
        self.cluster = cluster
        self.calls = calls
        self.fail_stop: Set[str] = set()
        self.fail_start: Set[str] = set()
        self.exec_error: Optional[Exception] = None
        self.exec_cancelled = False
        self.start_delay = 0.0
        self.restarted: List[str] = []

    async def list_validators(self) -> List[Node]:
        return list(self.cluster.validators)

    async def list_fullnodes(self) -> List[Node]:
        return list(self.cluster.fullnodes)

    async def stop(self, node: Node) -> None:
        self.calls.append(("stop", node.name))
        if node.name in self.fail_stop:
            raise CommandError(node.name, "stop", "service did not stop", exit_code=1)

    async def start(self, node: Node, wipe: bool = False) -> None:
        self.calls.append(("start", node.name, wipe))
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if node.name in self.fail_start:
            raise CommandError(node.name, "start", "service did not start", exit_code=1)
        self.restarted.append(node.name)

    async def exec(self, node: Node, command: str, allow_failure_signal: bool = False) -> str:
        self.calls.append(("exec", node.name, allow_failure_signal))
        if self.exec_error is not None:
            raise self.exec_error
        try:
            # Like the backup loop, never returns on its own
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.exec_cancelled = True
            raise
        return ""

    def names(self, kind: str) -> List[str]:
        return [c[1] for c in self.calls if c[0] == kind]


class FakeLoadEngine(LoadEngine):
    """Returns canned stats immediately."""

    def __init__(self, calls: List[tuple], stats: Optional[LoadStats] = None):
        self.calls = calls
        self.stats = stats or LoadStats(
            submitted=24000, committed=24000, latency=24000 * 500, p99_latency=900
        )
        self.error: Optional[Exception] = None
        self.requests: List[EmitJobRequest] = []
        self.durations: List[timedelta] = []

    async def emit_txn_for(self, duration: timedelta, request: EmitJobRequest) -> LoadStats:
        self.calls.append(("emit", len(request.instances)))
        self.requests.append(request)
        self.durations.append(duration)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.stats


class FakeTraceTail(TraceTail):
    def __init__(self, trace: Optional[NodeTrace] = None):
        self.trace = trace or []
        self.error: Optional[Exception] = None
        self.captures: List[List[str]] = []

    async def capture_trace(self, nodes: List[Node], duration: timedelta) -> NodeTrace:
        self.captures.append([n.name for n in nodes])
        if self.error is not None:
            raise self.error
        return list(self.trace)


class FakeLogTraceClient(LogTraceClient):
    def __init__(self, trace: Optional[NodeTrace] = None):
        self.trace = trace or []
        self.error: Optional[Exception] = None
        self.queries: List[datetime] = []

    async def get_trace(self, start: datetime, duration: timedelta) -> NodeTrace:
        self.queries.append(start)
        if self.error is not None:
            raise self.error
        return list(self.trace)


class FakePrometheus(PrometheusClient):
    """Serves canned series per query."""

    def __init__(self, calls: List[tuple]):
        super().__init__(prometheus_url="http://prometheus", grafana_url="http://grafana")
        self.calls = calls
        self.series: Dict[str, Dict[str, Any]] = {}

    async def query_range(self, query: str, start: int, end: int, step: int = None):
        self.calls.append(("query", query, start, end))
        return self.series.get(query, {})


@pytest.fixture
def calls() -> List[tuple]:
    return []


@pytest.fixture
def cluster() -> Cluster:
    return make_cluster(4)


@pytest.fixture
def control(cluster, calls) -> FakeClusterControl:
    return FakeClusterControl(cluster, calls)


@pytest.fixture
def load_engine(calls) -> FakeLoadEngine:
    return FakeLoadEngine(calls)


@pytest.fixture
def trace_tail() -> FakeTraceTail:
    return FakeTraceTail()


@pytest.fixture
def log_trace_client() -> FakeLogTraceClient:
    return FakeLogTraceClient()


@pytest.fixture
def prometheus(calls) -> FakePrometheus:
    return FakePrometheus(calls)


@pytest.fixture
def context(control, load_engine, trace_tail, log_trace_client, prometheus) -> Context:
    return Context(
        cluster_control=control,
        tx_emitter=load_engine,
        trace_tail=trace_tail,
        log_trace_client=log_trace_client,
        prometheus=prometheus,
        report=SuiteReport(),
        global_emit_job_request=EmitJobRequest(accounts_per_client=7, workers_per_endpoint=3),
        emit_to_validator=True,
        rng=random.Random(42),
    )


@pytest.fixture
def load_error() -> LoadDriverError:
    return LoadDriverError("Load engine unreachable")


@pytest.fixture
def trace_query_error() -> TraceQueryError:
    return TraceQueryError("Elasticsearch unreachable")
