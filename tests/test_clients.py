"""Tests for the HTTP clients against mocked transports."""
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from clusterbench.cluster.control import HttpClusterControl
from clusterbench.cluster.models import NodeRole
from clusterbench.errors import CommandError, LoadDriverError, TraceQueryError
from clusterbench.services.load.client import HttpLoadEngine
from clusterbench.services.load.models import EmitJobRequest
from clusterbench.services.metrics.client import PrometheusClient
from clusterbench.services.tracing.log_index import ElasticsearchTraceClient
from clusterbench.services.tracing.tail import HttpTraceTail

from conftest import make_cluster


class Recorder:
    """MockTransport handler that records requests and replies from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.routes.get((request.method, request.url.path))
        if reply is None:
            return httpx.Response(404, text="not found")
        if callable(reply):
            return reply(request)
        status, body = reply
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class TestHttpClusterControl:
    """Test cases for the control plane client."""

    async def test_snapshot(self):
        """Test building a cluster snapshot from both role listings."""
        def nodes(request):
            role = request.url.params["role"]
            prefix = "val" if role == "validator" else "fn"
            return httpx.Response(200, json={"nodes": [
                {"name": f"{prefix}-0", "group": "g0", "address": "10.0.0.1"},
            ]})

        recorder = Recorder({("GET", "/nodes"): nodes})
        control = HttpClusterControl("http://control", transport=recorder.transport())

        cluster = await control.snapshot()

        assert [n.name for n in cluster.validators] == ["val-0"]
        assert cluster.validators[0].role == NodeRole.VALIDATOR
        assert cluster.fullnodes[0].role == NodeRole.FULLNODE

    async def test_start_sends_wipe_flag(self):
        """Test starting a node sends the wipe flag."""
        recorder = Recorder({("POST", "/nodes/val-0/start"): (200, {})})
        control = HttpClusterControl("http://control", transport=recorder.transport())

        await control.start(make_cluster(1).validators[0], wipe=False)

        assert json.loads(recorder.requests[0].content) == {"wipe": False}

    async def test_stop_failure_is_command_error(self):
        """Test a failed stop becomes a CommandError."""
        recorder = Recorder({("POST", "/nodes/val-0/stop"): (500, {"detail": "boom"})})
        control = HttpClusterControl("http://control", transport=recorder.transport())

        with pytest.raises(CommandError) as exc_info:
            await control.stop(make_cluster(1).validators[0])

        assert exc_info.value.node == "val-0"

    async def test_exec_returns_stdout(self):
        """Test running a command returns its stdout."""
        recorder = Recorder({("POST", "/nodes/val-0/exec"): (200, {"exit_code": 0, "stdout": "ok"})})
        control = HttpClusterControl("http://control", transport=recorder.transport())

        out = await control.exec(make_cluster(1).validators[0], "echo ok", allow_failure_signal=True)

        assert out == "ok"
        body = json.loads(recorder.requests[0].content)
        assert body == {"command": "echo ok", "allow_failure_signal": True}

    async def test_exec_nonzero_exit(self):
        """Test a non-zero exit carries the exit code."""
        recorder = Recorder({
            ("POST", "/nodes/val-0/exec"): (200, {"exit_code": 137, "stderr": "Killed"}),
        })
        control = HttpClusterControl("http://control", transport=recorder.transport())

        with pytest.raises(CommandError) as exc_info:
            await control.exec(make_cluster(1).validators[0], "backup")

        assert exc_info.value.exit_code == 137


class TestHttpLoadEngine:
    """Test cases for the load engine client."""

    async def test_emit(self):
        """Test driving a load job."""
        recorder = Recorder({
            ("POST", "/api/emit"): (200, {"submitted": 100, "committed": 90, "expired": 10}),
        })
        engine = HttpLoadEngine("http://emitter", transport=recorder.transport())
        request = EmitJobRequest.fixed_tps(make_cluster(2).validators, 50)

        stats = await engine.emit_txn_for(timedelta(seconds=30), request)

        assert stats.committed == 90
        body = json.loads(recorder.requests[0].content)
        assert body["duration_seconds"] == 30.0
        assert body["request"]["mode"] == "fixed_tps"
        assert body["request"]["target_tps"] == 50
        assert len(body["request"]["instances"]) == 2

    async def test_no_instances(self):
        """Test a load job without targets is refused."""
        engine = HttpLoadEngine("http://emitter", transport=Recorder({}).transport())

        with pytest.raises(LoadDriverError):
            await engine.emit_txn_for(timedelta(seconds=1), EmitJobRequest())

    async def test_engine_error(self):
        """Test a load engine error becomes a LoadDriverError."""
        recorder = Recorder({("POST", "/api/emit"): (503, {"detail": "busy"})})
        engine = HttpLoadEngine("http://emitter", transport=recorder.transport())

        with pytest.raises(LoadDriverError, match="busy"):
            await engine.emit_txn_for(
                timedelta(seconds=1), EmitJobRequest(instances=make_cluster(1).validators)
            )


class TestPrometheusClient:
    """Test cases for the Prometheus client."""

    async def test_query_range(self):
        """Test parsing range query samples."""
        recorder = Recorder({("GET", "/api/v1/query_range"): (200, {
            "status": "success",
            "data": {"result": [
                {"metric": {"job": "node"}, "values": [[100, "1.5"], [115, "NaN"], [130, "bad"]]},
            ]},
        })})
        client = PrometheusClient("http://prom", "http://grafana", transport=recorder.transport())

        series = await client.query_range("up", 100, 200, step=15)

        values = series["job=node"]
        assert values[0] == (100.0, 1.5)
        assert len(values) == 2
        params = recorder.requests[0].url.params
        assert params["query"] == "up"
        assert params["step"] == "15s"

    async def test_server_error_is_empty(self):
        """Test a server error yields no data."""
        recorder = Recorder({("GET", "/api/v1/query_range"): (500, {"status": "error"})})
        client = PrometheusClient("http://prom", "http://grafana", transport=recorder.transport())

        assert await client.query_range("up", 100, 200) == {}

    async def test_error_status_is_empty(self):
        """Test an error status yields no data."""
        recorder = Recorder({
            ("GET", "/api/v1/query_range"): (200, {"status": "error", "error": "bad query"}),
        })
        client = PrometheusClient("http://prom", "http://grafana", transport=recorder.transport())

        assert await client.query_range("up(", 100, 200) == {}

    def test_dashboard_link(self):
        """Test the dashboard link covers the window in milliseconds."""
        client = PrometheusClient("http://prom", "http://grafana/")

        link = client.link_to_dashboard(100, 200)

        assert link.startswith("http://grafana/")
        assert link.endswith("?from=100000&to=200000")


class TestElasticsearchTraceClient:
    """Test cases for the log-index trace client."""

    async def test_get_trace(self):
        """Test fetching trace events from the log index."""
        recorder = Recorder({("POST", "/logs/_search"): (200, {"hits": {"hits": [
            {"_source": {
                "kubernetes": {"pod_name": "val-0"},
                "trace_event": {"name": "submit", "timestamp": 5, "payload": {"node": "txn::a"}},
            }},
            {"_source": {"peer": "fn-0", "trace_event": {"timestamp": 6}}},
            {"_source": {"message": "unrelated"}},
        ]}})})
        client = ElasticsearchTraceClient("http://es", "logs", transport=recorder.transport())
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)

        trace = await client.get_trace(start, timedelta(seconds=5))

        assert [peer for peer, _ in trace] == ["val-0", "fn-0"]
        assert trace[0][1].trace_node == "txn::a"
        query = json.loads(recorder.requests[0].content)
        time_range = query["query"]["bool"]["filter"][1]["range"]["@timestamp"]
        assert time_range["gte"] == start.isoformat()
        assert time_range["lt"] == (start + timedelta(seconds=5)).isoformat()

    async def test_query_failure(self):
        """Test a failed search becomes a TraceQueryError."""
        recorder = Recorder({("POST", "/logs/_search"): (400, {"error": "bad"})})
        client = ElasticsearchTraceClient("http://es", "logs", transport=recorder.transport())

        with pytest.raises(TraceQueryError):
            await client.get_trace(datetime.now(timezone.utc), timedelta(seconds=5))

    async def test_non_json_body_is_query_error(self):
        """A 200 reply that is not JSON (e.g. a proxy error page) is a query failure."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>proxy error</html>")
        )
        client = ElasticsearchTraceClient("http://es", "logs", transport=transport)

        with pytest.raises(TraceQueryError):
            await client.get_trace(datetime.now(timezone.utc), timedelta(seconds=5))

    async def test_malformed_event_is_skipped(self):
        """An event without a timestamp is dropped, the valid ones are kept."""
        recorder = Recorder({("POST", "/logs/_search"): (200, {"hits": {"hits": [
            {"_source": {"peer": "val-1", "trace_event": {"name": "x"}}},
            {"_source": {"peer": "val-2", "trace_event": {"name": "y", "timestamp": 3}}},
        ]}})})
        client = ElasticsearchTraceClient("http://es", "logs", transport=recorder.transport())

        trace = await client.get_trace(datetime.now(timezone.utc), timedelta(seconds=5))

        assert [(peer, event.name) for peer, event in trace] == [("val-2", "y")]


class TestHttpTraceTail:
    """Test cases for the live trace sidecar client."""

    async def test_capture_skips_unavailable_sidecar(self):
        """Test an unavailable sidecar is skipped."""
        def handler(request):
            if request.url.host == "10.0.0.1":
                return httpx.Response(503)
            return httpx.Response(200, json={"events": [{"timestamp": 1, "payload": {"node": "txn::a"}}]})

        tail = HttpTraceTail(port=9102, transport=httpx.MockTransport(handler))

        trace = await tail.capture_trace(make_cluster(2, with_fullnodes=False).validators, timedelta(seconds=5))

        assert [peer for peer, _ in trace] == ["val-0"]

    async def test_capture_skips_malformed_sidecar(self):
        """A sidecar answering garbage is skipped, the other nodes' events are kept."""
        def handler(request):
            if request.url.host == "10.0.0.1":
                return httpx.Response(200, text="not json")
            if request.url.host == "10.0.0.2":
                return httpx.Response(200, json={"events": [{"name": "no timestamp"}]})
            return httpx.Response(200, json={"events": [{"timestamp": 1, "payload": {"node": "txn::a"}}]})

        tail = HttpTraceTail(port=9102, transport=httpx.MockTransport(handler))
        nodes = make_cluster(4, with_fullnodes=False).validators

        trace = await tail.capture_trace(nodes, timedelta(seconds=5))

        assert sorted(peer for peer, _ in trace) == ["val-0", "val-3"]

    async def test_capture_duration_forwarded(self):
        """Test the capture window is sent to the sidecar."""
        seen = []

        def handler(request):
            seen.append((request.url.port, request.url.params["duration_ms"]))
            return httpx.Response(200, json={"events": []})

        tail = HttpTraceTail(port=9102, transport=httpx.MockTransport(handler))

        await tail.capture_trace(make_cluster(1).validators, timedelta(seconds=5))

        assert seen == [(9102, "5000")]
