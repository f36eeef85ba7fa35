"""Distributed trace capture and analysis."""

from clusterbench.services.tracing.models import NodeTrace, TraceEvent
from clusterbench.services.tracing.analysis import normalize_events, random_node, trace_node
from clusterbench.services.tracing.tail import HttpTraceTail, TraceTail
from clusterbench.services.tracing.log_index import ElasticsearchTraceClient, LogTraceClient

__all__ = [
    "NodeTrace",
    "TraceEvent",
    "normalize_events",
    "random_node",
    "trace_node",
    "TraceTail",
    "HttpTraceTail",
    "LogTraceClient",
    "ElasticsearchTraceClient",
]
